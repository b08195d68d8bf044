from dataclasses import dataclass
from typing import Any, Callable

import pytest
from eth_abi import decode

from aa_gas_estimator.exceptions import RpcRequestException
from aa_gas_estimator.simulation.classifier import EXECUTION_RESULT_V6, \
    FAILED_OP
from aa_gas_estimator.user_operation.user_operation_v6 import \
    USER_OPERATION_V6_TYPE, UserOperationV6
from aa_gas_estimator.user_operation.user_operation_v7 import UserOperationV7
from aa_gas_estimator.utils.eth_client_utils import EthClient

SENDER = "0x1306b01bC3e4AD202612D3843387e94737673F53"
PAYMASTER = "0x9C7a1ab5c30aB0D0E6c5dcb8d3e8A4f2E9A7d3B1"


@dataclass
class EthCall:
    to: str
    data: str
    block_tag: str
    state_override_set: dict[str, Any] | None


class FakeEthClient(EthClient):
    """eth_call answered by `responder`, which returns the output bytes or
    raises RpcRequestException like a node would."""

    def __init__(self, responder: Callable[[EthCall], bytes]):
        self.responder = responder
        self.calls: list[EthCall] = []

    async def call(
        self,
        to: str,
        data: str,
        block_tag: str = "latest",
        state_override_set: dict[str, Any] | None = None,
    ) -> bytes:
        eth_call = EthCall(to, data, block_tag, state_override_set)
        self.calls.append(eth_call)
        return self.responder(eth_call)


def revert(revert_data: bytes) -> RpcRequestException:
    return RpcRequestException({
        "code": 3,
        "message": "execution reverted",
        "data": "0x" + revert_data.hex(),
    })


def execution_result_revert(
    pre_op_gas: int,
    paid: int,
    valid_after: int = 0,
    valid_until: int = 0,
    target_success: bool = False,
    target_result: bytes = b"",
) -> RpcRequestException:
    return revert(EXECUTION_RESULT_V6.encode([
        pre_op_gas,
        paid,
        valid_after,
        valid_until,
        target_success,
        target_result,
    ]))


def failed_op_revert(reason: str) -> RpcRequestException:
    return revert(FAILED_OP.encode([0, reason]))


def raising(excp: Exception) -> Callable[[EthCall], bytes]:
    def responder(eth_call: EthCall) -> bytes:
        raise excp
    return responder


def decode_simulate_handle_op_v6(data: str) -> tuple:
    """(op tuple, target, target call data) of a v0.6 simulateHandleOp."""
    return decode(
        [USER_OPERATION_V6_TYPE, "address", "bytes"],
        bytes.fromhex(data[10:]),
    )


def selector_of(data: str) -> str:
    return data[:10]


@pytest.fixture
def user_operation_v6_json():
    return {
        "sender": SENDER,
        "nonce": "0x1",
        "initCode": "0x",
        "callData": "0xb61d27f6" + "00" * 20 + "ab" * 12,
        "callGasLimit": "0x0",
        "verificationGasLimit": "0x0",
        "preVerificationGas": hex(21_000),
        "maxFeePerGas": "0x2",
        "maxPriorityFeePerGas": "0x1",
        "paymasterAndData": "0x",
        "signature": "0x" + "01" * 65,
    }


@pytest.fixture
def user_operation_v6(user_operation_v6_json):
    return UserOperationV6.from_json(user_operation_v6_json)


@pytest.fixture
def user_operation_v7_json():
    return {
        "sender": SENDER,
        "nonce": "0x1",
        "callData": "0xb61d27f6" + "00" * 20 + "ab" * 12,
        "callGasLimit": "0x0",
        "verificationGasLimit": "0x0",
        "preVerificationGas": hex(21_000),
        "maxFeePerGas": "0x2",
        "maxPriorityFeePerGas": "0x1",
        "signature": "0x" + "01" * 65,
    }


@pytest.fixture
def user_operation_v7(user_operation_v7_json):
    return UserOperationV7.from_json(user_operation_v7_json)


@pytest.fixture
def user_operation_v7_with_paymaster(user_operation_v7_json):
    return UserOperationV7.from_json(
        user_operation_v7_json | {
            "paymaster": PAYMASTER,
            "paymasterData": "0x1234",
        })

from abc import ABC, abstractmethod
from typing import Any

from aa_gas_estimator.exceptions import UnexpectedResponseException
from aa_gas_estimator.typing import Address
from aa_gas_estimator.user_operation.models import ExecutionResult, \
    parse_validation_data
from aa_gas_estimator.user_operation.user_operation import UserOperation
from aa_gas_estimator.user_operation.user_operation_v6 import \
    USER_OPERATION_V6_TYPE, UserOperationV6
from aa_gas_estimator.user_operation.user_operation_v7 import \
    PACKED_USER_OPERATION_TYPE, UserOperationV7
from aa_gas_estimator.utils.abi import ContractFunction

ENTRYPOINT_V6_ADDRESS = Address("0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789")
ENTRYPOINT_V7_ADDRESS = Address("0x0000000071727De22E5E9d8BAf0edAc6f37da032")


class EntryPoint(ABC):
    version: str
    address: Address
    user_operation_class: type[UserOperation]
    simulate_handle_op_function: ContractFunction

    def encode_simulate_handle_op(
        self,
        user_operation: UserOperation,
        target: str,
        target_call_data: bytes,
    ) -> str:
        return self.simulate_handle_op_function.encode_call(
            [user_operation.to_list(), target.lower(), target_call_data]
        )

    @abstractmethod
    def decode_call_output(self, data: bytes) -> ExecutionResult:
        """Decode a simulateHandleOp call that returned normally."""

    def parse_user_operation(self, user_operation_json: dict[str, Any]):
        return self.user_operation_class.from_json(user_operation_json)


class EntryPointV6(EntryPoint):
    version = "v0.6"
    user_operation_class = UserOperationV6
    simulate_handle_op_function = ContractFunction(
        "simulateHandleOp",
        (USER_OPERATION_V6_TYPE, "address", "bytes"),
    )

    def __init__(self, address: Address = ENTRYPOINT_V6_ADDRESS):
        self.address = address

    def decode_call_output(self, data: bytes) -> ExecutionResult:
        # v0.6 simulateHandleOp always reverts
        raise UnexpectedResponseException(
            "simulateHandleOp didn't revert!", "0x" + data.hex())


class EntryPointV7(EntryPoint):
    version = "v0.7"
    user_operation_class = UserOperationV7
    simulate_handle_op_function = ContractFunction(
        "simulateHandleOp",
        (PACKED_USER_OPERATION_TYPE, "address", "bytes"),
        ("(uint256,uint256,uint256,uint256,bool,bytes)",),
    )

    def __init__(self, address: Address = ENTRYPOINT_V7_ADDRESS):
        self.address = address

    def decode_call_output(self, data: bytes) -> ExecutionResult:
        (
            pre_op_gas,
            paid,
            account_validation_data,
            paymaster_validation_data,
            target_success,
            target_result,
        ) = self.simulate_handle_op_function.decode_output(data)[0]
        account = parse_validation_data(account_validation_data)
        paymaster = parse_validation_data(paymaster_validation_data)
        return ExecutionResult(
            pre_op_gas=pre_op_gas,
            paid=paid,
            valid_after=max(account.valid_after, paymaster.valid_after),
            valid_until=min(account.valid_until, paymaster.valid_until),
            target_success=target_success,
            target_result=target_result,
        )


def get_entrypoint(version: str, address: Address | None = None) -> EntryPoint:
    if version == EntryPointV6.version:
        return EntryPointV6(address or ENTRYPOINT_V6_ADDRESS)
    if version == EntryPointV7.version:
        return EntryPointV7(address or ENTRYPOINT_V7_ADDRESS)
    raise ValueError(f"Unsupported entrypoint version: {version}")

from abc import ABC, abstractmethod
import asyncio
import logging

import rlp

from aa_gas_estimator.exceptions import ConfigurationException
from aa_gas_estimator.gas.constants import ARBITRUM_NODE_INTERFACE_ADDRESS, \
    DEFAULT_GAS_OVERHEADS, GasOverheads, MANTLE_BVM_GAS_PRICE_ORACLE_ADDRESS, \
    MANTLE_L1_ROLL_UP_FEE_DIVISION_FACTOR, OPTIMISM_GAS_PRICE_ORACLE_ADDRESS
from aa_gas_estimator.user_operation.user_operation import UserOperation
from aa_gas_estimator.utils.abi import ContractFunction
from aa_gas_estimator.utils.eth_client_utils import EthClient

GET_L1_FEE = ContractFunction("getL1Fee", ("bytes",), ("uint256",))
GAS_ESTIMATE_L1_COMPONENT = ContractFunction(
    "gasEstimateL1Component",
    ("address", "bool", "bytes"),
    (
        "uint64",  # gasEstimateForL1
        "uint256",  # baseFee
        "uint256",  # l1BaseFeeEstimate
    ),
)
TOKEN_RATIO = ContractFunction("tokenRatio", (), ("uint256",))
SCALAR = ContractFunction("scalar", (), ("uint256",))
GET_L1_GAS_USED = ContractFunction("getL1GasUsed", ("bytes",), ("uint256",))
L1_BASE_FEE = ContractFunction("l1BaseFee", (), ("uint256",))


def calc_base_pre_verification_gas(
    user_operation: UserOperation,
    gas_overheads: GasOverheads = DEFAULT_GAS_OVERHEADS,
) -> int:
    packed = user_operation.pack_for_pre_verification_gas()
    packed_length = len(packed)
    zero_byte_count = packed.count(b"\x00")
    non_zero_byte_count = packed_length - zero_byte_count
    call_data_cost = (
        zero_byte_count * gas_overheads.zero_byte
        + non_zero_byte_count * gas_overheads.non_zero_byte
    )

    pre_verification_gas = (
        call_data_cost
        + (gas_overheads.fixed / gas_overheads.bundle_size)
        + gas_overheads.per_user_op
        + gas_overheads.per_user_op_word * packed_length
    )

    return round(pre_verification_gas)


def _handle_ops_bytes(user_operation: UserOperation) -> bytes:
    # beneficiary is the sender, as a bundler would submit it
    handle_ops_calldata = user_operation.encode_handle_ops(
        user_operation.sender_address)
    return bytes.fromhex(handle_ops_calldata[2:])


def _divide_by_fee(l1_fee: int, fee_per_gas: int) -> int:
    if fee_per_gas == 0:
        raise ConfigurationException(
            "Can't convert the L1 fee to gas with a zero fee per gas")
    return l1_fee // fee_per_gas


class L1FeeStrategy(ABC):
    """Extra gas a rollup charges for publishing the operation on L1."""
    requires_base_fee: bool = False

    def check_base_fee(self, base_fee_per_gas: int | None) -> None:
        if self.requires_base_fee and not base_fee_per_gas:
            raise ConfigurationException(
                "baseFeePerGas is required to estimate "
                f"{type(self).__name__} preVerificationGas"
            )

    @abstractmethod
    async def compute_extra_fee(
        self,
        eth_client: EthClient,
        user_operation: UserOperation,
        entrypoint: str,
        base_fee_per_gas: int | None = None,
    ) -> int:
        pass


class NoL1Fee(L1FeeStrategy):
    async def compute_extra_fee(
        self,
        eth_client: EthClient,
        user_operation: UserOperation,
        entrypoint: str,
        base_fee_per_gas: int | None = None,
    ) -> int:
        return 0


class OptimismL1Fee(L1FeeStrategy):
    oracle_address: str
    requires_base_fee = True

    def __init__(self, oracle_address: str = OPTIMISM_GAS_PRICE_ORACLE_ADDRESS):
        self.oracle_address = oracle_address

    async def compute_extra_fee(
        self,
        eth_client: EthClient,
        user_operation: UserOperation,
        entrypoint: str,
        base_fee_per_gas: int | None = None,
    ) -> int:
        self.check_base_fee(base_fee_per_gas)
        l1_fee = (await eth_client.read_contract(
            self.oracle_address,
            GET_L1_FEE,
            [_handle_ops_bytes(user_operation)],
        ))[0]

        l2_price = min(
            user_operation.max_fee_per_gas,
            base_fee_per_gas + user_operation.max_priority_fee_per_gas,
        )
        return _divide_by_fee(l1_fee, l2_price)


class ArbitrumL1Fee(L1FeeStrategy):
    node_interface_address: str

    def __init__(
        self, node_interface_address: str = ARBITRUM_NODE_INTERFACE_ADDRESS
    ):
        self.node_interface_address = node_interface_address

    async def compute_extra_fee(
        self,
        eth_client: EthClient,
        user_operation: UserOperation,
        entrypoint: str,
        base_fee_per_gas: int | None = None,
    ) -> int:
        gas_estimate_for_l1, _, _ = await eth_client.read_contract(
            self.node_interface_address,
            GAS_ESTIMATE_L1_COMPONENT,
            [entrypoint.lower(), False, _handle_ops_bytes(user_operation)],
        )
        # already in gas units
        return gas_estimate_for_l1


class MantleL1Fee(L1FeeStrategy):
    oracle_address: str
    division_factor: int

    def __init__(
        self,
        oracle_address: str = MANTLE_BVM_GAS_PRICE_ORACLE_ADDRESS,
        division_factor: int = MANTLE_L1_ROLL_UP_FEE_DIVISION_FACTOR,
    ):
        self.oracle_address = oracle_address
        self.division_factor = division_factor

    async def compute_extra_fee(
        self,
        eth_client: EthClient,
        user_operation: UserOperation,
        entrypoint: str,
        base_fee_per_gas: int | None = None,
    ) -> int:
        rlp_handle_ops = rlp.encode(_handle_ops_bytes(user_operation))

        tasks = await asyncio.gather(
            eth_client.read_contract(self.oracle_address, TOKEN_RATIO, []),
            eth_client.read_contract(self.oracle_address, SCALAR, []),
            eth_client.read_contract(
                self.oracle_address, GET_L1_GAS_USED, [rlp_handle_ops]),
            eth_client.read_contract(self.oracle_address, L1_BASE_FEE, []),
        )
        token_ratio, scalar, l1_gas_used, l1_base_fee = (
            task[0] for task in tasks)

        l1_rollup_fee = (
            l1_gas_used * l1_base_fee * token_ratio * scalar
            // self.division_factor
        )
        return _divide_by_fee(l1_rollup_fee, user_operation.max_fee_per_gas)


class OracleL1Fee(L1FeeStrategy):
    """getL1Fee oracles priced in the L2 max fee (Scroll, Morph)."""
    oracle_address: str

    def __init__(self, oracle_address: str):
        self.oracle_address = oracle_address

    async def compute_extra_fee(
        self,
        eth_client: EthClient,
        user_operation: UserOperation,
        entrypoint: str,
        base_fee_per_gas: int | None = None,
    ) -> int:
        l1_fee = (await eth_client.read_contract(
            self.oracle_address,
            GET_L1_FEE,
            [_handle_ops_bytes(user_operation)],
        ))[0]
        return _divide_by_fee(l1_fee, user_operation.max_fee_per_gas)


class PreVerificationGasCalculator:
    strategy: L1FeeStrategy
    eth_client: EthClient
    gas_overheads: GasOverheads

    def __init__(
        self,
        strategy: L1FeeStrategy,
        eth_client: EthClient,
        gas_overheads: GasOverheads = DEFAULT_GAS_OVERHEADS,
    ):
        self.strategy = strategy
        self.eth_client = eth_client
        self.gas_overheads = gas_overheads

    async def calculate(
        self,
        user_operation: UserOperation,
        entrypoint: str,
        base_fee_per_gas: int | None = None,
    ) -> int:
        extra_fee = await self.strategy.compute_extra_fee(
            self.eth_client, user_operation, entrypoint, base_fee_per_gas)
        base_pre_verification_gas = calc_base_pre_verification_gas(
            user_operation, self.gas_overheads)
        logging.debug(
            f"preVerificationGas: base {base_pre_verification_gas}, "
            f"l1 {extra_fee}"
        )
        return base_pre_verification_gas + extra_fee

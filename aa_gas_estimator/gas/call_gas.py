from typing import Any

from aa_gas_estimator.exceptions import ConfigurationException, \
    ExecutionException, ExecutionExceptionCode, \
    UnexpectedResponseException, ValidationException, \
    ValidationExceptionCode
from aa_gas_estimator.gas.constants import CGL_ROUNDING, \
    INITIAL_CGL_LOWER_BOUND, INITIAL_CGL_UPPER_BOUND, MAX_CONTINUATION_ROUNDS
from aa_gas_estimator.gas.continuation import run_continuation_search
from aa_gas_estimator.simulation.classifier import clean_up_revert_reason, \
    decode_inner_revert
from aa_gas_estimator.simulation.simulation_client import \
    FULL_SIMULATION_CAPABILITIES, SimulationClient
from aa_gas_estimator.user_operation.models import ContinuationSignal, \
    ExecutionResult, FailedSimulation, ResultSignal, RevertAtMaxSignal, \
    SearchSignal
from aa_gas_estimator.user_operation.user_operation import UserOperation
from aa_gas_estimator.utils.abi import ContractError, ContractFunction

ESTIMATE_CALL_GAS = ContractFunction(
    "estimateCallGas",
    ("(address,bytes,uint256,uint256,uint256,bool)",),
)
ESTIMATE_CALL_GAS_CONTINUATION = ContractError(
    "EstimateCallGasContinuation", ("uint256", "uint256", "uint256"))
ESTIMATE_CALL_GAS_RESULT = ContractError(
    "EstimateCallGasResult", ("uint256", "uint256"))
ESTIMATE_CALL_GAS_REVERT_AT_MAX = ContractError(
    "EstimateCallGasRevertAtMax", ("bytes",))


class OnChainCallGasSearch:
    """Runs the call gas simulator as the target call of simulateHandleOp.

    The EntryPoint code is replaced with the simulator build, so targeting
    the EntryPoint address reaches `estimateCallGas` after validation
    succeeded. The signal comes back as the target call's revert data.
    """
    simulation_client: SimulationClient
    simulator_bytecode: str
    min_gas: int
    max_gas: int
    rounding: int
    max_rounds: int

    def __init__(
        self,
        simulation_client: SimulationClient,
        simulator_bytecode: str,
        min_gas: int = INITIAL_CGL_LOWER_BOUND,
        max_gas: int = INITIAL_CGL_UPPER_BOUND,
        rounding: int = CGL_ROUNDING,
        max_rounds: int = MAX_CONTINUATION_ROUNDS,
    ):
        self.simulation_client = simulation_client
        self.simulator_bytecode = simulator_bytecode
        self.min_gas = min_gas
        self.max_gas = max_gas
        self.rounding = rounding
        self.max_rounds = max_rounds

    async def estimate(
        self,
        user_operation: UserOperation,
        state_override_set: dict[str, Any] | None = None,
    ) -> int:
        probed_user_operation = user_operation.with_gas(call_gas_limit=0)
        entrypoint_address = self.simulation_client.entrypoint.address

        async def issue_call(
            min_gas: int, max_gas: int, is_continuation: bool
        ) -> SearchSignal:
            target_call_data = ESTIMATE_CALL_GAS.encode_call([[
                probed_user_operation.sender_address.lower(),
                probed_user_operation.call_data,
                min_gas,
                max_gas,
                self.rounding,
                is_continuation,
            ]])
            result = await self.simulation_client.simulate_handle_op(
                probed_user_operation,
                target=entrypoint_address,
                target_call_data=bytes.fromhex(target_call_data[2:]),
                capabilities=FULL_SIMULATION_CAPABILITIES,
                state_override_set=state_override_set,
                code_override=self.simulator_bytecode,
            )
            if isinstance(result, FailedSimulation):
                raise ValidationException(
                    ValidationExceptionCode.SimulateValidation,
                    "UserOperation reverted during simulation with reason: "
                    + result.message(),
                )
            if result.target_success:
                raise UnexpectedResponseException(
                    "Call gas simulator didn't revert!",
                    "0x" + result.target_result.hex(),
                )
            return decode_call_gas_signal(result.target_result)

        signal = await run_continuation_search(
            issue_call, self.min_gas, self.max_gas, self.max_rounds)

        if isinstance(signal, RevertAtMaxSignal):
            raise ExecutionException(
                ExecutionExceptionCode.UserOperationReverted,
                clean_up_revert_reason(
                    decode_inner_revert(signal.revert_data)),
            )
        return signal.gas_estimate


def decode_call_gas_signal(revert_data: bytes) -> SearchSignal:
    if ESTIMATE_CALL_GAS_CONTINUATION.matches(revert_data):
        min_gas, max_gas, num_rounds = ESTIMATE_CALL_GAS_CONTINUATION.decode(
            revert_data)
        return ContinuationSignal(min_gas, max_gas, num_rounds)

    if ESTIMATE_CALL_GAS_RESULT.matches(revert_data):
        gas_estimate, num_rounds = ESTIMATE_CALL_GAS_RESULT.decode(
            revert_data)
        return ResultSignal(gas_estimate, num_rounds)

    if ESTIMATE_CALL_GAS_REVERT_AT_MAX.matches(revert_data):
        return RevertAtMaxSignal(
            ESTIMATE_CALL_GAS_REVERT_AT_MAX.decode(revert_data)[0])

    raise UnexpectedResponseException(
        "Unrecognized call gas simulator response",
        "0x" + revert_data.hex(),
    )


def derive_call_gas_limit(
    execution_result: ExecutionResult, max_fee_per_gas: int
) -> int:
    """Call gas left over from what a fixed fee simulation paid."""
    if max_fee_per_gas == 0:
        raise ConfigurationException(
            "Can't derive call gas limit with a zero maxFeePerGas")
    return execution_result.paid // max_fee_per_gas - \
        execution_result.pre_op_gas

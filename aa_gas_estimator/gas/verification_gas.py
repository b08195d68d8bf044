import logging
from typing import Any

from aa_gas_estimator.exceptions import SearchExhaustedException, \
    UnexpectedResponseException, ValidationException, \
    ValidationExceptionCode
from aa_gas_estimator.gas.constants import BINARY_SEARCH_CUTOFF, \
    BINARY_SEARCH_LOWER_BOUND, BINARY_SEARCH_UPPER_BOUND, \
    BINARY_SEARCH_UPPER_BOUND_MULTIPLIER, INITIAL_VGL_LOWER_BOUND, \
    INITIAL_VGL_UPPER_BOUND, MAX_CONTINUATION_ROUNDS, VGL_ROUNDING
from aa_gas_estimator.gas.continuation import run_continuation_search
from aa_gas_estimator.simulation.classifier import FAILED_OP, \
    clean_up_revert_reason, decode_failed_op, decode_inner_revert, \
    handle_failed_op, too_low
from aa_gas_estimator.simulation.simulation_client import \
    FULL_SIMULATION_CAPABILITIES, SimulationCapabilities, SimulationClient
from aa_gas_estimator.user_operation.models import ContinuationSignal, \
    FailedSimulation, ResultSignal, RevertAtMaxSignal, SearchSignal, \
    SearchState, VerificationGasResult
from aa_gas_estimator.user_operation.user_operation import UserOperation
from aa_gas_estimator.user_operation.user_operation_v6 import \
    USER_OPERATION_V6_TYPE
from aa_gas_estimator.user_operation.user_operation_v7 import UserOperationV7
from aa_gas_estimator.utils.abi import ContractError, ContractFunction

ESTIMATE_VERIFICATION_GAS = ContractFunction(
    "estimateVerificationGas",
    ("(" + USER_OPERATION_V6_TYPE + ",uint256,uint256,uint256,bool)",),
)
ESTIMATE_VERIFICATION_GAS_CONTINUATION = ContractError(
    "EstimateVerificationGasContinuation",
    ("uint256", "uint256", "uint48", "uint48", "uint256"),
)
ESTIMATE_VERIFICATION_GAS_RESULT = ContractError(
    "EstimateVerificationGasResult",
    ("uint256", "uint48", "uint48", "uint256"),
)
ESTIMATE_VERIFICATION_GAS_REVERT_AT_MAX = ContractError(
    "EstimateVerificationGasRevertAtMax", ("bytes",))
FAILED_OP_ERROR = ContractError("FailedOpError", ("bytes",))


def with_verification_gas_limit(
    user_operation: UserOperation, verification_gas_limit: int, **changes: int
) -> UserOperation:
    """Copy of the operation probing `verification_gas_limit`. On v0.7 the
    paymaster limits follow the probed value."""
    if isinstance(user_operation, UserOperationV7) and \
            user_operation.paymaster is not None:
        changes["paymaster_verification_gas_limit"] = verification_gas_limit
        changes["paymaster_post_op_gas_limit"] = verification_gas_limit
    return user_operation.with_gas(
        verification_gas_limit=verification_gas_limit, **changes)


class BinarySearchVerificationGas:
    """Host driven binary search over repeated simulateHandleOp calls."""
    simulation_client: SimulationClient
    lower: int
    upper: int
    cutoff: int
    multiplier: int

    def __init__(
        self,
        simulation_client: SimulationClient,
        lower: int = BINARY_SEARCH_LOWER_BOUND,
        upper: int = BINARY_SEARCH_UPPER_BOUND,
        cutoff: int = BINARY_SEARCH_CUTOFF,
        multiplier: int = BINARY_SEARCH_UPPER_BOUND_MULTIPLIER,
    ):
        self.simulation_client = simulation_client
        self.lower = lower
        self.upper = upper
        self.cutoff = cutoff
        self.multiplier = multiplier

    async def estimate(
        self,
        user_operation: UserOperation,
        capabilities: SimulationCapabilities = FULL_SIMULATION_CAPABILITIES,
        state_override_set: dict[str, Any] | None = None,
    ) -> VerificationGasResult:
        base_user_operation = user_operation.with_gas(
            max_fee_per_gas=0,
            max_priority_fee_per_gas=0,
            call_gas_limit=0,
        )

        initial = await self.simulation_client.simulate_handle_op(
            with_verification_gas_limit(base_user_operation, self.upper),
            capabilities=capabilities,
            state_override_set=state_override_set,
        )
        if isinstance(initial, FailedSimulation):
            handle_failed_op(initial.message())

        state = SearchState(
            lower=self.lower,
            upper=self.multiplier * (
                initial.pre_op_gas - base_user_operation.pre_verification_gas),
            cutoff=self.cutoff,
        )
        logging.debug(f"verification gas search upper bound: {state.upper}")

        if state.is_converged():
            # the loop below never probes the tightened bound itself
            result = await self.simulation_client.simulate_handle_op(
                with_verification_gas_limit(base_user_operation, state.upper),
                capabilities=capabilities,
                state_override_set=state_override_set,
            )
            if not isinstance(result, FailedSimulation):
                state.best = state.upper
            elif too_low(result.reason):
                state.upper = state.best = self.upper
            else:
                handle_failed_op(result.message())

        while not state.is_converged():
            mid = state.mid()
            result = await self.simulation_client.simulate_handle_op(
                with_verification_gas_limit(base_user_operation, mid),
                capabilities=capabilities,
                state_override_set=state_override_set,
            )
            if not isinstance(result, FailedSimulation):
                state.upper = mid
                state.best = mid
            elif too_low(result.reason):
                state.lower = mid
            else:
                handle_failed_op(result.message())

        if state.best is None:
            raise SearchExhaustedException(
                "Failed to estimate verification gas limit")

        return VerificationGasResult(
            verification_gas_limit=state.best,
            valid_after=initial.valid_after,
            valid_until=initial.valid_until,
        )


class OnChainVerificationGasSearch:
    """Single round trip search run by the verification gas simulator,
    continued while it reports the search needs more rounds."""
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
        min_gas: int = INITIAL_VGL_LOWER_BOUND,
        max_gas: int = INITIAL_VGL_UPPER_BOUND,
        rounding: int = VGL_ROUNDING,
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
    ) -> VerificationGasResult:
        probed_user_operation = user_operation.with_gas(
            verification_gas_limit=self.max_gas)

        async def issue_call(
            min_gas: int, max_gas: int, is_continuation: bool
        ) -> SearchSignal:
            call_data = ESTIMATE_VERIFICATION_GAS.encode_call([[
                probed_user_operation.to_list(),
                min_gas,
                max_gas,
                self.rounding,
                is_continuation,
            ]])
            revert_data = await self.simulation_client.call_simulator(
                probed_user_operation,
                call_data,
                self.simulator_bytecode,
                state_override_set,
            )
            return decode_verification_gas_signal(revert_data)

        signal = await run_continuation_search(
            issue_call, self.min_gas, self.max_gas, self.max_rounds)

        if isinstance(signal, RevertAtMaxSignal):
            raise ValidationException(
                ValidationExceptionCode.SimulateValidation,
                "UserOperation reverted during validation with reason: " +
                decode_revert_at_max(signal.revert_data),
            )
        return VerificationGasResult(
            verification_gas_limit=signal.gas_estimate,
            valid_after=signal.valid_after,
            valid_until=signal.valid_until,
        )


def decode_revert_at_max(revert_data: bytes) -> str:
    if FAILED_OP.matches(revert_data):
        return clean_up_revert_reason(decode_failed_op(revert_data).reason)
    return clean_up_revert_reason(decode_inner_revert(revert_data))


def decode_verification_gas_signal(revert_data: bytes) -> SearchSignal:
    if FAILED_OP.matches(revert_data):
        handle_failed_op(
            clean_up_revert_reason(decode_failed_op(revert_data).reason))

    if FAILED_OP_ERROR.matches(revert_data):
        inner = FAILED_OP_ERROR.decode(revert_data)[0]
        if FAILED_OP.matches(inner):
            handle_failed_op(
                clean_up_revert_reason(decode_failed_op(inner).reason))
        raise ValidationException(
            ValidationExceptionCode.SimulateValidation,
            decode_inner_revert(inner),
        )

    if ESTIMATE_VERIFICATION_GAS_CONTINUATION.matches(revert_data):
        (
            min_gas,
            max_gas,
            valid_after,
            valid_until,
            num_rounds,
        ) = ESTIMATE_VERIFICATION_GAS_CONTINUATION.decode(revert_data)
        return ContinuationSignal(
            min_gas, max_gas, num_rounds, valid_after, valid_until)

    if ESTIMATE_VERIFICATION_GAS_RESULT.matches(revert_data):
        (
            gas_estimate,
            valid_after,
            valid_until,
            num_rounds,
        ) = ESTIMATE_VERIFICATION_GAS_RESULT.decode(revert_data)
        return ResultSignal(gas_estimate, num_rounds, valid_after, valid_until)

    if ESTIMATE_VERIFICATION_GAS_REVERT_AT_MAX.matches(revert_data):
        return RevertAtMaxSignal(
            ESTIMATE_VERIFICATION_GAS_REVERT_AT_MAX.decode(revert_data)[0])

    raise UnexpectedResponseException(
        "Unrecognized verification gas simulator response",
        "0x" + revert_data.hex(),
    )

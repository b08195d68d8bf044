import asyncio
from dataclasses import dataclass
import logging
from typing import Any

from aa_gas_estimator.exceptions import ConfigurationException
from aa_gas_estimator.gas.call_gas import OnChainCallGasSearch, \
    derive_call_gas_limit
from aa_gas_estimator.gas.chain_config import ChainConfig
from aa_gas_estimator.gas.constants import BINARY_SEARCH_LOWER_BOUND, \
    BINARY_SEARCH_UPPER_BOUND, CGL_ROUNDING, INITIAL_CGL_LOWER_BOUND, \
    INITIAL_CGL_UPPER_BOUND, INITIAL_VGL_LOWER_BOUND, \
    INITIAL_VGL_UPPER_BOUND, MAX_CONTINUATION_ROUNDS, \
    MAX_FEE_PER_GAS_OVERRIDE_VALUE, MAX_PRIORITY_FEE_PER_GAS_OVERRIDE_VALUE, \
    VGL_ROUNDING
from aa_gas_estimator.gas.pre_verification_gas import \
    PreVerificationGasCalculator
from aa_gas_estimator.gas.verification_gas import \
    BinarySearchVerificationGas, OnChainVerificationGasSearch, \
    with_verification_gas_limit
from aa_gas_estimator.metrics.metrics import \
    REQUEST_TIME_calculatePreVerificationGas, \
    REQUEST_TIME_estimateCallGasLimit, \
    REQUEST_TIME_estimateUserOperationGas, \
    REQUEST_TIME_estimateVerificationGasLimit
from aa_gas_estimator.simulation.classifier import handle_failed_op
from aa_gas_estimator.simulation.entrypoint import get_entrypoint
from aa_gas_estimator.simulation.simulation_client import \
    SimulationCapabilities, SimulationClient
from aa_gas_estimator.typing import Address
from aa_gas_estimator.user_operation.models import ExecutionResult, \
    FailedSimulation, GasEstimate, VerificationGasResult
from aa_gas_estimator.user_operation.user_operation import UserOperation
from aa_gas_estimator.user_operation.user_operation_v7 import UserOperationV7


@dataclass
class EstimationParams:
    """Per request inputs. Capability flags left as None follow the chain
    configuration."""
    user_operation: UserOperation
    supports_state_override: bool | None = None
    supports_code_override: bool | None = None
    state_override_set: dict[str, Any] | None = None
    base_fee_per_gas: int | None = None
    verification_gas_bounds: tuple[int, int] | None = None
    call_gas_bounds: tuple[int, int] | None = None
    verification_gas_rounding: int | None = None
    call_gas_rounding: int | None = None
    max_continuation_rounds: int | None = None


class GasEstimator:
    simulation_client: SimulationClient
    pre_verification_gas_calculator: PreVerificationGasCalculator
    chain: ChainConfig
    verification_simulator_bytecode: str | None
    call_gas_simulator_bytecode: str | None

    def __init__(
        self,
        simulation_client: SimulationClient,
        pre_verification_gas_calculator: PreVerificationGasCalculator,
        chain: ChainConfig,
        verification_simulator_bytecode: str | None = None,
        call_gas_simulator_bytecode: str | None = None,
    ):
        self.simulation_client = simulation_client
        self.pre_verification_gas_calculator = pre_verification_gas_calculator
        self.chain = chain
        self.verification_simulator_bytecode = verification_simulator_bytecode
        self.call_gas_simulator_bytecode = call_gas_simulator_bytecode

    @property
    def entrypoint_version(self) -> str:
        return self.simulation_client.entrypoint.version

    @property
    def entrypoint_address(self) -> Address:
        return self.simulation_client.entrypoint.address

    def set_entrypoint_address(self, address: Address) -> None:
        self.simulation_client.entrypoint = get_entrypoint(
            self.entrypoint_version, address)

    async def estimate_user_operation_gas(
        self, params: EstimationParams
    ) -> GasEstimate:
        with REQUEST_TIME_estimateUserOperationGas.time():
            # fail on missing inputs before any branch reaches the node
            self.pre_verification_gas_calculator.strategy.check_base_fee(
                params.base_fee_per_gas)
            capabilities = self._get_capabilities(params)
            if not capabilities.supports_state_override:
                return await self._estimate_degraded(params, capabilities)

            # each branch copies the operation before touching its gas fields
            (
                verification_result,
                call_gas_limit,
                pre_verification_gas,
            ) = await asyncio.gather(
                self._estimate_verification_gas(params, capabilities),
                self._estimate_call_gas(params, capabilities),
                self._calculate_pre_verification_gas(params),
            )
            return self._build_gas_estimate(
                params.user_operation,
                verification_result,
                call_gas_limit,
                pre_verification_gas,
            )

    async def estimate_verification_gas_limit(
        self, params: EstimationParams
    ) -> VerificationGasResult:
        with REQUEST_TIME_estimateVerificationGasLimit.time():
            capabilities = self._get_capabilities(params)
            if not capabilities.supports_state_override:
                result = await self._simulate_with_fixed_gas(
                    params.user_operation,
                    capabilities,
                    params.state_override_set,
                )
                return self._degraded_verification_gas(result)
            return await self._estimate_verification_gas(params, capabilities)

    async def estimate_call_gas_limit(self, params: EstimationParams) -> int:
        with REQUEST_TIME_estimateCallGasLimit.time():
            return await self._estimate_call_gas(
                params, self._get_capabilities(params))

    async def calculate_pre_verification_gas(
        self, params: EstimationParams
    ) -> int:
        with REQUEST_TIME_calculatePreVerificationGas.time():
            return await self._calculate_pre_verification_gas(params)

    def _get_capabilities(
        self, params: EstimationParams
    ) -> SimulationCapabilities:
        supports_state_override = self.chain.supports_state_override
        if params.supports_state_override is not None:
            supports_state_override = params.supports_state_override
        supports_code_override = self.chain.supports_code_override
        if params.supports_code_override is not None:
            supports_code_override = params.supports_code_override
        return SimulationCapabilities(
            supports_state_override=supports_state_override,
            # code override is a state override
            supports_code_override=(
                supports_state_override and supports_code_override),
        )

    def _uses_on_chain_search(
        self,
        user_operation: UserOperation,
        capabilities: SimulationCapabilities,
        simulator_bytecode,
    ) -> bool:
        # the simulators need a deployed account
        return (
            capabilities.is_full
            and self.entrypoint_version == "v0.6"
            and simulator_bytecode is not None
            and not user_operation.init_code
        )

    async def _estimate_verification_gas(
        self,
        params: EstimationParams,
        capabilities: SimulationCapabilities,
    ) -> VerificationGasResult:
        if self._uses_on_chain_search(
            params.user_operation,
            capabilities,
            self.verification_simulator_bytecode,
        ):
            lower, upper = params.verification_gas_bounds or (
                INITIAL_VGL_LOWER_BOUND, INITIAL_VGL_UPPER_BOUND)
            on_chain_search = OnChainVerificationGasSearch(
                self.simulation_client,
                self.verification_simulator_bytecode,
                min_gas=lower,
                max_gas=upper,
                rounding=params.verification_gas_rounding or VGL_ROUNDING,
                max_rounds=(
                    params.max_continuation_rounds or MAX_CONTINUATION_ROUNDS),
            )
            return await on_chain_search.estimate(
                params.user_operation, params.state_override_set)

        lower, upper = params.verification_gas_bounds or (
            BINARY_SEARCH_LOWER_BOUND, BINARY_SEARCH_UPPER_BOUND)
        binary_search = BinarySearchVerificationGas(
            self.simulation_client, lower=lower, upper=upper)
        return await binary_search.estimate(
            params.user_operation, capabilities, params.state_override_set)

    async def _estimate_call_gas(
        self,
        params: EstimationParams,
        capabilities: SimulationCapabilities,
    ) -> int:
        if self._uses_on_chain_search(
            params.user_operation,
            capabilities,
            self.call_gas_simulator_bytecode,
        ):
            lower, upper = params.call_gas_bounds or (
                INITIAL_CGL_LOWER_BOUND, INITIAL_CGL_UPPER_BOUND)
            on_chain_search = OnChainCallGasSearch(
                self.simulation_client,
                self.call_gas_simulator_bytecode,
                min_gas=lower,
                max_gas=upper,
                rounding=params.call_gas_rounding or CGL_ROUNDING,
                max_rounds=(
                    params.max_continuation_rounds or MAX_CONTINUATION_ROUNDS),
            )
            return await on_chain_search.estimate(
                params.user_operation, params.state_override_set)

        result = await self._simulate_with_fixed_gas(
            params.user_operation, capabilities, params.state_override_set)
        return derive_call_gas_limit(result, MAX_FEE_PER_GAS_OVERRIDE_VALUE)

    async def _calculate_pre_verification_gas(
        self, params: EstimationParams
    ) -> int:
        return await self.pre_verification_gas_calculator.calculate(
            params.user_operation,
            self.entrypoint_address,
            params.base_fee_per_gas,
        )

    async def _simulate_with_fixed_gas(
        self,
        user_operation: UserOperation,
        capabilities: SimulationCapabilities,
        state_override_set: dict[str, Any] | None,
    ) -> ExecutionResult:
        """One simulation with fixed fees and generous gas limits, so
        verification and call gas can be read back from preOpGas and
        paid."""
        overrides = self.chain.degraded_mode_overrides
        fixed_user_operation = with_verification_gas_limit(
            user_operation,
            overrides.verification_gas_limit,
            pre_verification_gas=overrides.pre_verification_gas,
            call_gas_limit=overrides.call_gas_limit,
            max_fee_per_gas=MAX_FEE_PER_GAS_OVERRIDE_VALUE,
            max_priority_fee_per_gas=MAX_PRIORITY_FEE_PER_GAS_OVERRIDE_VALUE,
        )
        result = await self.simulation_client.simulate_handle_op(
            fixed_user_operation,
            capabilities=capabilities,
            state_override_set=state_override_set,
        )
        if isinstance(result, FailedSimulation):
            handle_failed_op(result.message())
        return result

    def _degraded_verification_gas(
        self, result: ExecutionResult
    ) -> VerificationGasResult:
        verification_gas_limit = result.pre_op_gas - \
            self.chain.degraded_mode_overrides.pre_verification_gas
        return VerificationGasResult(
            verification_gas_limit=verification_gas_limit,
            valid_after=result.valid_after,
            valid_until=result.valid_until,
        )

    async def _estimate_degraded(
        self,
        params: EstimationParams,
        capabilities: SimulationCapabilities,
    ) -> GasEstimate:
        logging.debug(
            f"Estimating without state overrides on chain {self.chain.name}")
        if self.simulation_client.requires_simulations_code:
            raise ConfigurationException(
                f"EntryPoint {self.entrypoint_version} can't be simulated "
                "without state override support"
            )
        result, pre_verification_gas = await asyncio.gather(
            self._simulate_with_fixed_gas(
                params.user_operation,
                capabilities,
                params.state_override_set,
            ),
            self._calculate_pre_verification_gas(params),
        )
        return self._build_gas_estimate(
            params.user_operation,
            self._degraded_verification_gas(result),
            derive_call_gas_limit(result, MAX_FEE_PER_GAS_OVERRIDE_VALUE),
            pre_verification_gas,
        )

    def _build_gas_estimate(
        self,
        user_operation: UserOperation,
        verification_result: VerificationGasResult,
        call_gas_limit: int,
        pre_verification_gas: int,
    ) -> GasEstimate:
        paymaster_verification_gas_limit = None
        paymaster_post_op_gas_limit = None
        if isinstance(user_operation, UserOperationV7):
            if user_operation.has_paymaster():
                paymaster_verification_gas_limit = \
                    verification_result.verification_gas_limit
                paymaster_post_op_gas_limit = \
                    verification_result.verification_gas_limit
            else:
                paymaster_verification_gas_limit = 0
                paymaster_post_op_gas_limit = 0

        return GasEstimate(
            verification_gas_limit=verification_result.verification_gas_limit,
            call_gas_limit=call_gas_limit,
            pre_verification_gas=pre_verification_gas,
            paymaster_verification_gas_limit=paymaster_verification_gas_limit,
            paymaster_post_op_gas_limit=paymaster_post_op_gas_limit,
            valid_after=verification_result.valid_after,
            valid_until=verification_result.valid_until,
        )

from dataclasses import dataclass
import logging
from typing import Any

from aa_gas_estimator.exceptions import ConfigurationException, \
    RpcRequestException, UnexpectedResponseException
from aa_gas_estimator.gas.constants import SIMULATION_SENDER_BALANCE, \
    ZERO_ADDRESS
from aa_gas_estimator.metrics.metrics import FAILED_SIMULATIONS, \
    SIMULATION_CALLS
from aa_gas_estimator.simulation.classifier import \
    decode_simulation_revert, extract_revert_data
from aa_gas_estimator.simulation.entrypoint import EntryPoint
from aa_gas_estimator.simulation.state_override import StateOverrideBuilder
from aa_gas_estimator.user_operation.models import FailedSimulation, \
    SimulationResult
from aa_gas_estimator.user_operation.user_operation import UserOperation
from aa_gas_estimator.utils.eth_client_utils import EthClient


@dataclass(frozen=True)
class SimulationCapabilities:
    supports_state_override: bool = True
    supports_code_override: bool = True

    @property
    def is_full(self) -> bool:
        return self.supports_state_override and self.supports_code_override


FULL_SIMULATION_CAPABILITIES = SimulationCapabilities()


class SimulationClient:
    eth_client: EthClient
    entrypoint: EntryPoint
    entrypoint_simulations_bytecode: str | None

    def __init__(
        self,
        eth_client: EthClient,
        entrypoint: EntryPoint,
        entrypoint_simulations_bytecode: str | None = None,
    ):
        self.eth_client = eth_client
        self.entrypoint = entrypoint
        self.entrypoint_simulations_bytecode = entrypoint_simulations_bytecode

    @property
    def requires_simulations_code(self) -> bool:
        # v0.7 EntryPoint has no simulateHandleOp of its own
        return self.entrypoint.version != "v0.6"

    async def simulate_handle_op(
        self,
        user_operation: UserOperation,
        target: str = ZERO_ADDRESS,
        target_call_data: bytes = b"",
        capabilities: SimulationCapabilities = FULL_SIMULATION_CAPABILITIES,
        state_override_set: dict[str, Any] | None = None,
        code_override: str | None = None,
    ) -> SimulationResult:
        call_data = self.entrypoint.encode_simulate_handle_op(
            user_operation, target, target_call_data)

        if code_override is None and capabilities.is_full:
            code_override = self.entrypoint_simulations_bytecode
        if code_override is None and self.requires_simulations_code:
            raise ConfigurationException(
                f"EntryPoint {self.entrypoint.version} simulation needs "
                "the EntryPointSimulations bytecode and code override support"
            )

        state_overrides = self.build_state_overrides(
            user_operation, capabilities, state_override_set, code_override)

        SIMULATION_CALLS.labels(self.entrypoint.version).inc()
        try:
            output = await self.eth_client.call(
                self.entrypoint.address, call_data, "latest", state_overrides)
        except RpcRequestException as excp:
            result = decode_simulation_revert(extract_revert_data(excp.error))
        else:
            result = self.entrypoint.decode_call_output(output)

        if isinstance(result, FailedSimulation):
            FAILED_SIMULATIONS.labels(self.entrypoint.version).inc()
            logging.debug(f"simulateHandleOp failed: {result.message()}")
        return result

    async def call_simulator(
        self,
        user_operation: UserOperation,
        call_data: str,
        code: str,
        state_override_set: dict[str, Any] | None = None,
    ) -> bytes:
        """Call a search simulator injected at the EntryPoint address and
        return its revert data. Simulators always revert."""
        state_overrides = self.build_state_overrides(
            user_operation,
            FULL_SIMULATION_CAPABILITIES,
            state_override_set,
            code,
        )
        SIMULATION_CALLS.labels(self.entrypoint.version).inc()
        try:
            output = await self.eth_client.call(
                self.entrypoint.address, call_data, "latest", state_overrides)
        except RpcRequestException as excp:
            return extract_revert_data(excp.error)
        raise UnexpectedResponseException(
            "Simulator call didn't revert!", "0x" + output.hex())

    def build_state_overrides(
        self,
        user_operation: UserOperation,
        capabilities: SimulationCapabilities,
        state_override_set: dict[str, Any] | None,
        code: str | None,
    ) -> dict[str, Any] | None:
        if not capabilities.supports_state_override:
            return None

        builder = StateOverrideBuilder(state_override_set)
        builder.override_balance(
            user_operation.sender_address, SIMULATION_SENDER_BALANCE)
        paymaster = user_operation.paymaster_address
        if paymaster is not None:
            builder.override_paymaster_deposit(
                self.entrypoint.address, paymaster)

        if capabilities.supports_code_override and code is not None:
            builder.override_code(self.entrypoint.address, code)
            return builder.build(forced_code_address=self.entrypoint.address)
        return builder.build()

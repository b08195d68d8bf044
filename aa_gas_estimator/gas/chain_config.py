from dataclasses import dataclass
from enum import Enum

from aa_gas_estimator.gas.constants import DEFAULT_DEGRADED_MODE_OVERRIDES, \
    DegradedModeOverrides
from aa_gas_estimator.simulation.entrypoint import ENTRYPOINT_V6_ADDRESS, \
    ENTRYPOINT_V7_ADDRESS
from aa_gas_estimator.typing import Address


class ChainStack(Enum):
    EVM = "evm"
    Optimism = "optimism"
    Arbitrum = "arbitrum"
    Mantle = "mantle"
    Scroll = "scroll"
    Morph = "morph"


@dataclass(frozen=True)
class ChainConfig:
    chain_id: int
    name: str
    stack: ChainStack = ChainStack.EVM
    supports_state_override: bool = True
    supports_code_override: bool = True
    degraded_mode_overrides: DegradedModeOverrides = \
        DEFAULT_DEGRADED_MODE_OVERRIDES
    entrypoint_v6: Address = ENTRYPOINT_V6_ADDRESS
    entrypoint_v7: Address = ENTRYPOINT_V7_ADDRESS

    def entrypoint_address(self, entrypoint_version: str) -> Address:
        if entrypoint_version == "v0.6":
            return self.entrypoint_v6
        return self.entrypoint_v7

from dataclasses import dataclass

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# sender balance used while simulating, high enough to never fail prefund
SIMULATION_SENDER_BALANCE = 0x314dc6448d9338c15b0a00000000

# host driven binary search
BINARY_SEARCH_LOWER_BOUND = 0
BINARY_SEARCH_UPPER_BOUND = 10_000_000
BINARY_SEARCH_CUTOFF = 20_000
BINARY_SEARCH_UPPER_BOUND_MULTIPLIER = 6

# on-chain iterative search simulators
INITIAL_VGL_LOWER_BOUND = 0
INITIAL_VGL_UPPER_BOUND = 30_000_000
VGL_ROUNDING = 1
INITIAL_CGL_LOWER_BOUND = 0
INITIAL_CGL_UPPER_BOUND = 30_000_000
CGL_ROUNDING = 1
MAX_CONTINUATION_ROUNDS = 30


@dataclass(frozen=True)
class GasOverheads:
    fixed: int = 21000
    per_user_op: int = 18300
    per_user_op_word: int = 4
    zero_byte: int = 4
    non_zero_byte: int = 16
    bundle_size: int = 1


DEFAULT_GAS_OVERHEADS = GasOverheads()

# degraded mode, for nodes without eth_call state override support
MAX_FEE_PER_GAS_OVERRIDE_VALUE = 1_000_000
MAX_PRIORITY_FEE_PER_GAS_OVERRIDE_VALUE = 1_000_000


@dataclass(frozen=True)
class DegradedModeOverrides:
    pre_verification_gas: int = 1_000_000
    verification_gas_limit: int = 10_000_000
    call_gas_limit: int = 20_000_000


DEFAULT_DEGRADED_MODE_OVERRIDES = DegradedModeOverrides()
SEI_DEGRADED_MODE_OVERRIDES = DegradedModeOverrides(
    pre_verification_gas=1_000_000,
    verification_gas_limit=2_000_000,
    call_gas_limit=5_000_000,
)
KAKAROT_DEGRADED_MODE_OVERRIDES = DegradedModeOverrides(
    pre_verification_gas=1_000_000,
    verification_gas_limit=2_000_000,
    call_gas_limit=2_000_000,
)

# l1 fee oracles
OPTIMISM_GAS_PRICE_ORACLE_ADDRESS = "0x420000000000000000000000000000000000000F"
ARBITRUM_NODE_INTERFACE_ADDRESS = "0x00000000000000000000000000000000000000C8"
MANTLE_BVM_GAS_PRICE_ORACLE_ADDRESS = "0x420000000000000000000000000000000000000F"
SCROLL_L1_GAS_PRICE_ORACLE_ADDRESS = "0x5300000000000000000000000000000000000002"
MORPH_L1_GAS_PRICE_ORACLE_ADDRESS = "0x530000000000000000000000000000000000000f"
MANTLE_L1_ROLL_UP_FEE_DIVISION_FACTOR = 1_000_000_000_000

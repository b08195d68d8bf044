import dataclasses
import logging

from aa_gas_estimator.gas.chain_config import ChainConfig, ChainStack
from aa_gas_estimator.gas.constants import KAKAROT_DEGRADED_MODE_OVERRIDES, \
    MORPH_L1_GAS_PRICE_ORACLE_ADDRESS, SCROLL_L1_GAS_PRICE_ORACLE_ADDRESS, \
    SEI_DEGRADED_MODE_OVERRIDES
from aa_gas_estimator.gas.gas_estimator import GasEstimator
from aa_gas_estimator.gas.pre_verification_gas import ArbitrumL1Fee, \
    L1FeeStrategy, MantleL1Fee, NoL1Fee, OptimismL1Fee, OracleL1Fee, \
    PreVerificationGasCalculator
from aa_gas_estimator.simulation.entrypoint import get_entrypoint
from aa_gas_estimator.simulation.simulation_client import SimulationClient
from aa_gas_estimator.utils.eth_client_utils import EthClient

__all__ = [
    "ChainConfig",
    "ChainStack",
    "SUPPORTED_CHAINS",
    "create_gas_estimator",
    "get_chain_config",
    "get_l1_fee_strategy",
]


def _chains(*chains: ChainConfig) -> dict[int, ChainConfig]:
    return {chain.chain_id: chain for chain in chains}


SUPPORTED_CHAINS: dict[int, ChainConfig] = _chains(
    ChainConfig(1, "Ethereum Mainnet"),
    ChainConfig(11155111, "Ethereum Sepolia"),
    ChainConfig(137, "Polygon Mainnet"),
    ChainConfig(80002, "Polygon Amoy"),
    ChainConfig(10, "Optimism Mainnet", ChainStack.Optimism),
    ChainConfig(11155420, "Optimism Sepolia", ChainStack.Optimism),
    ChainConfig(8453, "Base Mainnet", ChainStack.Optimism),
    ChainConfig(84532, "Base Sepolia", ChainStack.Optimism),
    ChainConfig(480, "World Chain", ChainStack.Optimism),
    ChainConfig(4801, "World Chain Sepolia", ChainStack.Optimism),
    ChainConfig(204, "opBNB Mainnet", ChainStack.Optimism),
    ChainConfig(5611, "opBNB Testnet", ChainStack.Optimism),
    ChainConfig(42161, "Arbitrum One", ChainStack.Arbitrum),
    ChainConfig(421614, "Arbitrum Sepolia", ChainStack.Arbitrum),
    ChainConfig(42170, "Arbitrum Nova", ChainStack.Arbitrum),
    ChainConfig(5000, "Mantle Mainnet", ChainStack.Mantle),
    ChainConfig(5003, "Mantle Sepolia", ChainStack.Mantle),
    ChainConfig(534352, "Scroll Mainnet", ChainStack.Scroll),
    ChainConfig(534351, "Scroll Sepolia", ChainStack.Scroll),
    ChainConfig(2818, "Morph Mainnet", ChainStack.Morph),
    ChainConfig(2810, "Morph Holesky", ChainStack.Morph),
    ChainConfig(
        1329,
        "Sei Mainnet",
        supports_state_override=False,
        supports_code_override=False,
        degraded_mode_overrides=SEI_DEGRADED_MODE_OVERRIDES,
    ),
    ChainConfig(
        1328,
        "Sei Atlantic 2 Testnet",
        supports_state_override=False,
        supports_code_override=False,
        degraded_mode_overrides=SEI_DEGRADED_MODE_OVERRIDES,
    ),
    ChainConfig(
        920637907288165,
        "Kakarot Starknet Sepolia",
        supports_state_override=False,
        supports_code_override=False,
        degraded_mode_overrides=KAKAROT_DEGRADED_MODE_OVERRIDES,
    ),
)


def get_chain_config(chain_id: int) -> ChainConfig:
    if chain_id in SUPPORTED_CHAINS:
        return SUPPORTED_CHAINS[chain_id]
    logging.warning(
        f"Chain id {chain_id} is not in the registry, using generic EVM "
        "settings"
    )
    return ChainConfig(chain_id, f"EVM chain {chain_id}")


def get_l1_fee_strategy(stack: ChainStack) -> L1FeeStrategy:
    match stack:
        case ChainStack.Optimism:
            return OptimismL1Fee()
        case ChainStack.Arbitrum:
            return ArbitrumL1Fee()
        case ChainStack.Mantle:
            return MantleL1Fee()
        case ChainStack.Scroll:
            return OracleL1Fee(SCROLL_L1_GAS_PRICE_ORACLE_ADDRESS)
        case ChainStack.Morph:
            return OracleL1Fee(MORPH_L1_GAS_PRICE_ORACLE_ADDRESS)
        case _:
            return NoL1Fee()


def create_gas_estimator(
    chain_id: int,
    eth_client: EthClient,
    entrypoint_version: str = "v0.6",
    chain: dict | None = None,
    entrypoint_simulations_bytecode: str | None = None,
    verification_simulator_bytecode: str | None = None,
    call_gas_simulator_bytecode: str | None = None,
) -> GasEstimator:
    """Build an estimator for `chain_id`.

    `chain` holds ChainConfig fields that replace the registry values,
    e.g. {"supports_code_override": False}.
    """
    chain_config = get_chain_config(chain_id)
    if chain:
        chain_config = dataclasses.replace(chain_config, **chain)

    entrypoint = get_entrypoint(
        entrypoint_version,
        chain_config.entrypoint_address(entrypoint_version),
    )
    simulation_client = SimulationClient(
        eth_client, entrypoint, entrypoint_simulations_bytecode)
    pre_verification_gas_calculator = PreVerificationGasCalculator(
        get_l1_fee_strategy(chain_config.stack), eth_client)

    return GasEstimator(
        simulation_client,
        pre_verification_gas_calculator,
        chain_config,
        verification_simulator_bytecode,
        call_gas_simulator_bytecode,
    )

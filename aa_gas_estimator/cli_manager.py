import json
import logging
import os
import re
import sys
from argparse import ArgumentParser, ArgumentTypeError, Namespace
from dataclasses import dataclass
from importlib.metadata import version
from typing import Any

from aa_gas_estimator.exceptions import ConfigurationException
from aa_gas_estimator.utils.eth_client_utils import \
    send_rpc_request_to_eth_client
from aa_gas_estimator.utils.load_bytecode import load_bytecode

from .typing import Address

__version__ = version("aa_gas_estimator")


@dataclass()
class InitData:
    ethereum_node_urls: list[str]
    chain_id: int
    entrypoint_version: str
    entrypoint: Address | None
    user_operation: dict[str, Any]
    state_override_set: dict[str, Any] | None
    base_fee_per_gas: int | None
    supports_state_override: bool | None
    supports_code_override: bool | None
    entrypoint_simulations_bytecode: str | None
    verification_simulator_bytecode: str | None
    call_gas_simulator_bytecode: str | None
    is_metrics: bool
    metrics_port: int


def address(ep: str):
    address_pattern = "^0x[0-9,a-f,A-F]{40}$"
    if not isinstance(ep, str) or re.match(address_pattern, ep) is None:
        raise ArgumentTypeError(f"Wrong address format : {ep}")
    return ep


def unsigned_int(value):
    ivalue = int(value, 0) if isinstance(value, str) else int(value)
    if ivalue < 0:
        raise ArgumentTypeError(
                "%s is an invalid unsigned int value" % value)
    return ivalue


def json_object(value: str):
    try:
        decoded = json.loads(value)
    except json.JSONDecodeError:
        raise ArgumentTypeError(f"Invalid json : {value}")
    if not isinstance(decoded, dict):
        raise ArgumentTypeError(f"Expected a json object : {value}")
    return decoded


def _get_env_or_default(env_var, default, value_type):
    """
    Helper function to get the value from an environment variable or return
    the default value. Supports single values or lists (for nargs="+"
    arguments).
    """
    value = os.getenv(env_var, None)
    if value is not None:
        if value_type == list:
            return value.split(",")
        if value_type == bool:
            return value.lower() in ("1", "true", "yes")
        return value_type(value)
    return default


def initialize_argument_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="aa_gas_estimator",
        description="ERC-4337 UserOperation gas estimator",
    )

    parser.add_argument(
        "--ethereum_node_url",
        type=str,
        help="Eth Client Http Url - defaults to http://0.0.0.0:8545",
        nargs="+",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_ETHEREUM_NODE_URL",
            ["http://0.0.0.0:8545"],
            list,
        ),
    )

    parser.add_argument(
        "--chain_id",
        type=unsigned_int,
        help="chain id - defaults to the node's chain id",
        nargs="?",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_CHAIN_ID", None, unsigned_int),
    )

    parser.add_argument(
        "--entrypoint_version",
        type=str,
        choices=["v0.6", "v0.7"],
        help="EntryPoint version - defaults to v0.6",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_ENTRYPOINT_VERSION", "v0.6", str),
    )

    parser.add_argument(
        "--entrypoint",
        type=address,
        help="EntryPoint address - defaults to the canonical deployment",
        nargs="?",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_ENTRYPOINT", None, address),
    )

    parser.add_argument(
        "--user_operation",
        type=json_object,
        help="UserOperation to estimate, as a json object",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_USER_OPERATION", None, json_object),
    )

    parser.add_argument(
        "--state_override",
        type=json_object,
        help="eth_call state override set, as a json object",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_STATE_OVERRIDE", None, json_object),
    )

    parser.add_argument(
        "--base_fee",
        type=unsigned_int,
        help="current base fee per gas, required on Optimism chains",
        nargs="?",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_BASE_FEE", None, unsigned_int),
    )

    parser.add_argument(
        "--no_state_override",
        help="the node doesn't support eth_call state overrides",
        nargs="?",
        const=True,
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_NO_STATE_OVERRIDE", False, bool),
    )

    parser.add_argument(
        "--no_code_override",
        help="the node doesn't support code in eth_call state overrides",
        nargs="?",
        const=True,
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_NO_CODE_OVERRIDE", False, bool),
    )

    parser.add_argument(
        "--entrypoint_simulations_bytecode",
        type=str,
        help="path to the EntryPointSimulations compiled artifact",
        nargs="?",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_ENTRYPOINT_SIMULATIONS_BYTECODE", None, str),
    )

    parser.add_argument(
        "--verification_simulator_bytecode",
        type=str,
        help="path to the verification gas simulator compiled artifact",
        nargs="?",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_VERIFICATION_SIMULATOR_BYTECODE", None, str),
    )

    parser.add_argument(
        "--call_gas_simulator_bytecode",
        type=str,
        help="path to the call gas simulator compiled artifact",
        nargs="?",
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_CALL_GAS_SIMULATOR_BYTECODE", None, str),
    )

    parser.add_argument(
        "--metrics",
        help="enable metrics collection",
        nargs="?",
        const=True,
        default=_get_env_or_default("AA_GAS_ESTIMATOR_METRICS", False, bool),
    )

    parser.add_argument(
        "--metrics_port",
        type=unsigned_int,
        help="metrics server port - defaults to 8000",
        nargs="?",
        const=8000,
        default=_get_env_or_default(
            "AA_GAS_ESTIMATOR_METRICS_PORT", 8000, unsigned_int),
    )

    parser.add_argument(
        "--verbose",
        help="show debug log",
        nargs="?",
        const=True,
        default=_get_env_or_default("AA_GAS_ESTIMATOR_VERBOSE", False, bool),
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s " + "version " + __version__,
    )

    return parser


async def parse_args(cmd_args: list[str]) -> InitData:
    argument_parser: ArgumentParser = initialize_argument_parser()
    args = argument_parser.parse_args(cmd_args)
    if args.user_operation is None:
        argument_parser.error(
            "You must specify --user_operation or set the "
            "AA_GAS_ESTIMATOR_USER_OPERATION environment variable."
        )
    init_data = await get_init_data(args)
    return init_data


def init_logging(args: Namespace):
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s.%(msecs)03d %(levelname)s %(message)s",
        datefmt="%b %d %H:%M:%S",
    )


async def check_valid_ethereum_rpc_and_get_chain_id(
    ethereum_node_urls: list[str],
) -> int:
    try:
        chain_id_hex = await send_rpc_request_to_eth_client(
            ethereum_node_urls,
            "eth_chainId",
            [],
        )
    except ValueError:
        logging.critical(
            f"Error when connecting to Eth node {ethereum_node_urls}")
        sys.exit(1)

    if "result" not in chain_id_hex:
        logging.critical(f"Invalid Eth node {ethereum_node_urls}")
        sys.exit(1)
    return int(chain_id_hex["result"], 16)


def load_optional_bytecode(bytecode_file: str | None) -> str | None:
    if bytecode_file is None:
        return None
    try:
        return load_bytecode(bytecode_file)
    except ConfigurationException as excp:
        logging.critical(excp.message)
        sys.exit(1)


async def get_init_data(args: Namespace) -> InitData:
    init_logging(args)

    node_chain_id = await check_valid_ethereum_rpc_and_get_chain_id(
        args.ethereum_node_url)
    if args.chain_id is None:
        args.chain_id = node_chain_id
    elif args.chain_id != node_chain_id:
        logging.critical(
            f"Invalid chain id {args.chain_id} with Eth node "
            f"{args.ethereum_node_url}"
        )
        sys.exit(1)

    ret = InitData(
        ethereum_node_urls=args.ethereum_node_url,
        chain_id=args.chain_id,
        entrypoint_version=args.entrypoint_version,
        entrypoint=args.entrypoint,
        user_operation=args.user_operation,
        state_override_set=args.state_override,
        base_fee_per_gas=args.base_fee,
        # unset flags follow the chain registry
        supports_state_override=False if args.no_state_override else None,
        supports_code_override=False if args.no_code_override else None,
        entrypoint_simulations_bytecode=load_optional_bytecode(
            args.entrypoint_simulations_bytecode),
        verification_simulator_bytecode=load_optional_bytecode(
            args.verification_simulator_bytecode),
        call_gas_simulator_bytecode=load_optional_bytecode(
            args.call_gas_simulator_bytecode),
        is_metrics=args.metrics,
        metrics_port=args.metrics_port,
    )

    logging.info(f"aa_gas_estimator version {__version__}")
    return ret

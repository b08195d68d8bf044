import json
from argparse import ArgumentTypeError

import pytest

from aa_gas_estimator.cli_manager import address, initialize_argument_parser, \
    json_object, unsigned_int
from aa_gas_estimator.exceptions import ConfigurationException
from aa_gas_estimator.utils.load_bytecode import load_bytecode

ENTRYPOINT = "0x5FF137D4b0FDCD49DcA30c7CF57E578a026d2789"


def test_parser_defaults():
    args = initialize_argument_parser().parse_args([])
    assert args.ethereum_node_url == ["http://0.0.0.0:8545"]
    assert args.chain_id is None
    assert args.entrypoint_version == "v0.6"
    assert args.entrypoint is None
    assert args.user_operation is None
    assert args.base_fee is None
    assert not args.no_state_override
    assert not args.no_code_override
    assert args.metrics_port == 8000


def test_parser_arguments():
    args = initialize_argument_parser().parse_args([
        "--ethereum_node_url", "http://a:8545", "http://b:8545",
        "--chain_id", "10",
        "--entrypoint_version", "v0.7",
        "--entrypoint", ENTRYPOINT,
        "--user_operation", json.dumps({"sender": ENTRYPOINT}),
        "--base_fee", "0x3b9aca00",
        "--no_state_override",
    ])
    assert args.ethereum_node_url == ["http://a:8545", "http://b:8545"]
    assert args.chain_id == 10
    assert args.entrypoint_version == "v0.7"
    assert args.entrypoint == ENTRYPOINT
    assert args.user_operation == {"sender": ENTRYPOINT}
    assert args.base_fee == 1_000_000_000
    assert args.no_state_override is True


def test_parser_env_fallback(monkeypatch):
    monkeypatch.setenv(
        "AA_GAS_ESTIMATOR_ETHEREUM_NODE_URL", "http://a:8545,http://b:8545")
    monkeypatch.setenv("AA_GAS_ESTIMATOR_CHAIN_ID", "42161")
    monkeypatch.setenv("AA_GAS_ESTIMATOR_NO_CODE_OVERRIDE", "true")
    monkeypatch.setenv("AA_GAS_ESTIMATOR_STATE_OVERRIDE", '{"0x01": {}}')

    args = initialize_argument_parser().parse_args([])
    assert args.ethereum_node_url == ["http://a:8545", "http://b:8545"]
    assert args.chain_id == 42161
    assert args.no_code_override is True
    assert args.state_override == {"0x01": {}}


def test_parser_rejects_invalid_address():
    with pytest.raises(SystemExit):
        initialize_argument_parser().parse_args(["--entrypoint", "0x1234"])


def test_parser_rejects_unknown_entrypoint_version():
    with pytest.raises(SystemExit):
        initialize_argument_parser().parse_args(
            ["--entrypoint_version", "v0.5"])


def test_argument_types():
    assert address(ENTRYPOINT) == ENTRYPOINT
    assert unsigned_int("0x10") == 16
    assert unsigned_int("16") == 16
    with pytest.raises(ArgumentTypeError):
        unsigned_int("-1")
    assert json_object('{"a": 1}') == {"a": 1}
    with pytest.raises(ArgumentTypeError):
        json_object("[1, 2]")
    with pytest.raises(ArgumentTypeError):
        json_object("{not json")


def test_load_bytecode_from_artifact(tmp_path):
    artifact = tmp_path / "Simulator.json"
    artifact.write_text(json.dumps({
        "bytecode": "0x6000",
        "deployedBytecode": "0x6001",
    }))
    assert load_bytecode(str(artifact)) == "0x6001"

    artifact.write_text(json.dumps({"bytecode": {"object": "6002"}}))
    assert load_bytecode(str(artifact)) == "0x6002"


def test_load_bytecode_from_hex_file(tmp_path):
    hex_file = tmp_path / "simulator.hex"
    hex_file.write_text("6003\n")
    assert load_bytecode(str(hex_file)) == "0x6003"


def test_load_bytecode_missing_file(tmp_path):
    with pytest.raises(ConfigurationException):
        load_bytecode(str(tmp_path / "missing.json"))

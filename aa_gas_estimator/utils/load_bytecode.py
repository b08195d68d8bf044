import json
import os

from aa_gas_estimator.exceptions import ConfigurationException


def load_bytecode(bytecode_file: str) -> str:
    """Read the deployed bytecode out of a compiled contract artifact.

    Accepts either a json artifact with a "bytecode" (or
    "deployedBytecode") key or a plain file holding the hex string.
    """
    if not os.path.isfile(bytecode_file):
        raise ConfigurationException(
            f"Bytecode file not found: {bytecode_file}")

    with open(bytecode_file) as byte_code_file:
        content = byte_code_file.read().strip()

    if content.startswith("{"):
        data = json.loads(content)
        if "deployedBytecode" in data:
            byte_code = data["deployedBytecode"]
        elif "bytecode" in data:
            byte_code = data["bytecode"]
        else:
            raise ConfigurationException(
                f"No bytecode key in artifact: {bytecode_file}")
        # hardhat/foundry artifacts may nest the hex under "object"
        if isinstance(byte_code, dict):
            byte_code = byte_code["object"]
    else:
        byte_code = content

    if not byte_code.startswith("0x"):
        byte_code = "0x" + byte_code
    return byte_code

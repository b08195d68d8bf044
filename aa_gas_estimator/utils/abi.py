from dataclasses import dataclass
from functools import cached_property
from typing import Any

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector


@dataclass(frozen=True)
class ContractFunction:
    name: str
    input_types: tuple[str, ...]
    output_types: tuple[str, ...] = ()

    @cached_property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @cached_property
    def selector(self) -> str:
        return "0x" + function_signature_to_4byte_selector(
            self.signature).hex()

    def encode_call(self, args: list[Any]) -> str:
        params = encode(list(self.input_types), args)
        return self.selector + params.hex()

    def decode_output(self, data: bytes) -> tuple:
        return decode(list(self.output_types), data)


@dataclass(frozen=True)
class ContractError:
    name: str
    input_types: tuple[str, ...]

    @cached_property
    def signature(self) -> str:
        return f"{self.name}({','.join(self.input_types)})"

    @cached_property
    def selector(self) -> str:
        return "0x" + function_signature_to_4byte_selector(
            self.signature).hex()

    def matches(self, revert_data: bytes) -> bool:
        return "0x" + revert_data[:4].hex() == self.selector

    def decode(self, revert_data: bytes) -> tuple:
        return decode(list(self.input_types), revert_data[4:])

    def encode(self, args: list[Any]) -> bytes:
        return bytes.fromhex(self.selector[2:]) + encode(
            list(self.input_types), args)


ERROR_STRING = ContractError("Error", ("string",))
PANIC = ContractError("Panic", ("uint256",))

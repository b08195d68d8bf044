from abc import ABC, abstractmethod
import dataclasses
import re
from typing import Any, Self

from aa_gas_estimator.exceptions import \
        ValidationException, ValidationExceptionCode
from aa_gas_estimator.typing import Address


class UserOperation(ABC):
    sender_address: Address
    nonce: int
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    signature: bytes
    paymaster_address: Address | None

    @classmethod
    @abstractmethod
    def from_json(cls, jsonRequestDict: dict[str, Any]) -> Self:
        pass

    @abstractmethod
    def get_user_operation_json(self) -> dict[str, Any]:
        pass

    @abstractmethod
    def to_list(self) -> list[Any]:
        pass

    @abstractmethod
    def has_paymaster(self) -> bool:
        pass

    @abstractmethod
    def get_user_operation_hash(
            self, entrypoint_addr: str, chain_id: int) -> str:
        pass

    @abstractmethod
    def pack_for_pre_verification_gas(self) -> bytes:
        pass

    @abstractmethod
    def encode_handle_ops(self, beneficiary: str) -> str:
        pass

    def with_gas(self, **changes: int) -> Self:
        """A copy with the given gas/fee fields replaced."""
        return dataclasses.replace(self, **changes)  # type: ignore


def verify_and_get_address(field_name: str, value: Address | None) -> Address:
    address_pattern = "^0x[0-9,a-f,A-F]{40}$"
    if isinstance(value, str) and re.match(address_pattern, value) is not None:
        return value
    else:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid address value : {value} in field {field_name}",
        )


def verify_and_get_uint(field_name: str, value: str | int | None) -> int:
    if value is None:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid uint hex value in field {field_name}",
        )

    if isinstance(value, int) and not isinstance(value, bool):
        if value < 0:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Invalid uint value : {value} in field {field_name}",
            )
        return value
    if value == "0x":
        return 0
    elif isinstance(value, str) and value[:2] == "0x":
        try:
            return int(value, 16)
        except ValueError:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Invalid uint hex value : {value} in field {field_name}",
            )
    else:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid uint hex value : {value} in field {field_name}",
        )


def verify_and_get_bytes(field_name: str, value: str | None) -> bytes:
    if value is None:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid bytes hex value in field {field_name}",
        )

    if isinstance(value, str) and value[:2] == "0x":
        try:
            return bytes.fromhex(value[2:])
        except ValueError:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"Invalid bytes hex value : {value} in field {field_name}",
            )
    else:
        raise ValidationException(
            ValidationExceptionCode.InvalidFields,
            f"Invalid bytes hex value : {value} in field {field_name}",
        )


def verify_fields_exist(
    jsonRequestDict: dict[str, Any], field_list: list[str]
) -> None:
    for field in field_list:
        if field not in jsonRequestDict:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                f"UserOperation missing {field} field",
            )

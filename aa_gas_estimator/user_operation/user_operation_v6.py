from dataclasses import dataclass
from typing import Any

from eth_abi import encode
from eth_utils import keccak

from aa_gas_estimator.exceptions import \
    ValidationException, ValidationExceptionCode
from aa_gas_estimator.typing import Address
from aa_gas_estimator.utils.abi import ContractFunction
from .user_operation import UserOperation, verify_fields_exist, \
    verify_and_get_uint, verify_and_get_bytes, verify_and_get_address

USER_OPERATION_V6_TYPE = (
    "(address,uint256,bytes,bytes,uint256,uint256,uint256,uint256,uint256,bytes,bytes)"
)
HANDLE_OPS_V6 = ContractFunction(
    "handleOps", (USER_OPERATION_V6_TYPE + "[]", "address"))

USER_OPERATION_V6_FIELDS = [
    "sender",
    "nonce",
    "initCode",
    "callData",
    "callGasLimit",
    "verificationGasLimit",
    "preVerificationGas",
    "maxFeePerGas",
    "maxPriorityFeePerGas",
    "paymasterAndData",
    "signature",
]


@dataclass(frozen=True)
class UserOperationV6(UserOperation):
    sender_address: Address
    nonce: int
    init_code: bytes
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster_and_data: bytes
    signature: bytes

    @classmethod
    def from_json(cls, jsonRequestDict: dict[str, Any]) -> "UserOperationV6":
        if len(jsonRequestDict) != 11:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid UserOperation",
            )
        verify_fields_exist(jsonRequestDict, USER_OPERATION_V6_FIELDS)

        return cls(
            sender_address=verify_and_get_address(
                "sender", jsonRequestDict["sender"]),
            nonce=verify_and_get_uint(
                "nonce", jsonRequestDict["nonce"]),
            init_code=verify_and_get_bytes(
                "initCode", jsonRequestDict["initCode"]),
            call_data=verify_and_get_bytes(
                "callData", jsonRequestDict["callData"]),
            call_gas_limit=verify_and_get_uint(
                "callGasLimit", jsonRequestDict["callGasLimit"]),
            verification_gas_limit=verify_and_get_uint(
                "verificationGasLimit",
                jsonRequestDict["verificationGasLimit"]),
            pre_verification_gas=verify_and_get_uint(
                "preVerificationGas", jsonRequestDict["preVerificationGas"]),
            max_fee_per_gas=verify_and_get_uint(
                "maxFeePerGas", jsonRequestDict["maxFeePerGas"]),
            max_priority_fee_per_gas=verify_and_get_uint(
                "maxPriorityFeePerGas",
                jsonRequestDict["maxPriorityFeePerGas"]),
            paymaster_and_data=verify_and_get_bytes(
                "paymasterAndData", jsonRequestDict["paymasterAndData"]),
            signature=verify_and_get_bytes(
                "signature", jsonRequestDict["signature"]),
        )

    def get_user_operation_json(self) -> dict[str, Any]:
        return {
            "sender": self.sender_address,
            "nonce": hex(self.nonce),
            "initCode": "0x" + self.init_code.hex(),
            "callData": "0x" + self.call_data.hex(),
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "paymasterAndData": "0x" + self.paymaster_and_data.hex(),
            "signature": "0x" + self.signature.hex(),
        }

    def to_list(self) -> list[Any]:
        return [
            self.sender_address.lower(),
            self.nonce,
            self.init_code,
            self.call_data,
            self.call_gas_limit,
            self.verification_gas_limit,
            self.pre_verification_gas,
            self.max_fee_per_gas,
            self.max_priority_fee_per_gas,
            self.paymaster_and_data,
            self.signature,
        ]

    def has_paymaster(self) -> bool:
        return len(self.paymaster_and_data) >= 20

    @property
    def paymaster_address(self) -> Address | None:
        if not self.has_paymaster():
            return None
        return Address("0x" + self.paymaster_and_data[:20].hex())

    def get_user_operation_hash(
            self, entrypoint_addr: str, chain_id: int) -> str:
        return get_user_operation_hash(
            self.to_list(), entrypoint_addr, chain_id)

    def pack_for_pre_verification_gas(self) -> bytes:
        user_operation_list = self.to_list()
        user_operation_list[10] = keccak(self.signature)
        return pack_user_operation(user_operation_list, for_signature=False)

    def encode_handle_ops(self, beneficiary: str) -> str:
        return HANDLE_OPS_V6.encode_call(
            [[self.to_list()], beneficiary.lower()])


def get_user_operation_hash(
    user_operation_list: list, entrypoint_addr: str, chain_id: int
) -> str:
    packed_user_operation = keccak(
        pack_user_operation(user_operation_list)
    )

    encoded_user_operation_hash = encode(
        ["(bytes32,address,uint256)"],
        [[packed_user_operation, entrypoint_addr.lower(), chain_id]],
    )
    user_operation_hash = "0x" + keccak(encoded_user_operation_hash).hex()
    return user_operation_hash


def pack_user_operation(
    user_operation_list: list, for_signature: bool = True
) -> bytes:
    if for_signature:
        user_operation_list = list(user_operation_list)
        user_operation_list[2] = keccak(user_operation_list[2])
        user_operation_list[3] = keccak(user_operation_list[3])
        user_operation_list[9] = keccak(user_operation_list[9])
        user_operation_list_without_signature = user_operation_list[:-1]

        packed_user_operation = encode(
            [
                "address",
                "uint256",
                "bytes32",
                "bytes32",
                "uint256",
                "uint256",
                "uint256",
                "uint256",
                "uint256",
                "bytes32",
            ],
            user_operation_list_without_signature,
        )
    else:
        packed_user_operation = encode(
            [
                "address",
                "uint256",
                "bytes",
                "bytes",
                "uint256",
                "uint256",
                "uint256",
                "uint256",
                "uint256",
                "bytes",
                "bytes",
            ],
            user_operation_list,
        )
    return packed_user_operation

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

PACKED_USER_OPERATION_TYPE = (
    "(address,uint256,bytes,bytes,bytes32,uint256,bytes32,bytes,bytes)"
)
HANDLE_OPS_V7 = ContractFunction(
    "handleOps", (PACKED_USER_OPERATION_TYPE + "[]", "address"))

REQUIRED_FIELDS = [
    "sender",
    "nonce",
    "callData",
    "callGasLimit",
    "verificationGasLimit",
    "preVerificationGas",
    "maxFeePerGas",
    "maxPriorityFeePerGas",
    "signature",
]


@dataclass(frozen=True)
class UserOperationV7(UserOperation):
    sender_address: Address
    nonce: int
    factory: Address | None
    factory_data: bytes | None
    call_data: bytes
    call_gas_limit: int
    verification_gas_limit: int
    pre_verification_gas: int
    max_fee_per_gas: int
    max_priority_fee_per_gas: int
    paymaster: Address | None
    paymaster_verification_gas_limit: int | None
    paymaster_post_op_gas_limit: int | None
    paymaster_data: bytes | None
    signature: bytes

    @classmethod
    def from_json(cls, jsonRequestDict: dict[str, Any]) -> "UserOperationV7":
        verify_fields_exist(jsonRequestDict, REQUIRED_FIELDS)

        factory = jsonRequestDict.get("factory")
        factory_data = jsonRequestDict.get("factoryData")
        if factory is not None:
            factory = verify_and_get_address("factory", factory)
            if factory_data is not None:
                factory_data = verify_and_get_bytes(
                    "factoryData", factory_data)
        elif factory_data is not None:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                'Invalid UserOperation, '
                '"factoryData" has to be null if "factory" is null',
            )

        paymaster = jsonRequestDict.get("paymaster")
        paymaster_verification_gas_limit = jsonRequestDict.get(
                "paymasterVerificationGasLimit")
        paymaster_post_op_gas_limit = jsonRequestDict.get(
                "paymasterPostOpGasLimit")
        paymaster_data = jsonRequestDict.get("paymasterData")
        if paymaster is not None:
            paymaster = verify_and_get_address("paymaster", paymaster)
            # limits are what this package estimates, so they may be omitted
            paymaster_verification_gas_limit = verify_and_get_uint(
                "paymasterVerificationGasLimit",
                paymaster_verification_gas_limit or "0x")
            paymaster_post_op_gas_limit = verify_and_get_uint(
                "paymasterPostOpGasLimit",
                paymaster_post_op_gas_limit or "0x")
            paymaster_data = verify_and_get_bytes(
                "paymasterData", paymaster_data or "0x")
        elif (
            paymaster_verification_gas_limit is None and
            paymaster_post_op_gas_limit is None and
            paymaster_data is None
        ):
            paymaster_verification_gas_limit = None
            paymaster_post_op_gas_limit = None
        else:
            raise ValidationException(
                ValidationExceptionCode.InvalidFields,
                "Invalid UserOperation, "
                '"paymasterVerificationGasLimit", "paymasterPostOpGasLimit" '
                'and "paymasterData" have to be null if "paymaster" is null',
            )

        return cls(
            sender_address=verify_and_get_address(
                "sender", jsonRequestDict["sender"]),
            nonce=verify_and_get_uint("nonce", jsonRequestDict["nonce"]),
            factory=factory,
            factory_data=factory_data,
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
            paymaster=paymaster,
            paymaster_verification_gas_limit=paymaster_verification_gas_limit,
            paymaster_post_op_gas_limit=paymaster_post_op_gas_limit,
            paymaster_data=paymaster_data,
            signature=verify_and_get_bytes(
                "signature", jsonRequestDict["signature"]),
        )

    def get_user_operation_json(self) -> dict[str, Any]:
        return {
            "sender": self.sender_address,
            "nonce": hex(self.nonce),
            "factory": self.factory,
            "factoryData":
            None if self.factory_data is None
            else "0x" + self.factory_data.hex(),
            "callData": "0x" + self.call_data.hex(),
            "callGasLimit": hex(self.call_gas_limit),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "preVerificationGas": hex(self.pre_verification_gas),
            "maxFeePerGas": hex(self.max_fee_per_gas),
            "maxPriorityFeePerGas": hex(self.max_priority_fee_per_gas),
            "paymaster": self.paymaster,
            "paymasterVerificationGasLimit":
            None if self.paymaster_verification_gas_limit is None
            else hex(self.paymaster_verification_gas_limit),
            "paymasterPostOpGasLimit":
            None if self.paymaster_post_op_gas_limit is None
            else hex(self.paymaster_post_op_gas_limit),
            "paymasterData":
            None if self.paymaster_data is None
            else "0x" + self.paymaster_data.hex(),
            "signature": "0x" + self.signature.hex(),
        }

    def to_list(self) -> list[Any]:
        if self.factory is None:
            init_code = bytes(0)
        elif self.factory_data is None:
            init_code = bytes.fromhex(self.factory[2:])
        else:
            init_code = bytes.fromhex(self.factory[2:]) + self.factory_data

        account_gas_limits = (
            self.verification_gas_limit.to_bytes(16) +
            self.call_gas_limit.to_bytes(16)
        )

        gas_fees = (
            self.max_priority_fee_per_gas.to_bytes(16) +
            self.max_fee_per_gas.to_bytes(16)
        )

        if self.paymaster is None:
            paymaster_and_data = bytes(0)
        else:
            paymaster_and_data = (
                bytes.fromhex(self.paymaster[2:]) +
                (self.paymaster_verification_gas_limit or 0).to_bytes(16) +
                (self.paymaster_post_op_gas_limit or 0).to_bytes(16) +
                (self.paymaster_data or bytes(0))
            )

        return [
            self.sender_address.lower(),
            self.nonce,
            init_code,
            self.call_data,
            account_gas_limits,
            self.pre_verification_gas,
            gas_fees,
            paymaster_and_data,
            self.signature
        ]

    def has_paymaster(self) -> bool:
        return self.paymaster is not None

    @property
    def paymaster_address(self) -> Address | None:
        return self.paymaster

    def get_user_operation_hash(
            self, entrypoint_addr: str, chain_id: int) -> str:
        packed_user_operation_hash = keccak(
            pack_user_operation_for_hashing(self.to_list())
        )
        encoded_user_operation_hash = encode(
            ["(bytes32,address,uint256)"],
            [[packed_user_operation_hash, entrypoint_addr.lower(), chain_id]],
        )

        return "0x" + keccak(encoded_user_operation_hash).hex()

    def pack_for_pre_verification_gas(self) -> bytes:
        user_operation_list = self.to_list()
        user_operation_list[8] = keccak(self.signature)
        return encode(
            [
                "address",
                "uint256",
                "bytes",
                "bytes",
                "bytes32",
                "uint256",
                "bytes32",
                "bytes",
                "bytes",
            ],
            user_operation_list,
        )

    def encode_handle_ops(self, beneficiary: str) -> str:
        return HANDLE_OPS_V7.encode_call(
            [[self.to_list()], beneficiary.lower()])


def pack_user_operation_for_hashing(user_operation_list: list) -> bytes:
    user_operation_list = list(user_operation_list)
    user_operation_list[2] = keccak(user_operation_list[2])  # initCode
    user_operation_list[3] = keccak(user_operation_list[3])  # callData
    user_operation_list[7] = keccak(user_operation_list[7])  # paymasterAndData

    user_operation_list_without_signature = user_operation_list[:-1]

    return encode(
        [
            "address",
            "uint256",
            "bytes32",
            "bytes32",
            "bytes32",
            "uint256",
            "bytes32",
            "bytes32",
        ],
        user_operation_list_without_signature,
    )

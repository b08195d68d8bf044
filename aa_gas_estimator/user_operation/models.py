from dataclasses import dataclass
from typing import TypeVar

from aa_gas_estimator.typing import Address
from aa_gas_estimator.user_operation.user_operation_v6 import UserOperationV6
from aa_gas_estimator.user_operation.user_operation_v7 import UserOperationV7

UserOperationType = TypeVar(
    'UserOperationType', UserOperationV6, UserOperationV7)

MAX_UINT48 = 2**48 - 1


@dataclass(frozen=True)
class FailedSimulation:
    reason: str
    inner_reason: str | None = None

    def message(self) -> str:
        if self.inner_reason is None:
            return self.reason
        return f"{self.reason} {self.inner_reason}"


@dataclass(frozen=True)
class ExecutionResult:
    pre_op_gas: int
    paid: int
    valid_after: int
    valid_until: int
    target_success: bool
    target_result: bytes


SimulationResult = FailedSimulation | ExecutionResult


@dataclass
class FailedOp:
    SELECTOR = "0x220266b6"
    opIndex: int
    reason: str


@dataclass
class FailedOpWithRevert:
    SELECTOR = "0x65c8fd4d"
    opIndex: int
    reason: str
    inner: bytes


@dataclass(frozen=True)
class ValidationData:
    aggregator: Address | None
    sig_failed: bool
    valid_after: int
    valid_until: int


@dataclass
class SearchState:
    lower: int
    upper: int
    cutoff: int
    best: int | None = None

    def is_converged(self) -> bool:
        return self.upper - self.lower <= self.cutoff

    def mid(self) -> int:
        return (self.lower + self.upper) // 2


@dataclass(frozen=True)
class ContinuationSignal:
    min_gas: int
    max_gas: int
    num_rounds: int
    valid_after: int | None = None
    valid_until: int | None = None


@dataclass(frozen=True)
class ResultSignal:
    gas_estimate: int
    num_rounds: int
    valid_after: int | None = None
    valid_until: int | None = None


@dataclass(frozen=True)
class RevertAtMaxSignal:
    revert_data: bytes


SearchSignal = ContinuationSignal | ResultSignal | RevertAtMaxSignal


@dataclass(frozen=True)
class VerificationGasResult:
    verification_gas_limit: int
    valid_after: int | None = None
    valid_until: int | None = None


@dataclass(frozen=True)
class GasEstimate:
    verification_gas_limit: int
    call_gas_limit: int
    pre_verification_gas: int
    paymaster_verification_gas_limit: int | None = None
    paymaster_post_op_gas_limit: int | None = None
    valid_after: int | None = None
    valid_until: int | None = None

    def to_json(self) -> dict[str, str]:
        result = {
            "preVerificationGas": hex(self.pre_verification_gas),
            "verificationGasLimit": hex(self.verification_gas_limit),
            "callGasLimit": hex(self.call_gas_limit),
        }
        if self.paymaster_verification_gas_limit is not None:
            result["paymasterVerificationGasLimit"] = hex(
                self.paymaster_verification_gas_limit)
        if self.paymaster_post_op_gas_limit is not None:
            result["paymasterPostOpGasLimit"] = hex(
                self.paymaster_post_op_gas_limit)
        if self.valid_after is not None:
            result["validAfter"] = hex(self.valid_after)
        if self.valid_until is not None:
            result["validUntil"] = hex(self.valid_until)
        return result


def parse_validation_data(validation_data: int) -> ValidationData:
    validation_data_bytes = validation_data.to_bytes(32)
    valid_after = int.from_bytes(validation_data_bytes[:6])
    valid_until = int.from_bytes(validation_data_bytes[6:12])
    if valid_until == 0:
        valid_until = MAX_UINT48
    authorizer = validation_data_bytes[12:]
    if authorizer == bytes(20):
        return ValidationData(None, False, valid_after, valid_until)
    if authorizer == (1).to_bytes(20):
        return ValidationData(None, True, valid_after, valid_until)
    return ValidationData(
        Address("0x" + authorizer.hex()), False, valid_after, valid_until)

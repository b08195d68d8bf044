"""
Normalizes the ways a simulation can fail into a SimulationResult or a
typed exception.

Revert bytes reach us wrapped in node specific error envelopes. The
envelope matchers below are tried in order; each one either returns the
revert bytes or None so the next one gets a chance.
"""
import logging
import re
from typing import Any, Callable

from aa_gas_estimator.exceptions import ExecutionException, \
    ExecutionExceptionCode, UnexpectedResponseException, \
    ValidationException, ValidationExceptionCode
from aa_gas_estimator.user_operation.models import ExecutionResult, \
    FailedOp, FailedOpWithRevert, FailedSimulation, SimulationResult
from aa_gas_estimator.utils.abi import ContractError, ERROR_STRING, PANIC

FAILED_OP = ContractError("FailedOp", ("uint256", "string"))
FAILED_OP_WITH_REVERT = ContractError(
    "FailedOpWithRevert", ("uint256", "string", "bytes"))
EXECUTION_RESULT_V6 = ContractError(
    "ExecutionResult",
    ("uint256", "uint256", "uint48", "uint48", "bool", "bytes"))
VALIDATION_RESULT = ContractError(
    "ValidationResult",
    (
        "(uint256,uint256,bool,uint48,uint48,bytes)",
        "(uint256,uint256)",
        "(uint256,uint256)",
        "(uint256,uint256)",
    ))
VALIDATION_RESULT_WITH_AGGREGATION = ContractError(
    "ValidationResultWithAggregation",
    (
        "(uint256,uint256,bool,uint48,uint48,bytes)",
        "(uint256,uint256)",
        "(uint256,uint256)",
        "(uint256,uint256)",
        "(address,(uint256,uint256))",
    ))
SENDER_ADDRESS_RESULT = ContractError("SenderAddressResult", ("address",))
SIGNATURE_VALIDATION_FAILED = ContractError(
    "SignatureValidationFailed", ("address",))

# reverts that are valid EntryPoint answers but never the answer to a
# handleOp simulation
UNEXPECTED_ENTRYPOINT_ERRORS = (
    VALIDATION_RESULT,
    VALIDATION_RESULT_WITH_AGGREGATION,
    SENDER_ADDRESS_RESULT,
    SIGNATURE_VALIDATION_FAILED,
)

PANIC_CODES = {
    0x01: "assert(false)",
    0x11: "arithmetic overflow/underflow",
    0x12: "divide by zero",
    0x21: "invalid enum value",
    0x22: "storage byte array that is incorrectly encoded",
    0x31: ".pop() on an empty array.",
    0x32: "array out-of-bounds or negative index",
    0x41: "memory overflow",
    0x51: "zero-initialized variable of internal function type",
}

# keep in sync with the deployed EntryPoint revert strings
TOO_LOW_REASONS = frozenset((
    "AA40 over verificationGasLimit",
    "AA41 too little verificationGas",
    "AA51 prefund below actualGasCost",
    "AA13 initCode failed or OOG",
    "AA21 didn't pay prefund",
    "AA23 reverted (or OOG)",
    "AA33 reverted (or OOG)",
    "return data out of bounds",
    "validation OOG",
))

STATE_OVERRIDE_NOT_SUPPORTED_MESSAGE = "Incorrect parameters count"

HEX_DATA_PATTERN = re.compile("^0x([0-9a-fA-F]{2})*$")


def too_low(reason: str | None) -> bool:
    return reason in TOO_LOW_REASONS


def _revert_data_or_none(
    error: Any, code: int, message_pattern: str
) -> bytes | None:
    if not isinstance(error, dict):
        return None
    message = error.get("message")
    data = error.get("data")
    if (
        error.get("code") != code or
        not isinstance(message, str) or
        re.match(message_pattern, message) is None or
        not isinstance(data, str) or
        HEX_DATA_PATTERN.match(data) is None
    ):
        return None
    return bytes.fromhex(data[2:])


def match_standard_envelope(error: dict[str, Any]) -> bytes | None:
    return _revert_data_or_none(error, 3, "execution reverted.*")


def _cause_data_or_none(cause: Any) -> bytes | None:
    # code and message of a wrapped cause are not checked
    if not isinstance(cause, dict):
        return None
    data = cause.get("data")
    if not isinstance(data, str) or HEX_DATA_PATTERN.match(data) is None:
        return None
    return bytes.fromhex(data[2:])


def match_cause_envelope(error: dict[str, Any]) -> bytes | None:
    return _cause_data_or_none(error.get("cause"))


def match_nested_cause_envelope(error: dict[str, Any]) -> bytes | None:
    cause = error.get("cause")
    if not isinstance(cause, dict):
        return None
    return _cause_data_or_none(cause.get("cause"))


def match_server_error_envelope(error: dict[str, Any]) -> bytes | None:
    for code in (-32000, -32603):
        revert_data = _revert_data_or_none(error, code, ".*revert.*")
        if revert_data is not None:
            return revert_data
    return None


ENVELOPE_MATCHERS: list[Callable[[dict[str, Any]], bytes | None]] = [
    match_standard_envelope,
    match_cause_envelope,
    match_nested_cause_envelope,
    match_server_error_envelope,
]


def extract_revert_data(error: dict[str, Any]) -> bytes:
    if STATE_OVERRIDE_NOT_SUPPORTED_MESSAGE in str(error):
        raise ValidationException(
            ValidationExceptionCode.SimulateValidation,
            "eth_call state override is not supported by the node",
        )
    for matcher in ENVELOPE_MATCHERS:
        revert_data = matcher(error)
        if revert_data is not None:
            return revert_data
    logging.error(f"Unrecognized simulation error envelope: {error}")
    raise UnexpectedResponseException(
        "Unrecognized simulation error response", error)


def decode_failed_op(revert_data: bytes) -> FailedOp:
    op_index, reason = FAILED_OP.decode(revert_data)
    return FailedOp(op_index, reason)


def decode_failed_op_with_revert(revert_data: bytes) -> FailedOpWithRevert:
    op_index, reason, inner = FAILED_OP_WITH_REVERT.decode(revert_data)
    return FailedOpWithRevert(op_index, reason, inner)


def decode_inner_revert(inner: bytes) -> str:
    if ERROR_STRING.matches(inner):
        return ERROR_STRING.decode(inner)[0]
    if PANIC.matches(inner):
        panic_code = PANIC.decode(inner)[0]
        return PANIC_CODES.get(panic_code, f"panic code {hex(panic_code)}")
    return "0x" + inner.hex()


def decode_execution_result(revert_data: bytes) -> ExecutionResult:
    (
        pre_op_gas,
        paid,
        valid_after,
        valid_until,
        target_success,
        target_result,
    ) = EXECUTION_RESULT_V6.decode(revert_data)
    return ExecutionResult(
        pre_op_gas, paid, valid_after, valid_until,
        target_success, target_result)


def decode_simulation_revert(revert_data: bytes) -> SimulationResult:
    if len(revert_data) < 4:
        raise UnexpectedResponseException(
            "Simulation reverted without an error selector",
            "0x" + revert_data.hex())

    selector = "0x" + revert_data[:4].hex()
    if selector == FailedOp.SELECTOR:
        return FailedSimulation(
            clean_up_revert_reason(decode_failed_op(revert_data).reason))
    if selector == FailedOpWithRevert.SELECTOR:
        failed_op = decode_failed_op_with_revert(revert_data)
        return FailedSimulation(
            clean_up_revert_reason(failed_op.reason),
            decode_inner_revert(failed_op.inner))
    if EXECUTION_RESULT_V6.matches(revert_data):
        return decode_execution_result(revert_data)
    if ERROR_STRING.matches(revert_data):
        return FailedSimulation(ERROR_STRING.decode(revert_data)[0])
    if PANIC.matches(revert_data):
        return FailedSimulation(decode_inner_revert(revert_data))
    for entrypoint_error in UNEXPECTED_ENTRYPOINT_ERRORS:
        if entrypoint_error.matches(revert_data):
            raise UnexpectedResponseException(
                f"Unexpected {entrypoint_error.name} from simulation",
                "0x" + revert_data.hex())

    raise UnexpectedResponseException(
        "Unrecognized simulation revert data", "0x" + revert_data.hex())


def clean_up_revert_reason(revert_reason: str) -> str:
    match = re.search(r"AA(\d+)\s(.+)", revert_reason, re.DOTALL)
    if match is None:
        return revert_reason
    reason = f"AA{match.group(1)} {match.group(2)}"
    truncated = re.match(r"AA.*?(?=\\u|\x00)", reason, re.DOTALL)
    if truncated is not None:
        return truncated.group(0)
    return reason


def handle_failed_op(revert_reason: str):
    """Raise the typed error matching an EntryPoint revert reason."""
    if "AA1" in revert_reason or "AA2" in revert_reason:
        raise ValidationException(
            ValidationExceptionCode.SimulateValidation, revert_reason)
    elif "AA3" in revert_reason:
        raise ValidationException(
            ValidationExceptionCode.SimulatePaymasterValidation,
            revert_reason)
    elif "AA9" in revert_reason:
        raise ValidationException(
            ValidationExceptionCode.WalletTransactionReverted, revert_reason)
    elif "AA" in revert_reason:
        raise ValidationException(
            ValidationExceptionCode.SimulateValidation, revert_reason)
    raise ExecutionException(
        ExecutionExceptionCode.UserOperationReverted,
        "UserOperation reverted during execution phase",
    )

import pytest
from eth_abi import encode

from aa_gas_estimator.exceptions import ExecutionException, \
    UnexpectedResponseException, ValidationException, \
    ValidationExceptionCode
from aa_gas_estimator.simulation.classifier import EXECUTION_RESULT_V6, \
    FAILED_OP, FAILED_OP_WITH_REVERT, SENDER_ADDRESS_RESULT, \
    TOO_LOW_REASONS, clean_up_revert_reason, decode_simulation_revert, \
    extract_revert_data, handle_failed_op, too_low
from aa_gas_estimator.user_operation.models import ExecutionResult, \
    FailedSimulation
from aa_gas_estimator.utils.abi import ERROR_STRING, PANIC

REVERT_DATA = FAILED_OP.encode([0, "AA23 reverted (or OOG)"])
REVERT_DATA_HEX = "0x" + REVERT_DATA.hex()


@pytest.mark.parametrize("reason", sorted(TOO_LOW_REASONS))
def test_too_low_for_every_documented_reason(reason):
    assert too_low(reason)


@pytest.mark.parametrize(
    "reason",
    [
        "",
        None,
        "garbage",
        "AA24 signature error",
        "AA40 over verificationGasLimit ",
        "aa40 over verificationgaslimit",
        "UserOperation reverted during execution phase",
    ],
)
def test_too_low_rejects_everything_else(reason):
    assert not too_low(reason)


def test_extract_revert_data_standard_envelope():
    error = {"code": 3, "message": "execution reverted", "data": REVERT_DATA_HEX}
    assert extract_revert_data(error) == REVERT_DATA


def test_extract_revert_data_cause_envelope():
    error = {
        "code": -32603,
        "message": "Internal error",
        "cause": {
            "code": 3,
            "message": "execution reverted: AA23",
            "data": REVERT_DATA_HEX,
        },
    }
    assert extract_revert_data(error) == REVERT_DATA


def test_extract_revert_data_nested_cause_envelope():
    error = {
        "code": -32603,
        "message": "Internal error",
        "cause": {
            "message": "call failed",
            "cause": {
                "code": -32603,
                "message": "revert",
                "data": REVERT_DATA_HEX,
            },
        },
    }
    assert extract_revert_data(error) == REVERT_DATA


def test_extract_revert_data_bare_cause_envelope():
    error = {"message": "x", "cause": {"data": REVERT_DATA_HEX}}
    assert extract_revert_data(error) == REVERT_DATA


def test_extract_revert_data_bare_nested_cause_envelope():
    error = {"message": "x", "cause": {"cause": {"data": REVERT_DATA_HEX}}}
    assert extract_revert_data(error) == REVERT_DATA


def test_extract_revert_data_cause_without_hex_data():
    error = {"message": "x", "cause": {"cause": {"data": "not hex"}}}
    with pytest.raises(UnexpectedResponseException):
        extract_revert_data(error)


def test_extract_revert_data_server_error_envelope():
    error = {
        "code": -32000,
        "message": "execution reverted",
        "data": REVERT_DATA_HEX,
    }
    assert extract_revert_data(error) == REVERT_DATA


def test_extract_revert_data_unrecognized_envelope():
    error = {"code": -32601, "message": "method not found"}
    with pytest.raises(UnexpectedResponseException) as excinfo:
        extract_revert_data(error)
    assert excinfo.value.payload == error


def test_extract_revert_data_state_override_not_supported():
    error = {"code": -32602, "message": "Incorrect parameters count"}
    with pytest.raises(ValidationException) as excinfo:
        extract_revert_data(error)
    assert excinfo.value.exception_code == \
        ValidationExceptionCode.SimulateValidation


def test_decode_failed_op():
    result = decode_simulation_revert(REVERT_DATA)
    assert result == FailedSimulation("AA23 reverted (or OOG)")


def test_decode_failed_op_with_revert_panic():
    inner = PANIC.encode([0x11])
    revert_data = FAILED_OP_WITH_REVERT.encode(
        [0, "AA23 reverted", inner])
    result = decode_simulation_revert(revert_data)
    assert result == FailedSimulation(
        "AA23 reverted", "arithmetic overflow/underflow")
    # the inner revert never leaks into the reason too_low looks at
    assert result.reason == "AA23 reverted"
    assert result.message() == "AA23 reverted arithmetic overflow/underflow"


def test_decode_failed_op_with_revert_unknown_panic():
    revert_data = FAILED_OP_WITH_REVERT.encode(
        [0, "AA33 reverted", PANIC.encode([0x99])])
    result = decode_simulation_revert(revert_data)
    assert result.inner_reason == "panic code 0x99"


def test_decode_failed_op_with_revert_error_string():
    revert_data = FAILED_OP_WITH_REVERT.encode(
        [0, "AA33 reverted", ERROR_STRING.encode(["paymaster says no"])])
    result = decode_simulation_revert(revert_data)
    assert result.inner_reason == "paymaster says no"


def test_decode_execution_result():
    revert_data = EXECUTION_RESULT_V6.encode(
        [50_000, 1_000_000, 10, 20, True, b"\x01\x02"])
    assert decode_simulation_revert(revert_data) == ExecutionResult(
        pre_op_gas=50_000,
        paid=1_000_000,
        valid_after=10,
        valid_until=20,
        target_success=True,
        target_result=b"\x01\x02",
    )


def test_decode_error_string_revert():
    revert_data = ERROR_STRING.encode(["nope"])
    assert decode_simulation_revert(revert_data) == FailedSimulation("nope")


def test_decode_unexpected_entrypoint_error():
    revert_data = SENDER_ADDRESS_RESULT.encode(
        ["0x1306b01bc3e4ad202612d3843387e94737673f53"])
    with pytest.raises(UnexpectedResponseException):
        decode_simulation_revert(revert_data)


def test_decode_unknown_selector():
    revert_data = bytes.fromhex("deadbeef") + encode(["uint256"], [1])
    with pytest.raises(UnexpectedResponseException) as excinfo:
        decode_simulation_revert(revert_data)
    assert excinfo.value.payload == "0x" + revert_data.hex()


def test_decode_too_short():
    with pytest.raises(UnexpectedResponseException):
        decode_simulation_revert(b"\x01\x02")


def test_clean_up_revert_reason():
    assert clean_up_revert_reason(
        "AA23 reverted (or OOG)\x00\x00\x00") == "AA23 reverted (or OOG)"
    assert clean_up_revert_reason("not an entrypoint reason") == \
        "not an entrypoint reason"


@pytest.mark.parametrize(
    "reason, code",
    [
        ("AA23 reverted (or OOG)", ValidationExceptionCode.SimulateValidation),
        ("AA13 initCode failed or OOG",
            ValidationExceptionCode.SimulateValidation),
        ("AA33 reverted (or OOG)",
            ValidationExceptionCode.SimulatePaymasterValidation),
        ("AA95 out of gas",
            ValidationExceptionCode.WalletTransactionReverted),
        ("AA50 postOp reverted", ValidationExceptionCode.SimulateValidation),
    ],
)
def test_handle_failed_op_validation_codes(reason, code):
    with pytest.raises(ValidationException) as excinfo:
        handle_failed_op(reason)
    assert excinfo.value.exception_code == code
    assert excinfo.value.message == reason


def test_handle_failed_op_execution():
    with pytest.raises(ExecutionException):
        handle_failed_op("boom")

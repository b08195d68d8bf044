import pytest

from aa_gas_estimator.exceptions import ValidationException
from aa_gas_estimator.simulation.entrypoint import ENTRYPOINT_V6_ADDRESS, \
    ENTRYPOINT_V7_ADDRESS
from aa_gas_estimator.user_operation.models import GasEstimate, MAX_UINT48, \
    parse_validation_data
from aa_gas_estimator.user_operation.user_operation_v6 import UserOperationV6
from aa_gas_estimator.user_operation.user_operation_v7 import UserOperationV7

from conftest import PAYMASTER


def test_user_operation_v6_hash_is_deterministic(user_operation_v6_json):
    first = UserOperationV6.from_json(user_operation_v6_json)
    second = UserOperationV6.from_json(dict(user_operation_v6_json))
    assert first.get_user_operation_hash(ENTRYPOINT_V6_ADDRESS, 1) == \
        second.get_user_operation_hash(ENTRYPOINT_V6_ADDRESS, 1)


def test_user_operation_v6_hash_changes_with_nonce(user_operation_v6):
    other = user_operation_v6.with_gas(nonce=2)
    assert user_operation_v6.get_user_operation_hash(
        ENTRYPOINT_V6_ADDRESS, 1) != other.get_user_operation_hash(
            ENTRYPOINT_V6_ADDRESS, 1)


def test_user_operation_v6_hash_depends_on_chain(user_operation_v6):
    assert user_operation_v6.get_user_operation_hash(
        ENTRYPOINT_V6_ADDRESS, 1) != user_operation_v6.get_user_operation_hash(
            ENTRYPOINT_V6_ADDRESS, 10)


def test_user_operation_v7_hash(user_operation_v7):
    user_operation_hash = user_operation_v7.get_user_operation_hash(
        ENTRYPOINT_V7_ADDRESS, 1)
    assert user_operation_hash == user_operation_v7.get_user_operation_hash(
        ENTRYPOINT_V7_ADDRESS, 1)
    assert user_operation_hash != user_operation_v7.with_gas(
        nonce=5).get_user_operation_hash(ENTRYPOINT_V7_ADDRESS, 1)
    assert len(user_operation_hash) == 66


def test_user_operation_v6_missing_field(user_operation_v6_json):
    del user_operation_v6_json["signature"]
    with pytest.raises(ValidationException):
        UserOperationV6.from_json(user_operation_v6_json)


def test_user_operation_v6_invalid_address(user_operation_v6_json):
    user_operation_v6_json["sender"] = "0x1234"
    with pytest.raises(ValidationException):
        UserOperationV6.from_json(user_operation_v6_json)


def test_with_gas_returns_a_copy(user_operation_v6):
    copy = user_operation_v6.with_gas(
        call_gas_limit=0, verification_gas_limit=123)
    assert copy.verification_gas_limit == 123
    assert user_operation_v6.verification_gas_limit == 0
    assert copy is not user_operation_v6


def test_encode_handle_ops_selectors(user_operation_v6, user_operation_v7):
    beneficiary = "0x" + "AB" * 20
    call_data = user_operation_v6.encode_handle_ops(beneficiary)
    assert call_data.startswith("0x1fad948c")
    # the beneficiary is the second head word
    assert call_data[10 + 64:10 + 128].endswith("ab" * 20)

    assert user_operation_v7.encode_handle_ops(beneficiary).startswith(
        "0x765e827f")


def test_user_operation_v7_packs_gas_limits(user_operation_v7):
    user_operation = user_operation_v7.with_gas(
        verification_gas_limit=0x1234,
        call_gas_limit=0x5678,
        max_priority_fee_per_gas=1,
        max_fee_per_gas=2,
    )
    packed = user_operation.to_list()
    assert packed[4] == (0x1234).to_bytes(16) + (0x5678).to_bytes(16)
    assert packed[6] == (1).to_bytes(16) + (2).to_bytes(16)
    assert packed[7] == b""


def test_user_operation_v7_paymaster_and_data(
    user_operation_v7_with_paymaster
):
    user_operation = user_operation_v7_with_paymaster.with_gas(
        paymaster_verification_gas_limit=7,
        paymaster_post_op_gas_limit=9,
    )
    paymaster_and_data = user_operation.to_list()[7]
    assert paymaster_and_data == (
        bytes.fromhex(PAYMASTER[2:]) +
        (7).to_bytes(16) +
        (9).to_bytes(16) +
        bytes.fromhex("1234")
    )
    assert user_operation.paymaster_address == PAYMASTER


def test_user_operation_v7_paymaster_fields_without_paymaster(
    user_operation_v7_json
):
    user_operation_v7_json["paymasterData"] = "0x12"
    with pytest.raises(ValidationException):
        UserOperationV7.from_json(user_operation_v7_json)


def test_user_operation_v6_paymaster_address(user_operation_v6_json):
    user_operation_v6_json["paymasterAndData"] = PAYMASTER + "abcd"
    user_operation = UserOperationV6.from_json(user_operation_v6_json)
    assert user_operation.has_paymaster()
    assert user_operation.paymaster_address == PAYMASTER.lower()


def test_parse_validation_data():
    valid_after = 100
    valid_until = 200
    validation_data = int.from_bytes(
        valid_after.to_bytes(6) + valid_until.to_bytes(6) + bytes(20))
    parsed = parse_validation_data(validation_data)
    assert parsed.valid_after == 100
    assert parsed.valid_until == 200
    assert parsed.aggregator is None
    assert not parsed.sig_failed

    parsed = parse_validation_data(1)
    assert parsed.sig_failed
    assert parsed.valid_until == MAX_UINT48


def test_gas_estimate_to_json():
    gas_estimate = GasEstimate(
        verification_gas_limit=100_000,
        call_gas_limit=50_000,
        pre_verification_gas=21_000,
    )
    assert gas_estimate.to_json() == {
        "preVerificationGas": hex(21_000),
        "verificationGasLimit": hex(100_000),
        "callGasLimit": hex(50_000),
    }

from functools import cache
from typing import Any

from eth_abi import encode
from eth_utils import keccak

# max uint112, the width of the deposit field in the EntryPoint deposit slot
PAYMASTER_DEPOSIT_MAX = "0x" + (2**112 - 1).to_bytes(32).hex()

PRESERVED_ACCOUNT_FIELDS = ("balance", "nonce", "state", "stateDiff")


@cache
def calculate_deposit_slot_index(address: str) -> str:
    # same deposit value slot for all entrypoints(for ep 0.6 this slot also has
    # the staked and stake values)
    return "0x" + keccak(
        encode(
            ["uint256", "uint256"],
            [int(address, 16), 0]  # slot = 0
        )
    ).hex()


def merge_state_overrides(
    destination: dict[str, Any], source: dict[str, Any] | None
) -> dict[str, Any]:
    """Deep merge of two state override sets, source wins.

    Top level address keys are matched case-insensitively and keep the
    spelling used in destination.
    """
    if source is None:
        return dict(destination)

    merged = dict(destination)
    address_keys = {key.lower(): key for key in merged}
    for source_key, source_value in source.items():
        key = address_keys.get(source_key.lower(), source_key)
        if (
            key in merged and
            isinstance(source_value, dict) and
            isinstance(merged[key], dict)
        ):
            merged[key] = deep_union(merged[key], source_value)
        else:
            merged[key] = source_value
    return merged


def deep_union(dict1, dict2):
    dict1_copy = dict1.copy()
    for dict2_key, dict2_value in dict2.items():
        if (
            dict2_key in dict1_copy and
            isinstance(dict2_value, dict) and
            isinstance(dict1_copy[dict2_key], dict)
        ):
            dict1_copy[dict2_key] = deep_union(dict1_copy[dict2_key], dict2_value)
        else:
            dict1_copy[dict2_key] = dict2_value
    return dict1_copy


def merge_with_forced_code(
    engine_set: dict[str, Any],
    caller_set: dict[str, Any] | None,
    address: str,
    code: str,
) -> dict[str, Any]:
    """Merge the caller overrides into the engine's while forcing `code` at
    `address`. Of the caller's record at `address` only balance, nonce,
    state and stateDiff are kept."""
    caller_set = caller_set or {}
    caller_account: dict[str, Any] = {}
    other_caller_overrides: dict[str, Any] = {}
    for key, value in caller_set.items():
        if key.lower() == address.lower():
            caller_account = value or {}
        else:
            other_caller_overrides[key] = value

    merged = merge_state_overrides(engine_set, other_caller_overrides)

    engine_account = {}
    for key in list(merged):
        if key.lower() == address.lower():
            engine_account = merged.pop(key)

    account = dict(engine_account)
    for field in PRESERVED_ACCOUNT_FIELDS:
        if caller_account.get(field) is not None:
            if field == "stateDiff" and "stateDiff" in account:
                account["stateDiff"] = account["stateDiff"] | \
                    caller_account["stateDiff"]
            else:
                account[field] = caller_account[field]
    # nodes reject state and stateDiff on the same account
    if "state" in account:
        account.pop("stateDiff", None)
    account["code"] = code
    merged[address] = account
    return merged


class StateOverrideBuilder:
    state_override_set: dict[str, Any] | None
    new_state_overrides: dict[str, dict[str, Any]]

    def __init__(self, state_override_set: dict[str, Any] | None = None):
        self.state_override_set = state_override_set
        self.new_state_overrides = {}

    def _extend_address_override(
        self, address: str, override: dict[str, Any]
    ) -> None:
        if address in self.new_state_overrides:
            self.new_state_overrides[address] = (
                self.new_state_overrides[address] | override)
        else:
            self.new_state_overrides[address] = override

    def override_balance(
        self, address: str, balance: int
    ) -> "StateOverrideBuilder":
        self._extend_address_override(address, {"balance": hex(balance)})
        return self

    def override_code(self, address: str, code: str) -> "StateOverrideBuilder":
        self._extend_address_override(address, {"code": code})
        return self

    def override_paymaster_deposit(
        self,
        entrypoint: str,
        paymaster: str,
        storage_value: str = PAYMASTER_DEPOSIT_MAX,
    ) -> "StateOverrideBuilder":
        storage_key = calculate_deposit_slot_index(paymaster)
        existing_state_diff = self.new_state_overrides.get(
            entrypoint, {}).get("stateDiff", {})
        self._extend_address_override(
            entrypoint,
            {"stateDiff": existing_state_diff | {storage_key: storage_value}},
        )
        return self

    def build(self, forced_code_address: str | None = None) -> dict[str, Any]:
        if forced_code_address is not None:
            code = self.new_state_overrides.get(
                forced_code_address, {}).get("code")
            if code is not None:
                return merge_with_forced_code(
                    self.new_state_overrides,
                    self.state_override_set,
                    forced_code_address,
                    code,
                )
        return merge_state_overrides(
            self.new_state_overrides, self.state_override_set)

from __future__ import annotations

from core.dedup import HASH_MODULUS, compute_message_id, rolling_hash, to_base36


def test_base36_formatting() -> None:
    assert to_base36(0) == "0"
    assert to_base36(35) == "z"
    assert to_base36(36) == "10"
    assert to_base36(62909142) == "11gd06"


def test_rolling_hash_known_value() -> None:
    # "A_1_b" folded by hand with h = h * 31 + c.
    assert rolling_hash("A_1_b") == 62909142
    assert compute_message_id("A", 1, "b") == "sms_11gd06_1"


def test_rolling_hash_uses_utf16_code_units() -> None:
    # U+1F600 is the surrogate pair D83D DE00.
    assert rolling_hash("\U0001F600") == 0xD83D * 31 + 0xDE00


def test_rolling_hash_stays_below_modulus() -> None:
    assert 0 <= rolling_hash("x" * 5000) < HASH_MODULUS


def test_message_id_is_deterministic() -> None:
    first = compute_message_id("VM-HDFCBK", 1704067200000, "Rs.250 debited")
    second = compute_message_id("VM-HDFCBK", 1704067200000, "Rs.250 debited")
    assert first == second
    assert first.startswith("sms_")
    assert first.endswith("_1704067200000")


def test_message_id_changes_with_each_field() -> None:
    base = compute_message_id("VM-HDFCBK", 1704067200000, "Rs.250 debited")
    assert compute_message_id("VM-ICICIB", 1704067200000, "Rs.250 debited") != base
    assert compute_message_id("VM-HDFCBK", 1704067200001, "Rs.250 debited") != base
    assert compute_message_id("VM-HDFCBK", 1704067200000, "Rs.251 debited") != base

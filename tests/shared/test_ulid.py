"""Tests for record id generation and ordering semantics."""

from __future__ import annotations

import pytest

from packages.turnstile_shared.ids import RECORD_ID_LENGTH, is_record_id, new_record_id


def test_record_ids_have_fixed_width_and_alphabet() -> None:
    value = new_record_id()

    assert len(value) == RECORD_ID_LENGTH
    assert is_record_id(value)


def test_record_ids_sort_by_timestamp() -> None:
    """Lexicographic order must follow the embedded millisecond timestamp."""
    earlier = [new_record_id(timestamp_ms=1_700_000_000_000) for _ in range(50)]
    later = [new_record_id(timestamp_ms=1_700_000_000_001) for _ in range(50)]

    assert max(earlier) < min(later)


def test_record_ids_are_unique_within_one_millisecond() -> None:
    values = {new_record_id(timestamp_ms=1_700_000_000_000) for _ in range(300)}

    assert len(values) == 300


@pytest.mark.parametrize("timestamp_ms", [-1, 1 << 48])
def test_record_id_rejects_out_of_range_timestamps(timestamp_ms: int) -> None:
    with pytest.raises(ValueError):
        new_record_id(timestamp_ms=timestamp_ms)


@pytest.mark.parametrize("value", ["", "0" * 25, "I" * 26, "8" + "0" * 25, None])
def test_is_record_id_rejects_foreign_values(value) -> None:
    assert not is_record_id(value)

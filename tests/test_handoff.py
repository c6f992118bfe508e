"""Tests for the single-slot handoff."""

from unittest.mock import patch

from firewatch.handoff import LatestValue


def test_empty_slot_returns_none() -> None:
    slot: LatestValue = LatestValue()
    assert slot.get() is None
    assert slot.age_seconds == float("inf")


def test_last_write_wins() -> None:
    slot: LatestValue = LatestValue()
    slot.put("a")
    slot.put("b")
    assert slot.get() == "b"
    assert slot.version == 2


def test_stale_value_is_ignored() -> None:
    slot: LatestValue = LatestValue()
    with patch("firewatch.handoff.time.monotonic", return_value=100.0):
        slot.put("verdict")
    with patch("firewatch.handoff.time.monotonic", return_value=200.0):
        assert slot.get(max_age_seconds=90.0) is None
        assert slot.get(max_age_seconds=120.0) == "verdict"
        assert slot.get() == "verdict"


def test_clear() -> None:
    slot: LatestValue = LatestValue()
    slot.put(1)
    slot.clear()
    assert slot.get() is None

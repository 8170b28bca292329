"""Tests for the clock and deadline helpers."""
import time

from readnext.utils.timing import Deadline, utcnow


def test_deadline_counts_down_and_never_goes_negative():
    deadline = Deadline(0.05)
    first = deadline.remaining()
    time.sleep(0.01)

    assert 0.0 < deadline.remaining() < first <= 0.05
    assert Deadline(0).remaining() == 0.0
    assert Deadline(-1).remaining() == 0.0


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None

"""Tests for the admission gate."""

import pytest

from hybrid_query.errors import CapacityExceededError
from hybrid_query.processing import AdmissionGate


def test_try_acquire_up_to_limit():
    gate = AdmissionGate(limit=2)

    assert gate.try_acquire() is True
    assert gate.try_acquire() is True
    assert gate.try_acquire() is False
    assert gate.rejected == 1

    gate.release()

    assert gate.try_acquire() is True
    assert gate.peak == 2


def test_slot_rejects_when_full():
    gate = AdmissionGate(limit=1, retry_after=2.5)

    with gate.slot():
        assert gate.in_flight == 1
        with pytest.raises(CapacityExceededError) as exc_info:
            with gate.slot():
                pass

    assert exc_info.value.retry_after == 2.5
    assert gate.in_flight == 0


def test_slot_released_on_error():
    gate = AdmissionGate(limit=1)

    with pytest.raises(RuntimeError):
        with gate.slot():
            raise RuntimeError("branch failed")

    assert gate.in_flight == 0


def test_invalid_usage():
    with pytest.raises(ValueError):
        AdmissionGate(limit=0)

    with pytest.raises(RuntimeError):
        AdmissionGate(limit=1).release()

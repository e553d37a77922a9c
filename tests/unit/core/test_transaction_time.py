"""Unit tests for the transaction time box."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from core.transaction_time import TransactionTime


def test_get_before_set_raises() -> None:
    """Reading an unset transaction time should fail loudly."""
    box = TransactionTime()

    with pytest.raises(RuntimeError):
        box.get()

    assert not box.is_set


def test_set_twice_raises() -> None:
    """The transaction time may only be set once per run."""
    box = TransactionTime()
    box.set(datetime(2021, 5, 1, tzinfo=timezone.utc))

    with pytest.raises(RuntimeError):
        box.set(datetime(2021, 6, 1, tzinfo=timezone.utc))

    assert box.get() == datetime(2021, 5, 1, tzinfo=timezone.utc)

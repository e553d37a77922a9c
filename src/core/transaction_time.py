"""Single-assignment transaction time holder.

The orchestrator sets the export transaction time once the job completes.
Sinks built before that point hold a reference and read it while they
commit output.
"""

from __future__ import annotations

from datetime import datetime


class TransactionTime:
    """Write-once container for the run's transaction time."""

    def __init__(self) -> None:
        self._value: datetime | None = None

    @property
    def is_set(self) -> bool:
        return self._value is not None

    def set(self, value: datetime) -> None:
        """Set the transaction time.

        Raises:
            RuntimeError: If the value was already set in this run.
        """
        if self._value is not None:
            raise RuntimeError(
                f"Transaction time already set to {self._value.isoformat()}; it is write-once."
            )
        self._value = value

    def get(self) -> datetime:
        """Return the transaction time.

        Raises:
            RuntimeError: If read before the export job completed.
        """
        if self._value is None:
            raise RuntimeError("Transaction time read before the export job completed.")
        return self._value

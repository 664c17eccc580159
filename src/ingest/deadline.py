"""Caller deadline tracking for one ingest call."""

from __future__ import annotations

import time

from core.errors import IngestTimeoutError


class Deadline:
    """Monotonic deadline shared by discovery and parsing.

    A deadline built without a timeout never expires.
    """

    def __init__(self, timeout: float | None) -> None:
        self._timeout = timeout
        self._expires_at = None if timeout is None else time.monotonic() + timeout

    @property
    def timeout(self) -> float | None:
        return self._timeout

    def remaining(self) -> float | None:
        """Seconds left, ``None`` when unbounded, never negative."""
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def check(self, stage: str) -> None:
        """Raise when the deadline already passed.

        Raises:
            IngestTimeoutError: If no time is left.
        """
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise timeout_error(stage, self._timeout)


def timeout_error(stage: str, timeout: float | None) -> IngestTimeoutError:
    """Build the error raised when a stage overruns the deadline."""
    return IngestTimeoutError(
        f"Ingest {stage} exceeded the {timeout}s timeout. "
        "Nothing was committed; retry with a larger timeout."
    )

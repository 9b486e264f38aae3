"""Caller-owned cancellation for insight generation."""

from __future__ import annotations

import asyncio


class InsightCancelledError(Exception):
    """The caller abandoned generate_insight; distinct from any degraded outcome."""

    def __init__(self, message: str = "insight generation cancelled") -> None:
        super().__init__(message)


class CancellationToken:
    """One-shot cancellation flag that can also be awaited.

    The token is owned by the caller: it calls cancel(), the pipeline only
    observes it. Cancelling twice is a no-op.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise InsightCancelledError()

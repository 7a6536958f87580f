"""Ephemeral banner text that clears itself after a delay."""

from __future__ import annotations

import asyncio
from typing import Callable, Optional


class TimedNotice:
    """Holds one message and schedules its expiry on the running loop.

    Showing a new message replaces the old one and reschedules the timer.
    After :meth:`cancel` the notice is inert: pending timers are dropped and
    later ``show`` calls are ignored.
    """

    def __init__(self, ttl_seconds: float | None, on_change: Callable[[], None]) -> None:
        self._ttl = ttl_seconds
        self._on_change = on_change
        self._handle: Optional[asyncio.TimerHandle] = None
        self._cancelled = False
        self.message = ""

    def show(self, message: str) -> None:
        if self._cancelled:
            return
        self._clear_timer()
        self.message = message
        if self._ttl is not None and self._ttl > 0:
            loop = asyncio.get_running_loop()
            self._handle = loop.call_later(self._ttl, self._expire)

    def clear(self) -> None:
        self._clear_timer()
        if self.message:
            self.message = ""
            if not self._cancelled:
                self._on_change()

    def cancel(self) -> None:
        self._cancelled = True
        self._clear_timer()
        self.message = ""

    def _expire(self) -> None:
        self._handle = None
        self.clear()

    def _clear_timer(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None


__all__ = ["TimedNotice"]

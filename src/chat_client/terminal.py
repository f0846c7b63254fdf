"""Terminal output for a turn: the waiting cue and the paced reply.

Write failures on the terminal are cosmetic. They are logged at DEBUG and
never abort a turn.
"""
from __future__ import annotations

import asyncio
import logging
import sys
from typing import Awaitable, Callable, Optional, TextIO

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


def _emit(stream: TextIO, text: str) -> bool:
    try:
        stream.write(text)
        stream.flush()
    except (OSError, ValueError) as e:
        logger.debug("Terminal write failed: %s", e)
        return False
    return True


class StopSignal:
    """Single-use handoff telling a :class:`WaitIndicator` to stop."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    def fire(self) -> None:
        if self._event.is_set():
            raise RuntimeError("stop signal already fired")
        self._event.set()

    async def wait(self, timeout: float) -> bool:
        """Wait up to ``timeout`` seconds; return True once the signal has fired."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        return self._event.is_set()


class WaitIndicator:
    """Redraws ``Thinking``, ``Thinking.``, ... on one line until stopped.

    Each frame is padded to the same width so shorter frames overwrite longer
    ones. On stop the line is blanked and the cursor returned to column 0.
    """

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        *,
        label: str = "Thinking",
        interval: float = 0.1,
        frame_count: int = 6,
    ) -> None:
        if frame_count < 1:
            raise ValueError("frame_count must be >= 1")
        self.stream = stream or sys.stdout
        self.label = label
        self.interval = interval
        self.frame_count = frame_count

    @property
    def width(self) -> int:
        return len(self.label) + self.frame_count

    def frame(self, step: int) -> str:
        dots = "." * (step % self.frame_count)
        return "\r" + (self.label + dots).ljust(self.width)

    def clear(self) -> None:
        _emit(self.stream, "\r" + " " * self.width + "\r")

    async def run(self, signal: StopSignal) -> int:
        """Animate until ``signal`` fires. Returns the number of frames drawn."""
        step = 0
        while not signal.fired:
            _emit(self.stream, self.frame(step))
            step += 1
            if await signal.wait(self.interval):
                break
        self.clear()
        return step


class ResponseRenderer:
    """Prints a reply one character at a time after a fixed label."""

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        *,
        label: str = "Bot: ",
        delay: float = 0.01,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.stream = stream or sys.stdout
        self.label = label
        self.delay = delay
        self._sleep = sleep

    async def render(self, text: str) -> None:
        _emit(self.stream, self.label)
        for ch in text:
            _emit(self.stream, ch)
            await self._sleep(self.delay)
        _emit(self.stream, "\n")

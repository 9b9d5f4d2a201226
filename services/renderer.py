"""Typewriter-style progressive reveal of streamed text.

The renderer keeps a reveal cursor separate from the authoritative text.
While the source streams it types one character per 15 ms tick; once the
source has finished but the cursor still lags, it catches up five characters
per 5 ms tick. Shrinking the text snaps the cursor back immediately.

`tick()` is the pure step and is what tests drive. `run()` is the asyncio
loop that calls it on the right cadence and sleeps while there is nothing
to reveal.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

LOGGER = logging.getLogger(__name__)

TYPING_INTERVAL = 0.015
TYPING_STEP = 1
CATCH_UP_INTERVAL = 0.005
CATCH_UP_STEP = 5


class ProgressiveRenderer:
    """Reveal text at a steady cadence independent of network chunking.

    Args:
        on_reveal: Called with the visible text after every revealed increment;
            callers use it to request a scroll to the bottom.
        on_animation_state_change: Called with the new `is_animating` value
            whenever it flips.
        typing_interval: Seconds between ticks while the source streams.
        typing_step: Characters revealed per tick while the source streams.
        catch_up_interval: Seconds between ticks after the source finished.
        catch_up_step: Characters revealed per catch-up tick.
    """

    def __init__(
        self,
        *,
        on_reveal: Optional[Callable[[str], None]] = None,
        on_animation_state_change: Optional[Callable[[bool], None]] = None,
        typing_interval: float = TYPING_INTERVAL,
        typing_step: int = TYPING_STEP,
        catch_up_interval: float = CATCH_UP_INTERVAL,
        catch_up_step: int = CATCH_UP_STEP,
    ) -> None:
        self._on_reveal = on_reveal
        self._on_animation_state_change = on_animation_state_change
        self.typing_interval = typing_interval
        self.typing_step = typing_step
        self.catch_up_interval = catch_up_interval
        self.catch_up_step = catch_up_step

        self._text = ""
        self._streaming = False
        self._revealed = 0
        self._animating = False
        self._wakeup = asyncio.Event()
        self._closed = False

    @property
    def text(self) -> str:
        return self._text

    @property
    def revealed(self) -> int:
        return self._revealed

    @property
    def visible_text(self) -> str:
        return self._text[: self._revealed]

    @property
    def is_streaming(self) -> bool:
        return self._streaming

    @property
    def is_animating(self) -> bool:
        """True while the source streams or the cursor lags the text."""
        return self._streaming or self._revealed < len(self._text)

    def update(self, text: str, is_streaming: bool) -> None:
        """Take a new authoritative text and streaming flag."""
        self._text = text
        self._streaming = is_streaming
        if len(text) < self._revealed:
            self._revealed = len(text)
        self._report_animation_state()
        self._wakeup.set()

    def reset(self, text: str = "", is_streaming: bool = False) -> None:
        """Start over for a different message, revealing from the beginning."""
        self._revealed = 0
        self.update(text, is_streaming)

    def next_delay(self) -> Optional[float]:
        """Seconds until the next tick, or None when fully caught up."""
        if self._revealed >= len(self._text):
            return None
        return self.typing_interval if self._streaming else self.catch_up_interval

    def tick(self) -> int:
        """Reveal the next increment and return the new cursor position."""
        if self._revealed < len(self._text):
            step = self.typing_step if self._streaming else self.catch_up_step
            self._revealed = min(len(self._text), self._revealed + step)
            if self._on_reveal is not None:
                self._on_reveal(self.visible_text)
        self._report_animation_state()
        return self._revealed

    async def run(self) -> None:
        """Tick until `close()` is called, idling while nothing lags."""
        while not self._closed:
            delay = self.next_delay()
            if delay is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            await asyncio.sleep(delay)
            if not self._closed:
                self.tick()

    def close(self) -> None:
        self._closed = True
        self._wakeup.set()

    def _report_animation_state(self) -> None:
        animating = self.is_animating
        if animating == self._animating:
            return
        self._animating = animating
        LOGGER.debug("Renderer animating=%s (revealed %d of %d)", animating, self._revealed, len(self._text))
        if self._on_animation_state_change is not None:
            self._on_animation_state_change(animating)

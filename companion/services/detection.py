"""
Debounced language auto-detection with last-request-wins semantics.

Text changes restart a delay timer; only when the timer elapses does a
detection request fire. Every request is tagged with a generation number and
runs as its own asyncio task. Starting a new request cancels the previous
task, and any response whose generation is no longer current is dropped via
CancellationSignal without ever reaching the caller.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from companion.errors import CancellationSignal
from companion.models import UNKNOWN_LANGUAGE, DetectionState
from companion.services.language import has_signal, normalize_language

logger = logging.getLogger(__name__)

DetectFn = Callable[[str], Awaitable[str]]
DetectedCallback = Callable[[DetectionState], Awaitable[None]]


class DetectionDebouncer:
    """Turns a stream of text changes into at most one live detection request."""

    def __init__(
        self,
        detect: DetectFn,
        delay: float = 0.6,
        timeout: float = 12.0,
        on_detected: Optional[DetectedCallback] = None,
    ):
        self._detect = detect
        self._delay = delay
        self._timeout = timeout
        self._on_detected = on_detected
        self.state = DetectionState()
        self._enabled = True
        self._closed = False
        self._timer: Optional[asyncio.Task] = None
        self._request: Optional[asyncio.Task] = None

    @property
    def enabled(self) -> bool:
        return self._enabled and not self._closed

    def snapshot(self) -> DetectionState:
        return self.state.model_copy()

    def on_text_change(self, text: str) -> None:
        """Restart the debounce timer for the new draft text.

        Text without enough signal clears the detected language at once and
        invalidates whatever request is still outstanding.
        """
        self._cancel_timer()
        if not self.enabled:
            return
        if not has_signal(text):
            self._invalidate()
            self.state.language = None
            return
        self._timer = asyncio.get_running_loop().create_task(self._debounce(text))

    def set_enabled(self, enabled: bool) -> None:
        """Toggle auto-detect. Disabling clears the detected language synchronously."""
        if enabled == self._enabled:
            return
        self._enabled = enabled
        if not enabled:
            self._cancel_timer()
            self._invalidate()
            self.state.language = None
            logger.debug("Auto-detect disabled at generation %d", self.state.generation)

    def fire(self, text: str) -> int:
        """Start a detection request now, superseding any outstanding one.

        Returns the generation the new request is tagged with.
        """
        self._cancel_request()
        self.state.generation += 1
        self.state.in_flight = True
        generation = self.state.generation
        self._request = asyncio.get_running_loop().create_task(self._run(text, generation))
        return generation

    def apply(self, generation: int, language: Optional[str]) -> bool:
        """Apply a detection response if its generation is still current."""
        if self._closed or generation != self.state.generation:
            return False
        self.state.language = language
        self.state.in_flight = False
        return True

    async def wait_idle(self) -> None:
        """Wait until no timer or detection request is pending."""
        while True:
            pending = [
                task for task in (self._timer, self._request)
                if task is not None and not task.done()
            ]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def close(self) -> None:
        """Cancel the timer and any request; no later callback mutates state."""
        self._closed = True
        self._cancel_timer()
        self._invalidate()

    # ── internals ─────────────────────────────────────────────────────

    async def _debounce(self, text: str) -> None:
        await asyncio.sleep(self._delay)
        self._timer = None
        self.fire(text)

    async def _run(self, text: str, generation: int) -> None:
        try:
            language = await self._fetch(text, generation)
        except CancellationSignal as signal:
            logger.debug("Dropped detection response: %s", signal)
            return

        if not self.apply(generation, language) or self._on_detected is None:
            return
        try:
            await self._on_detected(self.snapshot())
        except Exception as exc:
            logger.warning("Detection listener failed (%s): %s", type(exc).__name__, exc)

    async def _fetch(self, text: str, generation: int) -> str:
        try:
            language = await asyncio.wait_for(self._detect(text), timeout=self._timeout)
        except asyncio.CancelledError:
            if generation != self.state.generation:
                raise CancellationSignal(generation) from None
            raise
        except asyncio.TimeoutError:
            logger.warning("Language detection timed out (%.0fs)", self._timeout)
            language = UNKNOWN_LANGUAGE
        except Exception as exc:
            logger.warning("Language detection failed (%s): %s", type(exc).__name__, exc)
            language = UNKNOWN_LANGUAGE

        if generation != self.state.generation:
            raise CancellationSignal(generation)
        return normalize_language(language)

    def _invalidate(self) -> None:
        self._cancel_request()
        self.state.generation += 1
        self.state.in_flight = False

    def _cancel_timer(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None

    def _cancel_request(self) -> None:
        if self._request is not None and not self._request.done():
            self._request.cancel()
        self._request = None

"""
Debounced control input on the asyncio event loop.

:class:`Debouncer` delays a callback until its input has been quiet for
``delay`` seconds.  :class:`SearchInput` wraps one for the search box: typing
is debounced, Enter fires the pending query at once and Escape clears it at
once.  :class:`SliderInput` does the same for the minimum-value slider,
firing on release.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable

from spendgraph.config import SEARCH_DEBOUNCE_SECONDS, SLIDER_DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)

_NOTHING = object()


class Debouncer:
    """
    Call ``callback(value)`` once input stops for ``delay`` seconds.

    Each :meth:`submit` restarts the timer and replaces the pending value.
    Coroutine callbacks are scheduled as tasks on the running loop.
    """

    def __init__(self, delay: float, callback: Callable[[Any], Any]) -> None:
        self.delay = delay
        self._callback = callback
        self._handle: asyncio.TimerHandle | None = None
        self._pending: Any = _NOTHING
        self._tasks: set[asyncio.Task] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def submit(self, value: Any) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
        self._pending = value
        self._handle = loop.call_later(self.delay, self._fire)

    def flush(self) -> None:
        """Fire now with the pending value, if any."""
        if self._handle is None:
            return
        self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
        self._handle = None
        self._pending = _NOTHING

    def _fire(self) -> None:
        value = self._pending
        self._handle = None
        self._pending = _NOTHING
        if value is _NOTHING:
            return

        try:
            result = self._callback(value)
        except Exception:
            logger.exception("Debounced callback %r failed", self._callback)
            return

        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)


class SearchInput:
    """Search box behavior: debounced typing, Enter to submit, Escape to clear."""

    def __init__(
        self,
        on_search: Callable[[str], Any],
        delay: float = SEARCH_DEBOUNCE_SECONDS,
    ) -> None:
        self.value = ""
        self._on_search = on_search
        self._debouncer = Debouncer(delay, on_search)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def type(self, text: str) -> None:
        self.value = text
        self._debouncer.submit(text.strip())

    def key(self, name: str) -> None:
        if name == "Enter":
            if not self._debouncer.pending:
                self._debouncer.submit(self.value.strip())
            self._debouncer.flush()
        elif name == "Escape":
            self.clear()

    def clear(self) -> None:
        self.value = ""
        self._debouncer.cancel()
        self._on_search("")


class SliderInput:
    """Numeric slider: moves are debounced, releasing the handle fires at once."""

    def __init__(
        self,
        on_change: Callable[[float], Any],
        value: float = 0.0,
        delay: float = SLIDER_DEBOUNCE_SECONDS,
    ) -> None:
        self.value = value
        self._debouncer = Debouncer(delay, on_change)

    @property
    def pending(self) -> bool:
        return self._debouncer.pending

    def move(self, value: float) -> None:
        self.value = float(value)
        self._debouncer.submit(self.value)

    def release(self) -> None:
        self._debouncer.flush()

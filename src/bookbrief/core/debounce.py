"""Coalesce rapid query input into at most one search per quiet interval."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

log = structlog.get_logger()

DEFAULT_DELAY = 0.3
MIN_QUERY_LENGTH = 3


class DebouncedQueryChannel:
    """Debounces keystrokes before handing a query to ``on_search``.

    Every ``push`` cancels whatever an earlier push scheduled, including a
    search that already started, so only the latest input can complete.
    Inputs shorter than ``min_length`` after trimming call ``on_clear``
    right away and never search.
    """

    def __init__(
        self,
        on_search: Callable[[str], Awaitable[None]],
        on_clear: Callable[[], None],
        delay: float = DEFAULT_DELAY,
        min_length: int = MIN_QUERY_LENGTH,
    ) -> None:
        self.on_search = on_search
        self.on_clear = on_clear
        self.delay = delay
        self.min_length = min_length
        self._task: asyncio.Task | None = None
        self._closed = False

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def push(self, text: str) -> None:
        if self._closed:
            return
        self.cancel()

        query = text.strip()
        if len(query) < self.min_length:
            self.on_clear()
            return

        self._task = asyncio.get_running_loop().create_task(self._emit(query))

    async def _emit(self, query: str) -> None:
        await asyncio.sleep(self.delay)
        log.debug("debounce_emit", query=query)
        await self.on_search(query)

    def cancel(self) -> None:
        if self.pending:
            self._task.cancel()
        self._task = None

    async def drain(self) -> None:
        """Wait for the currently scheduled emission, if any, to finish."""
        if self._task is not None:
            await asyncio.wait({self._task})

    def close(self) -> None:
        self._closed = True
        self.cancel()

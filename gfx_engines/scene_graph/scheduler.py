"""Next-tick task queue that coalesces repeated triggers per key."""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from typing import Callable, Hashable, Optional

logger = logging.getLogger(__name__)


class DeferredTaskQueue:
    """Runs each scheduled key at most once per tick.

    With a running event loop the batch is drained via ``loop.call_soon``;
    otherwise tasks wait for an explicit ``flush()``.
    """

    def __init__(self) -> None:
        self._tasks: "OrderedDict[Hashable, Callable[[], None]]" = OrderedDict()
        self._handle: Optional[asyncio.Handle] = None

    def schedule(self, key: Hashable, fn: Callable[[], None]) -> None:
        # Latest callback wins; position in the batch is kept.
        self._tasks[key] = fn
        if self._handle is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._handle = loop.call_soon(self.flush)

    def pending(self) -> int:
        return len(self._tasks)

    def flush(self) -> int:
        """Run every queued task once; returns how many ran."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        ran = 0
        while self._tasks:
            key, fn = self._tasks.popitem(last=False)
            try:
                fn()
            except Exception:
                logger.exception("Deferred task %r failed", key)
            ran += 1
        return ran

    def cancel_all(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._tasks.clear()

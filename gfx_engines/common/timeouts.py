"""Timeout wrapper for remote calls."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

from gfx_engines.common.errors import RemoteTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], timeout_s: Optional[float], operation: str) -> T:
    """Race ``awaitable`` against a timer.

    On expiry the inner call is cancelled (which closes any httpx stream it
    holds) and ``RemoteTimeoutError`` is raised. ``timeout_s=None`` disables
    the timer.
    """
    if timeout_s is None:
        return await awaitable
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_s)
    except RemoteTimeoutError:
        raise
    except asyncio.TimeoutError as exc:
        logger.warning("%s timed out after %ss", operation, timeout_s)
        raise RemoteTimeoutError(operation, timeout_s) from exc

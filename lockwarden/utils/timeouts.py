"""Bounded store calls.

No engine operation may block indefinitely on a store, and writes that
count attacks must finish even when the calling request goes away.
"""

import asyncio
from typing import Awaitable, TypeVar

from ..exceptions import StoreTimeout

T = TypeVar("T")


async def bounded(
    awaitable: Awaitable[T],
    timeout: float,
    *,
    store: str,
    operation: str,
    shield: bool = False,
) -> T:
    """Await ``awaitable`` for at most ``timeout`` seconds.

    With ``shield=True`` the underlying call is detached from the caller's
    cancellation: a timeout or an aborted request stops the wait, not the write.
    """
    if shield:
        awaitable = asyncio.shield(asyncio.ensure_future(awaitable))
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout)
    except asyncio.TimeoutError:
        raise StoreTimeout(store, operation, timeout) from None

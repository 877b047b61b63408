"""
Helpers for calling blocking clients (requests, msal, anthropic) from async code.
"""

import asyncio
import functools
from typing import Any, Callable, TypeVar

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a blocking call in the default thread pool and await its result.

    Keeps the event loop free to acknowledge webhook deliveries while a
    Graph, Telegram or Claude request is in flight.
    """
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))

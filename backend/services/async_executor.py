"""
Worker threads for the synchronous Braintree SDK.

Every SDK call (client_token.generate, transaction.sale) is an HTTP request
made on the calling thread. run_blocking() hands it to a small dedicated
pool and awaits the result, so the event loop keeps serving requests while
a charge is in flight.

asyncio cancellation does not reach the worker thread: when checkout stops
waiting (gateway timeout), the SDK call still runs to completion.
in_flight() reports how many such calls are still running, and shutdown
waits for them so no charge is cut off mid-request.
"""
import asyncio
import functools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

from config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

_pool: ThreadPoolExecutor | None = None
_in_flight = 0
_lock = threading.Lock()


def _get_pool() -> ThreadPoolExecutor:
    global _pool
    if _pool is None:
        _pool = ThreadPoolExecutor(
            max_workers=settings.gateway_worker_threads,
            thread_name_prefix="braintree",
        )
        logger.info(f"Gateway worker pool started ({settings.gateway_worker_threads} threads)")
    return _pool


def _tracked(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    global _in_flight
    with _lock:
        _in_flight += 1
    try:
        return func(*args, **kwargs)
    finally:
        with _lock:
            _in_flight -= 1


def in_flight() -> int:
    """Number of SDK calls currently executing in worker threads."""
    return _in_flight


async def run_blocking(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """Await a synchronous SDK call on the gateway worker pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(_get_pool(), functools.partial(_tracked, func, *args, **kwargs))


def shutdown_executor() -> None:
    """Stop the pool at app exit, letting running SDK calls finish."""
    global _pool
    if _pool is None:
        return
    if _in_flight:
        logger.warning(f"Waiting for {_in_flight} gateway call(s) before shutdown")
    _pool.shutdown(wait=True)
    _pool = None
    logger.info("Gateway worker pool stopped")

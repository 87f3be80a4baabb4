"""
Single-flight coalescing of identical concurrent queries.

While one computation for a key is running, later callers with the same
key wait for its outcome instead of starting their own.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Generic, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _consume(future: asyncio.Future) -> None:
    # Mark the exception retrieved when no follower was waiting
    if not future.cancelled():
        future.exception()


class SingleFlight(Generic[T]):
    def __init__(self):
        self._calls: Dict[str, asyncio.Future] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._calls

    async def do(self, key: str, fn: Callable[[], Awaitable[T]]) -> Tuple[T, bool]:
        """
        Run fn() unless a call for key is already running, then share its outcome.

        Followers wait on a shielded future, so cancelling one follower
        never cancels the shared computation. If the leader itself is
        cancelled, waiting followers start over and one of them leads.

        Returns:
            (result, shared) where shared is True for followers
        """
        while True:
            existing = self._calls.get(key)
            if existing is None:
                break
            try:
                return await asyncio.shield(existing), True
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if existing.cancelled() and current is not None and not current.cancelling():
                    logger.debug(f"Leader for {key[:12]} was cancelled, retrying")
                    continue
                raise

        future = asyncio.get_running_loop().create_future()
        future.add_done_callback(_consume)
        self._calls[key] = future
        try:
            result = await fn()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result, False
        finally:
            if self._calls.get(key) is future:
                del self._calls[key]

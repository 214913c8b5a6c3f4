"""
Request coalescing for slow-changing reference data.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict

from helpdesk_shared.logging import get_logger


class RequestCoalescer:
    """Serve concurrent identical requests from one in-flight task.

    At most one task exists per key. The record is dropped as soon as the task
    settles, so a failure is delivered to the callers that were waiting on it
    and the next call starts a fresh request.
    """

    def __init__(self):
        self._in_flight: Dict[str, "asyncio.Task[Any]"] = {}
        self.logger = get_logger("portal.coalescer")

    async def coalesce(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        task = self._in_flight.get(key)
        if task is not None:
            self.logger.debug("Joining in-flight request", key=key)
        else:
            task = asyncio.ensure_future(self._run(key, factory))
            self._in_flight[key] = task

        # Shielded so a cancelled waiter does not cancel the shared request.
        return await asyncio.shield(task)

    async def _run(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        try:
            return await factory()
        finally:
            self._in_flight.pop(key, None)

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    def __len__(self) -> int:
        return len(self._in_flight)

"""Background dispatch for fire-and-forget side effects (mirror, webhook).

Tasks are started after the authoritative write has committed. Their outcome
only reaches the logs; callers never await them. ``drain()`` lets shutdown
code and tests wait for in-flight work.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine

from intake.core.exceptions import MirrorError

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()
        self.failures: list[tuple[str, str]] = []
        self.max_failures = 50

    def submit(
        self,
        coro: Coroutine[Any, Any, Any],
        *,
        name: str,
        log_extra: dict[str, Any] | None = None,
    ) -> asyncio.Task:
        """Schedule ``coro`` on the running loop and track it."""
        task = asyncio.get_running_loop().create_task(self._run(coro, name, log_extra or {}), name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, coro: Coroutine[Any, Any, Any], name: str, log_extra: dict[str, Any]) -> Any:
        try:
            return await coro
        except asyncio.CancelledError:
            logger.info("Background task cancelled: %s", name, extra=log_extra)
            raise
        except MirrorError as exc:
            self._record_failure(name, exc.message)
            logger.warning("Background task failed: %s error=%s", name, exc.message, extra=log_extra)
        except Exception as exc:
            self._record_failure(name, str(exc))
            logger.exception("Background task crashed: %s", name, extra=log_extra)
        return None

    def _record_failure(self, name: str, message: str) -> None:
        self.failures.append((name, message))
        if len(self.failures) > self.max_failures:
            self.failures = self.failures[-self.max_failures:]

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for all in-flight tasks (including ones they schedule)."""
        while self._tasks:
            pending = list(self._tasks)
            await asyncio.wait(pending, timeout=timeout)
            if timeout is not None:
                break

    async def cancel_all(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

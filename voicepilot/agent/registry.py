from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable

from voicepilot.agent.executor import ActionExecutor

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[str], ActionExecutor]


class SessionRegistry:
    """Live executors keyed by session id, at most one per id.

    Creation is check-and-insert without an await in between: the first
    caller for a new id registers a creation task and every concurrent caller
    awaits that same task. A failed start registers nothing.
    """

    def __init__(self, factory: ExecutorFactory) -> None:
        self._factory = factory
        self._executors: dict[str, ActionExecutor] = {}
        self._creating: dict[str, asyncio.Task[ActionExecutor]] = {}

    async def get_or_create(self, session_id: str) -> ActionExecutor:
        executor = self._executors.get(session_id)
        if executor is not None:
            return executor

        task = self._creating.get(session_id)
        if task is None:
            task = asyncio.create_task(self._create(session_id))
            self._creating[session_id] = task
            task.add_done_callback(lambda done: self._forget_creation(session_id, done))
        # Shielded so one cancelled caller does not abort creation for the rest.
        return await asyncio.shield(task)

    async def close(self, session_id: str) -> None:
        task = self._creating.get(session_id)
        if task is not None:
            with contextlib.suppress(Exception):
                await asyncio.shield(task)

        executor = self._executors.pop(session_id, None)
        if executor is None:
            return
        logger.info("Closing session %s", session_id)
        await executor.close()

    def list(self) -> set[str]:
        return set(self._executors)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._executors

    def __len__(self) -> int:
        return len(self._executors)

    async def shutdown(self) -> None:
        for session_id in list(self._creating) + list(self._executors):
            try:
                await self.close(session_id)
            except Exception as exc:
                logger.warning("Failed to close session %s: %s", session_id, exc)

    async def _create(self, session_id: str) -> ActionExecutor:
        executor = self._factory(session_id)
        logger.info("Starting browser session %s", session_id)
        await executor.start()
        self._executors[session_id] = executor
        return executor

    def _forget_creation(self, session_id: str, done: asyncio.Task[ActionExecutor]) -> None:
        if self._creating.get(session_id) is done:
            del self._creating[session_id]
        # Retrieve the exception so a failure nobody awaited is not reported as lost.
        if not done.cancelled():
            done.exception()

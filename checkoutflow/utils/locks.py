"""Per-session serialization for step manager operations."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Mapping, Optional

from ..contracts import StepAnalytics, StepInstance, StepProgress, ValidationResult
from ..manager import StepManager


class SessionLocks:
    """Registry of one ``asyncio.Lock`` per checkout session.

    A session's lock is dropped once no task holds or waits on it.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}
        self._holders: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        self._holders[session_id] = self._holders.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[session_id] -= 1
            if self._holders[session_id] == 0:
                del self._holders[session_id]
                del self._locks[session_id]

    def locked(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    def discard(self, session_id: str) -> None:
        if session_id not in self._holders:
            self._locks.pop(session_id, None)

    def __len__(self) -> int:
        return len(self._locks)


class SerializedStepManager:
    """Runs session-scoped operations of a :class:`StepManager` one at a time.

    Operations on different sessions still run concurrently. Operations keyed
    by instance id are passed through unlocked.
    """

    def __init__(self, manager: StepManager, locks: Optional[SessionLocks] = None) -> None:
        self.manager = manager
        self.locks = locks or SessionLocks()

    async def initialize_steps(self, session_id: str) -> List[StepInstance]:
        async with self.locks.hold(session_id):
            return await self.manager.initialize_steps(session_id)

    async def get_step_progress(self, session_id: str) -> StepProgress:
        async with self.locks.hold(session_id):
            return await self.manager.get_step_progress(session_id)

    async def move_to_next_step(self, session_id: str) -> StepProgress:
        async with self.locks.hold(session_id):
            return await self.manager.move_to_next_step(session_id)

    async def move_to_previous_step(self, session_id: str) -> StepProgress:
        async with self.locks.hold(session_id):
            return await self.manager.move_to_previous_step(session_id)

    async def jump_to_step(self, session_id: str, target_step_name: str) -> StepProgress:
        async with self.locks.hold(session_id):
            return await self.manager.jump_to_step(session_id, target_step_name)

    async def validate_step(
        self,
        session_id: str,
        step_name: str,
        step_data: Optional[Mapping[str, Any]] = None,
    ) -> ValidationResult:
        async with self.locks.hold(session_id):
            return await self.manager.validate_step(session_id, step_name, step_data)

    async def track_navigation(self, session_id: str, step_name: str, action: str) -> None:
        async with self.locks.hold(session_id):
            await self.manager.track_navigation(session_id, step_name, action)

    async def get_step_analytics(self, session_id: str) -> Dict[str, StepAnalytics]:
        async with self.locks.hold(session_id):
            return await self.manager.get_step_analytics(session_id)

    async def complete_step(self, instance_id: str) -> StepInstance:
        return await self.manager.complete_step(instance_id)

    async def activate_step(self, instance_id: str) -> StepInstance:
        return await self.manager.activate_step(instance_id)

    async def deactivate_step(self, instance_id: str) -> StepInstance:
        return await self.manager.deactivate_step(instance_id)

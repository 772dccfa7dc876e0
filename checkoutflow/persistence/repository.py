"""Repository abstraction for checkout step persistence."""

from __future__ import annotations

from typing import Any, Protocol

from ..contracts import StepInstance


class StepRepository(Protocol):
    """Protocol for checkout step persistence backends."""

    async def create(self, instance: StepInstance) -> StepInstance:
        """Persist a new step instance."""

    async def find_many(self, session_id: str) -> list[StepInstance]:
        """Return every step instance of a session ordered by ``order``."""

    async def find_first(
        self, session_id: str, step_name: str
    ) -> StepInstance | None:
        """Return the instance for ``(session_id, step_name)`` if any."""

    async def find_one(self, instance_id: str) -> StepInstance | None:
        """Retrieve a step instance by id."""

    async def update(self, instance_id: str, data: dict[str, Any]) -> StepInstance:
        """Apply a partial update and return the stored instance.

        Raises:
            KeyError: If no instance with ``instance_id`` exists.
        """

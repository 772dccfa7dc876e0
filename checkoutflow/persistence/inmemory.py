"""In-memory implementation of the step repository."""

from __future__ import annotations

from typing import Any, Dict

from ..contracts import StepInstance
from .repository import StepRepository


class InMemoryStepRepository(StepRepository):
    """Store checkout step state in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._steps: Dict[str, StepInstance] = {}

    # ------------------------------------------------------------------
    async def create(self, instance: StepInstance) -> StepInstance:
        self._steps[instance.id] = instance.model_copy(deep=True)
        return instance.model_copy(deep=True)

    async def find_many(self, session_id: str) -> list[StepInstance]:
        steps = [s for s in self._steps.values() if s.session_id == session_id]
        return [s.model_copy(deep=True) for s in sorted(steps, key=lambda s: s.order)]

    async def find_first(
        self, session_id: str, step_name: str
    ) -> StepInstance | None:
        for step in self._steps.values():
            if step.session_id == session_id and step.step_name == step_name:
                return step.model_copy(deep=True)
        return None

    async def find_one(self, instance_id: str) -> StepInstance | None:
        step = self._steps.get(instance_id)
        return step.model_copy(deep=True) if step else None

    async def update(self, instance_id: str, data: dict[str, Any]) -> StepInstance:
        step = self._steps[instance_id]
        updated = StepInstance.model_validate({**step.model_dump(), **data})
        self._steps[instance_id] = updated
        return updated.model_copy(deep=True)

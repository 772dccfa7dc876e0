"""Step progression state machine.

A session owns one :class:`StepInstance` per catalog entry. At most one of
them is active; moving forward completes the active step and activates the
one with the next ``order``. Dependency gating decides which steps can be
jumped to.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence

from .catalog import DEFAULT_CATALOG, StepCatalog
from .constants import DEFAULT_STEP
from .contracts import StepInstance, StepProgress, utcnow
from .errors import (
    InitializationFailure,
    NoNextStep,
    NoPreviousStep,
    ProgressFetchFailure,
    ProgressionBlocked,
    StepNotFound,
    TargetNotFound,
    TargetUnavailable,
)
from .persistence import StepRepository

logger = logging.getLogger(__name__)


def available_steps(
    steps: Iterable[StepInstance],
    completed_steps: Sequence[str],
    catalog: StepCatalog = DEFAULT_CATALOG,
) -> List[str]:
    """Names of steps whose dependencies are all in ``completed_steps``."""
    completed = set(completed_steps)
    available: List[str] = []
    for step in steps:
        definition = catalog.get(step.step_name)
        if definition is None:
            continue
        if all(dep in completed for dep in definition.dependencies):
            available.append(step.step_name)
    return available


def active_step(steps: Iterable[StepInstance]) -> Optional[StepInstance]:
    return next((s for s in steps if s.is_active), None)


def find_step(steps: Iterable[StepInstance], name: Optional[str]) -> Optional[StepInstance]:
    return next((s for s in steps if s.step_name == name), None)


def next_step(
    steps: Sequence[StepInstance], current_name: Optional[str]
) -> Optional[StepInstance]:
    """Instance following ``current_name`` by order.

    Without a current step the first instance is returned.
    """
    if not current_name:
        return steps[0] if steps else None
    current = find_step(steps, current_name)
    if current is None:
        return None
    return next((s for s in steps if s.order == current.order + 1), None)


def previous_step(
    steps: Sequence[StepInstance], current_name: Optional[str]
) -> Optional[StepInstance]:
    if not current_name:
        return None
    current = find_step(steps, current_name)
    if current is None:
        return None
    return next((s for s in steps if s.order == current.order - 1), None)


def build_progress(
    steps: Sequence[StepInstance], catalog: StepCatalog = DEFAULT_CATALOG
) -> StepProgress:
    """Compute the progress snapshot of a session from its instances."""
    if not steps:
        return StepProgress.not_started()

    current = active_step(steps)
    current_name = current.step_name if current else None
    completed = [s.step_name for s in steps if s.is_completed]
    following = next_step(steps, current_name)
    preceding = previous_step(steps, current_name)

    can_proceed = False
    if current is not None:
        definition = catalog.get(current.step_name)
        can_proceed = definition is not None and (
            current.is_completed or definition.can_skip
        )

    return StepProgress(
        current_step=current_name or DEFAULT_STEP,
        completed_steps=completed,
        available_steps=available_steps(steps, completed, catalog),
        next_step=following.step_name if following else None,
        previous_step=preceding.step_name if preceding else None,
        can_proceed=can_proceed,
        errors=dict(current.validation_errors) if current else {},
    )


def _elapsed_seconds(started_at: Optional[datetime], now: datetime) -> int:
    if started_at is None:
        return 0
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    return max(0, int((now - started_at).total_seconds()))


class ProgressionEngine:
    """Moves a session between checkout steps."""

    def __init__(
        self, repository: StepRepository, catalog: StepCatalog = DEFAULT_CATALOG
    ) -> None:
        self._repository = repository
        self._catalog = catalog

    async def initialize_steps(self, session_id: str) -> List[StepInstance]:
        """Create one step instance per catalog entry; only the first is active.

        A session that already has steps is left untouched and its existing
        instances are returned.
        """
        try:
            existing = await self._repository.find_many(session_id)
        except Exception as e:
            logger.error(
                f"Error initializing checkout steps for session_id={session_id}: {e}"
            )
            raise InitializationFailure() from e
        if existing:
            logger.info(f"Checkout steps already exist for session_id={session_id}")
            return existing

        now = utcnow()
        first = self._catalog.first().order
        instances = [
            StepInstance(
                session_id=session_id,
                step_name=definition.name,
                order=definition.order,
                is_active=definition.order == first,
                started_at=now if definition.order == first else None,
            )
            for definition in self._catalog
        ]
        try:
            created = await asyncio.gather(
                *(self._repository.create(instance) for instance in instances)
            )
        except Exception as e:
            logger.error(
                f"Error initializing checkout steps for session_id={session_id}: {e}"
            )
            raise InitializationFailure() from e
        logger.info(f"Initialized {len(created)} checkout steps for session_id={session_id}")
        return list(created)

    async def _fetch_steps(self, session_id: str) -> List[StepInstance]:
        try:
            return await self._repository.find_many(session_id)
        except Exception as e:
            logger.error(f"Error getting step progress for session_id={session_id}: {e}")
            raise ProgressFetchFailure() from e

    async def get_step_progress(self, session_id: str) -> StepProgress:
        steps = await self._fetch_steps(session_id)
        return build_progress(steps, self._catalog)

    async def move_to_next_step(self, session_id: str) -> StepProgress:
        try:
            steps = await self._fetch_steps(session_id)
            progress = build_progress(steps, self._catalog)
            if not progress.can_proceed:
                raise ProgressionBlocked()

            current = find_step(steps, progress.current_step)
            following = find_step(steps, progress.next_step)
            if following is None:
                raise NoNextStep()

            if current is not None:
                await self.complete_step(current.id)
            await self.activate_step(following.id)
        except Exception as e:
            logger.error(f"Error moving to next step for session_id={session_id}: {e}")
            raise
        logger.info(
            f"Moved session_id={session_id} from {progress.current_step} to {following.step_name}"
        )
        return await self.get_step_progress(session_id)

    async def move_to_previous_step(self, session_id: str) -> StepProgress:
        """Reactivate the preceding step.

        The revisited step keeps its completed flag; only its timer restarts.
        """
        try:
            steps = await self._fetch_steps(session_id)
            progress = build_progress(steps, self._catalog)
            if not progress.previous_step:
                raise NoPreviousStep()

            current = find_step(steps, progress.current_step)
            preceding = find_step(steps, progress.previous_step)
            if current is not None:
                await self.deactivate_step(current.id)
            if preceding is not None:
                await self.activate_step(preceding.id)
        except Exception as e:
            logger.error(
                f"Error moving to previous step for session_id={session_id}: {e}"
            )
            raise
        return await self.get_step_progress(session_id)

    async def jump_to_step(self, session_id: str, target_step_name: str) -> StepProgress:
        try:
            steps = await self._fetch_steps(session_id)
            target = find_step(steps, target_step_name)
            if target is None:
                raise TargetNotFound()

            completed = [s.step_name for s in steps if s.is_completed]
            if target_step_name not in available_steps(steps, completed, self._catalog):
                raise TargetUnavailable()

            await asyncio.gather(*(self.deactivate_step(s.id) for s in steps))
            await self.activate_step(target.id)
        except Exception as e:
            logger.error(
                f"Error jumping to step {target_step_name} for session_id={session_id}: {e}"
            )
            raise
        return await self.get_step_progress(session_id)

    async def complete_step(self, instance_id: str) -> StepInstance:
        try:
            step = await self._repository.find_one(instance_id)
            if step is None:
                raise StepNotFound()

            now = utcnow()
            return await self._repository.update(
                instance_id,
                {
                    "is_completed": True,
                    "is_active": False,
                    "completed_at": now,
                    "time_spent": step.time_spent + _elapsed_seconds(step.started_at, now),
                    "attempts": step.attempts + 1,
                    "last_attempt_at": now,
                },
            )
        except Exception as e:
            logger.error(f"Error completing step instance_id={instance_id}: {e}")
            raise

    async def activate_step(self, instance_id: str) -> StepInstance:
        try:
            return await self._repository.update(
                instance_id, {"is_active": True, "started_at": utcnow()}
            )
        except Exception as e:
            logger.error(f"Error activating step instance_id={instance_id}: {e}")
            raise

    async def deactivate_step(self, instance_id: str) -> StepInstance:
        try:
            return await self._repository.update(instance_id, {"is_active": False})
        except Exception as e:
            logger.error(f"Error deactivating step instance_id={instance_id}: {e}")
            raise

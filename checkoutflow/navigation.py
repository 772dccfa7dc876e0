from __future__ import annotations

import logging

from .contracts import NavigationEntry
from .persistence import StepRepository

logger = logging.getLogger(__name__)


class NavigationTracker:
    """Append-only log of navigation actions per step.

    Tracking is best-effort: failures are logged and never raised.
    """

    def __init__(self, repository: StepRepository) -> None:
        self._repository = repository

    async def track_navigation(self, session_id: str, step_name: str, action: str) -> None:
        try:
            step = await self._repository.find_first(session_id, step_name)
            if step is None:
                return

            entry = NavigationEntry(
                action=action, step_name=step_name, session_id=session_id
            )
            await self._repository.update(
                step.id, {"navigation_history": [*step.navigation_history, entry]}
            )
        except Exception as e:
            logger.error(
                f"Error tracking navigation {action!r} on {step_name} "
                f"for session_id={session_id}: {e}"
            )

from __future__ import annotations

import logging
from typing import Dict

from .catalog import DEFAULT_CATALOG, StepCatalog
from .contracts import StepAnalytics, StepInstance
from .errors import AnalyticsFailure
from .persistence import StepRepository

logger = logging.getLogger(__name__)


def step_metrics(step: StepInstance) -> StepAnalytics:
    """Derive engagement metrics from a single step's counters."""
    average = (
        step.time_spent / step.attempts if step.time_spent and step.attempts else 0
    )
    return StepAnalytics(
        time_spent=step.time_spent,
        attempts=step.attempts,
        completion_rate=100 if step.is_completed else 0,
        average_time=average,
        abandonment_rate=100 if step.attempts > 0 and not step.is_completed else 0,
    )


class AnalyticsAggregator:
    """Per-step engagement metrics for a session."""

    def __init__(
        self, repository: StepRepository, catalog: StepCatalog = DEFAULT_CATALOG
    ) -> None:
        self._repository = repository
        self._catalog = catalog

    async def get_step_analytics(self, session_id: str) -> Dict[str, StepAnalytics]:
        try:
            steps = await self._repository.find_many(session_id)
        except Exception as e:
            logger.error(f"Error getting step analytics for session_id={session_id}: {e}")
            raise AnalyticsFailure() from e

        return {
            step.step_name: step_metrics(step)
            for step in steps
            if step.step_name in self._catalog
        }

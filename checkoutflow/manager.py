"""Facade over the checkout step engines."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from .analytics import AnalyticsAggregator
from .catalog import CATALOGS, StepCatalog
from .config import CheckoutConfig, load_config
from .contracts import StepAnalytics, StepInstance, StepProgress, ValidationResult
from .navigation import NavigationTracker
from .persistence import StepRepository, get_repository
from .progression import ProgressionEngine
from .validation import ValidationEngine

logger = logging.getLogger(__name__)


class StepManager:
    """Service responsible for a session's checkout steps.

    Holds only the injected repository and the read-only catalog; every
    operation is delegated to the engine that owns it.

    Args:
        repository: Persistence backend. Defaults to :func:`get_repository`.
        catalog: Step definitions shared by all sessions. Defaults to the
            catalog named by the ``catalog`` config setting.
        advance_on_valid: When true, a successful validation of the active
            step completes it and activates the next one. Defaults to the
            ``advance_on_valid`` config setting.
        config: Optional preloaded configuration.
    """

    def __init__(
        self,
        repository: StepRepository | None = None,
        catalog: StepCatalog | None = None,
        advance_on_valid: Optional[bool] = None,
        config: Optional[CheckoutConfig] = None,
    ) -> None:
        if repository is None:
            repository = get_repository(config=config)
        if catalog is None or advance_on_valid is None:
            config = config or load_config()
            if catalog is None:
                catalog = CATALOGS[config.catalog]
            if advance_on_valid is None:
                advance_on_valid = config.advance_on_valid
        self._repository = repository
        self.catalog = catalog

        self.progression = ProgressionEngine(self._repository, catalog)
        self.validation = ValidationEngine(
            self._repository,
            catalog,
            on_valid=self._advance_validated_step if advance_on_valid else None,
        )
        self.navigation = NavigationTracker(self._repository)
        self.analytics = AnalyticsAggregator(self._repository, catalog)

    @property
    def repository(self) -> StepRepository:
        return self._repository

    async def initialize_steps(self, session_id: str) -> List[StepInstance]:
        return await self.progression.initialize_steps(session_id)

    async def get_step_progress(self, session_id: str) -> StepProgress:
        return await self.progression.get_step_progress(session_id)

    async def move_to_next_step(self, session_id: str) -> StepProgress:
        return await self.progression.move_to_next_step(session_id)

    async def move_to_previous_step(self, session_id: str) -> StepProgress:
        return await self.progression.move_to_previous_step(session_id)

    async def jump_to_step(self, session_id: str, target_step_name: str) -> StepProgress:
        return await self.progression.jump_to_step(session_id, target_step_name)

    async def complete_step(self, instance_id: str) -> StepInstance:
        return await self.progression.complete_step(instance_id)

    async def activate_step(self, instance_id: str) -> StepInstance:
        return await self.progression.activate_step(instance_id)

    async def deactivate_step(self, instance_id: str) -> StepInstance:
        return await self.progression.deactivate_step(instance_id)

    async def validate_step(
        self,
        session_id: str,
        step_name: str,
        step_data: Optional[Mapping[str, Any]] = None,
    ) -> ValidationResult:
        return await self.validation.validate_step(session_id, step_name, step_data)

    async def track_navigation(self, session_id: str, step_name: str, action: str) -> None:
        await self.navigation.track_navigation(session_id, step_name, action)

    async def get_step_analytics(self, session_id: str) -> Dict[str, StepAnalytics]:
        return await self.analytics.get_step_analytics(session_id)

    async def _advance_validated_step(self, session_id: str, step: StepInstance) -> None:
        """Complete a freshly validated active step and activate its successor."""
        if not step.is_active:
            return
        await self.progression.complete_step(step.id)
        steps = await self._repository.find_many(session_id)
        following = next((s for s in steps if s.order == step.order + 1), None)
        if following is not None:
            await self.progression.activate_step(following.id)
        logger.info(
            f"Validated step {step.step_name} completed for session_id={session_id}"
        )


__all__ = ["StepManager"]

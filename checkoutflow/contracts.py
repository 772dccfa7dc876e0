"""Data contracts for checkout step state."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .constants import DEFAULT_STEP


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NavigationEntry(BaseModel):
    """One recorded navigation action on a step."""

    action: str
    timestamp: datetime = Field(default_factory=utcnow)
    step_name: str
    session_id: str


class StepInstance(BaseModel):
    """Mutable per-session state of a single checkout step."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    session_id: str
    step_name: str
    order: int
    is_active: bool = False
    is_completed: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    time_spent: int = 0
    attempts: int = 0
    last_attempt_at: Optional[datetime] = None
    step_data: Dict[str, Any] = Field(default_factory=dict)
    validation_errors: Dict[str, List[str]] = Field(default_factory=dict)
    navigation_history: List[NavigationEntry] = Field(default_factory=list)


class StepProgress(BaseModel):
    """Snapshot of where a session stands in the checkout flow."""

    current_step: str = DEFAULT_STEP
    completed_steps: List[str] = Field(default_factory=list)
    available_steps: List[str] = Field(default_factory=list)
    next_step: Optional[str] = None
    previous_step: Optional[str] = None
    can_proceed: bool = False
    errors: Dict[str, List[str]] = Field(default_factory=dict)

    @classmethod
    def not_started(cls) -> "StepProgress":
        """Progress reported for a session without any step instances."""
        return cls()


class ValidationResult(BaseModel):
    is_valid: bool
    errors: Dict[str, List[str]] = Field(default_factory=dict)


class StepAnalytics(BaseModel):
    """Engagement metrics derived from a step's counters."""

    time_spent: int = 0
    attempts: int = 0
    completion_rate: int = 0
    average_time: float = 0
    abandonment_rate: int = 0

"""checkoutflow: checkout step orchestration for e-commerce sessions."""

from .catalog import DEFAULT_CATALOG, STRICT_CATALOG, StepCatalog, StepDefinition, StepRule
from .contracts import (
    NavigationEntry,
    StepAnalytics,
    StepInstance,
    StepProgress,
    ValidationResult,
)
from .errors import CheckoutStepError
from .manager import StepManager
from .persistence import get_repository
from .utils.locks import SerializedStepManager, SessionLocks

__version__ = "0.1.0"
__all__ = [
    "CheckoutStepError",
    "DEFAULT_CATALOG",
    "STRICT_CATALOG",
    "NavigationEntry",
    "SerializedStepManager",
    "SessionLocks",
    "StepAnalytics",
    "StepCatalog",
    "StepDefinition",
    "StepInstance",
    "StepManager",
    "StepProgress",
    "StepRule",
    "ValidationResult",
    "get_repository",
]

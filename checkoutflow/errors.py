"""Exceptions raised by the checkout step engine."""

from __future__ import annotations

from typing import Optional


class CheckoutStepError(Exception):
    """Base class for checkout step workflow errors."""

    message = "Checkout step error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.message)


class InitializationFailure(CheckoutStepError):
    message = "Failed to initialize checkout steps"


class ProgressFetchFailure(CheckoutStepError):
    message = "Failed to get step progress"


class ProgressionBlocked(CheckoutStepError):
    message = "Cannot proceed to next step - validation failed"


class NoNextStep(CheckoutStepError):
    message = "No next step available"


class NoPreviousStep(CheckoutStepError):
    message = "No previous step available"


class TargetNotFound(CheckoutStepError):
    message = "Target step not found"


class TargetUnavailable(CheckoutStepError):
    message = "Target step is not available"


class StepNotFound(CheckoutStepError):
    message = "Step not found"


class StepConfigNotFound(CheckoutStepError):
    message = "Step configuration not found"


class AnalyticsFailure(CheckoutStepError):
    message = "Failed to get step analytics"

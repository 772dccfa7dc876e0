"""Validation of submitted step data against the step catalog."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from .catalog import DEFAULT_CATALOG, StepCatalog, StepDefinition
from .constants import EMAIL_ERROR
from .contracts import StepInstance, ValidationResult, utcnow
from .errors import StepConfigNotFound, StepNotFound
from .persistence import StepRepository
from .validators import below_minimum, is_missing, is_valid_email, validate_field_format

logger = logging.getLogger(__name__)

OnValidHook = Callable[[str, StepInstance], Awaitable[None]]


def check_step_data(
    definition: StepDefinition, step_data: Mapping[str, Any]
) -> Dict[str, List[str]]:
    """Return field errors for ``step_data``; an empty dict means valid."""
    errors: Dict[str, List[str]] = {}

    email = step_data.get("email")
    if email and not is_valid_email(email):
        errors["email"] = [EMAIL_ERROR]

    for field, rule in definition.validation_rules.items():
        value = step_data.get(field)
        field_errors: List[str] = []

        if rule.required and is_missing(value):
            field_errors.append(
                definition.error_messages.get(field) or f"{field} is required"
            )

        if not is_missing(value):
            if rule.format:
                format_error = validate_field_format(value, rule.format)
                if format_error:
                    field_errors.append(format_error)
            if rule.min is not None and below_minimum(value, rule.min):
                field_errors.append(
                    definition.error_messages.get(field)
                    or f"{field} must be at least {rule.min}"
                )

        if field_errors:
            errors.setdefault(field, []).extend(field_errors)

    return errors


class ValidationEngine:
    """Validates step data and records the outcome on the step instance.

    Validation never changes ``is_active`` or ``is_completed`` by itself. An
    ``on_valid`` hook may be supplied to couple successful validation with a
    progression action.
    """

    def __init__(
        self,
        repository: StepRepository,
        catalog: StepCatalog = DEFAULT_CATALOG,
        on_valid: Optional[OnValidHook] = None,
    ) -> None:
        self._repository = repository
        self._catalog = catalog
        self.on_valid = on_valid

    async def validate_step(
        self,
        session_id: str,
        step_name: str,
        step_data: Optional[Mapping[str, Any]] = None,
    ) -> ValidationResult:
        step_data = dict(step_data or {})
        try:
            step = await self._repository.find_first(session_id, step_name)
            if step is None:
                raise StepNotFound()

            definition = self._catalog.get(step_name)
            if definition is None:
                raise StepConfigNotFound()

            errors = check_step_data(definition, step_data)
            updated = await self._repository.update(
                step.id,
                {
                    "validation_errors": errors,
                    "step_data": step_data,
                    "attempts": step.attempts + 1,
                    "last_attempt_at": utcnow(),
                },
            )
        except Exception as e:
            logger.error(
                f"Error validating step {step_name} for session_id={session_id}: {e}"
            )
            raise

        if errors:
            logger.debug(
                f"Step {step_name} for session_id={session_id} failed validation: "
                f"{sorted(errors)}"
            )
        elif self.on_valid is not None:
            await self.on_valid(session_id, updated)

        return ValidationResult(is_valid=not errors, errors=errors)

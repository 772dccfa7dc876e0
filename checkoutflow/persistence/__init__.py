"""Persistence layer for checkout step state."""

from __future__ import annotations

from typing import Optional

from ..config import CheckoutConfig, load_config
from .inmemory import InMemoryStepRepository
from .repository import StepRepository
from .sqlite import SQLiteStepRepository

try:  # pragma: no cover - optional dependency
    from .postgres import PostgresStepRepository
except ImportError:  # pragma: no cover - optional dependency
    PostgresStepRepository = None  # type: ignore

_repository_instance: StepRepository | None = None


def _build_repository(database_url: Optional[str]) -> StepRepository:
    if not database_url:
        return InMemoryStepRepository()
    scheme, _, rest = database_url.partition("://")
    if scheme == "sqlite":
        return SQLiteStepRepository(rest)
    if scheme in ("postgres", "postgresql"):
        if PostgresStepRepository is None:
            raise RuntimeError("Postgres support not available")
        return PostgresStepRepository(database_url)
    raise ValueError(f"Unsupported database backend: {database_url}")


def get_repository(
    database_url: Optional[str] = None, config: Optional[CheckoutConfig] = None
) -> StepRepository:
    """Return the process-wide step repository.

    With no arguments the cached repository is reused. Otherwise a new one is
    built from ``database_url``, falling back to ``config`` (or the loaded
    configuration) and then to in-memory storage.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    url = database_url or (config or load_config()).database_url
    _repository_instance = _build_repository(url)
    return _repository_instance


__all__ = [
    "StepRepository",
    "SQLiteStepRepository",
    "PostgresStepRepository",
    "InMemoryStepRepository",
    "get_repository",
]

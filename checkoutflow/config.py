from __future__ import annotations

import os
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel

CONFIG_PATH_ENV = "CHECKOUTFLOW_CONFIG"
# First match wins.
DATABASE_URL_ENVS = ("CHECKOUTFLOW_DATABASE_URL", "DATABASE_URL")


class CheckoutConfig(BaseModel):
    """Settings for the step manager and its storage backend.

    ``database_url`` picks the repository: unset for in-memory,
    ``sqlite://<path>`` or ``postgresql://...``. ``catalog`` names one of the
    bundled step catalogs.
    """

    database_url: Optional[str] = None
    advance_on_valid: bool = False
    catalog: Literal["default", "strict"] = "default"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


def _read_yaml(path: str) -> Dict[str, Any]:
    if not os.path.exists(path):
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _database_url_from_env() -> Optional[str]:
    for name in DATABASE_URL_ENVS:
        value = os.getenv(name)
        if value:
            return value
    return None


def load_config(path: Optional[str] = None) -> CheckoutConfig:
    """Build a :class:`CheckoutConfig` from YAML plus environment overrides.

    The file is ``path``, else ``$CHECKOUTFLOW_CONFIG``, else ``config.yaml``;
    a missing file yields defaults. A database URL in the environment
    replaces the one in the file.
    """
    data = _read_yaml(path or os.getenv(CONFIG_PATH_ENV, "config.yaml"))
    env_url = _database_url_from_env()
    if env_url:
        data["database_url"] = env_url
    return CheckoutConfig(**data)

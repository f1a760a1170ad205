"""
Config system - typed database configuration.

Sources are merged with precedence:
    explicit overrides > environment variables > .env file > defaults

Environment keys use a prefix (``PALMRECORD_DB_`` by default):

    PALMRECORD_DB_URL=sqlite:///app.db
    PALMRECORD_DB_CONNECT_RETRIES=5
    PALMRECORD_DB_OPTIONS={"timeout": 10}
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import dotenv_values

from .faults.domains import ConfigInvalidFault

__all__ = ["DatabaseConfig"]

DEFAULT_ENV_PREFIX = "PALMRECORD_DB_"


@dataclass
class DatabaseConfig:
    """
    Connection settings for one database alias.

    Attributes:
        url: Database URL (``sqlite:///path.db`` or ``sqlite:///:memory:``)
        alias: Name the database is registered under
        connect_retries: Connection attempts before giving up
        connect_retry_delay: Seconds between attempts
        options: Driver-specific keyword options
    """

    url: str = "sqlite:///:memory:"
    alias: str = "default"
    connect_retries: int = 3
    connect_retry_delay: float = 0.5
    options: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(
        cls,
        prefix: str = DEFAULT_ENV_PREFIX,
        env_file: Optional[str] = None,
        **overrides: Any,
    ) -> DatabaseConfig:
        """
        Build a config from a .env file, the process environment and overrides.

        Args:
            prefix: Environment variable prefix
            env_file: Optional path to a .env file
            **overrides: Highest-precedence field values
        """
        raw: Dict[str, Any] = {}

        if env_file and Path(env_file).exists():
            for key, value in dotenv_values(env_file).items():
                if key.startswith(prefix) and value is not None:
                    raw[key[len(prefix):].lower()] = value

        for key, value in os.environ.items():
            if key.startswith(prefix):
                raw[key[len(prefix):].lower()] = value

        known = {f.name for f in fields(cls)}
        data: Dict[str, Any] = {}
        for key, value in raw.items():
            if key in known:
                data[key] = _parse_value(value)
        data.update(overrides)

        config = cls(**data)
        config.validate()
        return config

    def validate(self) -> None:
        """Reject values that cannot produce a working connection."""
        if not isinstance(self.url, str) or ("://" not in self.url and not self.url.startswith("sqlite:")):
            raise ConfigInvalidFault("url", f"not a database URL: {self.url!r}")
        if not isinstance(self.connect_retries, int) or self.connect_retries < 1:
            raise ConfigInvalidFault("connect_retries", "must be a positive integer")
        if not isinstance(self.options, dict):
            raise ConfigInvalidFault("options", "must be a JSON object")

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


def _parse_value(value: Any) -> Any:
    """Parse string value to appropriate type."""
    if not isinstance(value, str):
        return value

    # Boolean
    if value.lower() in ("true", "yes"):
        return True
    if value.lower() in ("false", "no"):
        return False

    # Number
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        pass

    # JSON
    if value.startswith(("{", "[")):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

    return value

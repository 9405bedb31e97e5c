"""Runtime settings, read from ``CREDVAULT_*`` environment variables."""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from .crypto import DEFAULT_COST, MAX_MEMORY_COST, MAX_TIME_COST, Argon2Cost
from .errors import ValidationError

ENV_PREFIX = "CREDVAULT_"

_TRUE = {"1", "true", "yes", "on"}
_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}


def default_db_path() -> Path:
    if sys.platform == "win32":
        base = Path(os.environ.get("APPDATA", Path.home()))
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))
    return base / "credvault" / "vault.db"


class Settings(BaseModel):
    """Application settings."""

    db_path: Path = Field(default_factory=default_db_path)
    log_level: str = "WARNING"
    log_file: Optional[Path] = None
    log_file_only: bool = False
    argon2_time_cost: int = Field(default=DEFAULT_COST.time_cost, ge=1, le=MAX_TIME_COST)
    argon2_memory_cost: int = Field(default=DEFAULT_COST.memory_cost, ge=8, le=MAX_MEMORY_COST)
    argon2_parallelism: int = Field(default=DEFAULT_COST.parallelism, ge=1, le=255)

    @field_validator("log_level")
    @classmethod
    def _check_level(cls, value: str) -> str:
        value = value.upper()
        if value == "WARN":
            value = "WARNING"
        if value not in _LEVELS:
            raise ValueError(f"unknown log level {value!r}")
        return value

    @property
    def cost(self) -> Argon2Cost:
        return Argon2Cost(
            time_cost=self.argon2_time_cost,
            memory_cost=self.argon2_memory_cost,
            parallelism=self.argon2_parallelism,
        )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from *environ* (defaults to ``os.environ``)."""
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}

        if env.get(ENV_PREFIX + "DB"):
            values["db_path"] = Path(env[ENV_PREFIX + "DB"]).expanduser()
        if env.get(ENV_PREFIX + "LOG_LEVEL"):
            values["log_level"] = env[ENV_PREFIX + "LOG_LEVEL"]
        if env.get(ENV_PREFIX + "LOG_FILE"):
            values["log_file"] = Path(env[ENV_PREFIX + "LOG_FILE"]).expanduser()
        if env.get(ENV_PREFIX + "LOG_FILE_ONLY"):
            values["log_file_only"] = env[ENV_PREFIX + "LOG_FILE_ONLY"].strip().lower() in _TRUE
        for name in ("time_cost", "memory_cost", "parallelism"):
            raw = env.get(f"{ENV_PREFIX}ARGON2_{name.upper()}")
            if raw:
                values[f"argon2_{name}"] = raw

        try:
            return cls.model_validate(values)
        except PydanticValidationError as exc:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in e['loc'])}: {e['msg']}" for e in exc.errors()
            )
            raise ValidationError(f"Invalid configuration: {problems}") from exc

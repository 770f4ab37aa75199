"""
Steward configuration - YAML files with ${VAR} environment substitution.

Example config.yaml:

    database: ${DATABASE_URL}
    redis:
      url: ${REDIS_URL}
    catalog: config/tools.yaml
    workflows: config/workflows
    autonomy:
      graduation_threshold: 10
      low_confidence_threshold: 0.5
    scheduler:
      timezone: Australia/Sydney
"""

import logging
import os
import re
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

import yaml

from .constants import (
    AUTO_EXECUTE_LEVEL,
    DEFAULT_CONTEXT_TOKEN_BUDGET,
    DEFAULT_TIMEZONE,
    GRADUATION_THRESHOLD,
    LOW_CONFIDENCE_THRESHOLD,
    PENDING_ACTION_TTL_MS,
)

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")


class ConfigError(ValueError):
    """Raised when a configuration file cannot be read or is invalid."""


def substitute_env(raw: str, source: str = "<string>") -> str:
    """Replace ${VAR} with environment variable values."""

    def _replace_env(match):
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(
                f"Environment variable '{var_name}' not set "
                f"(referenced in config file '{source}')"
            )
        return value

    return _ENV_PATTERN.sub(_replace_env, raw)


def load_yaml_file(path: str) -> Any:
    """Read a YAML file with ${VAR} environment variable substitution."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = f.read()
    except OSError as e:
        raise ConfigError(f"Cannot read config file '{path}': {e}") from e

    try:
        return yaml.safe_load(substitute_env(raw, path))
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in '{path}': {e}") from e


@dataclass
class EngineConfig:
    """Engine-wide settings. Every field has a working default."""
    graduation_threshold: int = GRADUATION_THRESHOLD
    auto_execute_level: int = AUTO_EXECUTE_LEVEL
    low_confidence_threshold: float = LOW_CONFIDENCE_THRESHOLD
    context_token_budget: int = DEFAULT_CONTEXT_TOKEN_BUDGET
    pending_action_ttl_ms: int = PENDING_ACTION_TTL_MS
    timezone: str = DEFAULT_TIMEZONE
    database: Optional[str] = None
    redis_url: Optional[str] = None
    event_source: str = "steward"
    catalog_path: Optional[str] = None
    workflows_path: Optional[str] = None
    tool_service_url: Optional[str] = None

    def validate(self) -> None:
        if self.graduation_threshold < 1:
            raise ConfigError("autonomy.graduation_threshold must be at least 1")
        if not 0 <= self.auto_execute_level <= 4:
            raise ConfigError("autonomy.auto_execute_level must be between 0 and 4")
        if not 0.0 <= self.low_confidence_threshold <= 1.0:
            raise ConfigError("autonomy.low_confidence_threshold must be between 0 and 1")
        if self.context_token_budget <= 0:
            raise ConfigError("context.token_budget must be positive")
        if self.pending_action_ttl_ms <= 0:
            raise ConfigError("approvals.ttl_ms must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EngineConfig":
        """
        Build from a parsed config mapping.

        Accepts both the sectioned layout shown in the module docstring and
        flat keys matching the field names.
        """
        data = dict(data or {})
        values: Dict[str, Any] = {}

        autonomy = data.get("autonomy") or {}
        for key in ("graduation_threshold", "auto_execute_level", "low_confidence_threshold"):
            if key in autonomy:
                values[key] = autonomy[key]

        context = data.get("context") or {}
        if "token_budget" in context:
            values["context_token_budget"] = context["token_budget"]

        approvals = data.get("approvals") or {}
        if "ttl_ms" in approvals:
            values["pending_action_ttl_ms"] = approvals["ttl_ms"]

        scheduler = data.get("scheduler") or {}
        if "timezone" in scheduler:
            values["timezone"] = scheduler["timezone"]
        if "event_source" in scheduler:
            values["event_source"] = scheduler["event_source"]

        redis = data.get("redis")
        if isinstance(redis, dict):
            values["redis_url"] = redis.get("url")
        elif redis:
            values["redis_url"] = redis

        tool_service = data.get("tool_service")
        if isinstance(tool_service, dict):
            values["tool_service_url"] = tool_service.get("url")
        elif tool_service:
            values["tool_service_url"] = tool_service

        if data.get("database"):
            values["database"] = data["database"]
        if data.get("catalog"):
            values["catalog_path"] = data["catalog"]
        if data.get("workflows"):
            values["workflows_path"] = data["workflows"]

        known = {f.name for f in fields(cls)}
        for key, value in data.items():
            if key in known and key not in values:
                values[key] = value

        config = cls(**values)
        config.validate()
        return config


def load_config(path: str) -> EngineConfig:
    """Read and validate an engine config file."""
    data = load_yaml_file(path) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file '{path}' must contain a mapping")
    config = EngineConfig.from_dict(data)
    logger.info(f"Loaded config from {path}")
    return config

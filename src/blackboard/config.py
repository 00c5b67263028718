"""Process configuration read from the environment.

Environment Variables:
    BLACKBOARD_CULTURE: Culture name used for conversions (default invariant).
    BLACKBOARD_AGGREGATION_OPTIONS: Comma separated AggregationOptions names,
        e.g. "exclude_null_values_from_count,ignore_aggregation_errors".
    BLACKBOARD_LOG_LEVEL: Logging level for configure_logging() (default WARNING).

The engine itself never reads these; front-ends (the CLI, services) pass the
resulting values explicitly.
"""

from __future__ import annotations

import logging
import os

from blackboard.model.conversions import Culture, UnknownCultureError
from blackboard.model.enums import AggregationOptions

BLACKBOARD_CULTURE_ENV = "BLACKBOARD_CULTURE"
BLACKBOARD_AGGREGATION_OPTIONS_ENV = "BLACKBOARD_AGGREGATION_OPTIONS"
BLACKBOARD_LOG_LEVEL_ENV = "BLACKBOARD_LOG_LEVEL"

DEFAULT_LOG_LEVEL = "WARNING"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ConfigError(Exception):
    """Raised when a configuration value is set but invalid."""


def _get_env_str(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def get_default_culture() -> Culture:
    """Culture named by BLACKBOARD_CULTURE, invariant when unset.

    Raises:
        ConfigError: If the culture name is unknown.
    """
    name = _get_env_str(BLACKBOARD_CULTURE_ENV)
    try:
        return Culture.from_name(name)
    except UnknownCultureError as e:
        raise ConfigError(f"{BLACKBOARD_CULTURE_ENV}: {e}") from e


def parse_aggregation_options(text: str) -> AggregationOptions:
    """Parse comma separated option names (case-insensitive, '-' or '_').

    Raises:
        ConfigError: If a name is not an AggregationOptions member.
    """
    options = AggregationOptions.DEFAULT
    for part in text.split(","):
        name = part.strip().upper().replace("-", "_")
        if not name:
            continue
        try:
            options |= AggregationOptions[name]
        except KeyError as e:
            valid = sorted(m.name.lower() for m in AggregationOptions if m.name)
            raise ConfigError(f"Unknown aggregation option '{part.strip()}'. Valid options: {valid}") from e
    return options


def get_default_aggregation_options() -> AggregationOptions:
    """Options named by BLACKBOARD_AGGREGATION_OPTIONS, DEFAULT when unset.

    Raises:
        ConfigError: If an option name is unknown.
    """
    return parse_aggregation_options(_get_env_str(BLACKBOARD_AGGREGATION_OPTIONS_ENV))


def get_log_level() -> int:
    """Numeric level named by BLACKBOARD_LOG_LEVEL (default WARNING).

    Raises:
        ConfigError: If the level name is not a logging level.
    """
    name = _get_env_str(BLACKBOARD_LOG_LEVEL_ENV, DEFAULT_LOG_LEVEL).upper() or DEFAULT_LOG_LEVEL
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ConfigError(f"{BLACKBOARD_LOG_LEVEL_ENV} must be a logging level name, got '{name}'")
    return level


def configure_logging(level: int | None = None) -> None:
    """Send log records to stderr. Only front-ends call this."""
    logging.basicConfig(
        level=level if level is not None else get_log_level(),
        format=LOG_FORMAT,
    )

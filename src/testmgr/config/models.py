#
# config/models.py
#
"""
Attrs-based data models for testmgr configuration structure.
"""

import logging
from pathlib import Path
from typing import Any

from attrs import define, field

DEFAULT_COMMAND_TEMPLATE = "${interpreter} ${entrypoint} test ${target} ${args}"
CHANNEL_TYPES = ("pty", "pipe")


# --- Validators ---
def _validate_log_level(inst: Any, attr: Any, value: str) -> None:
    """Validator for standard logging level names."""
    valid = logging.getLevelNamesMapping().keys()
    if value.upper() not in valid:
        raise ValueError(f"Invalid log_level '{value}'. Must be one of {list(valid)}.")


def _validate_positive_int(inst: Any, attr: Any, value: int) -> None:
    """Validator ensures integer is positive."""
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValueError(f"Field '{attr.name}' must be positive integer, got {value!r}")


def _validate_non_empty(inst: Any, attr: Any, value: str) -> None:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Field '{attr.name}' must be a non-empty string, got {value!r}")


def _validate_string_list(inst: Any, attr: Any, value: tuple[str, ...]) -> None:
    if not all(isinstance(item, str) for item in value):
        raise ValueError(f"Field '{attr.name}' must be a list of strings, got {value!r}")


def _validate_channel(inst: Any, attr: Any, value: str) -> None:
    if value not in CHANNEL_TYPES:
        raise ValueError(f"Invalid channel '{value}'. Must be one of {list(CHANNEL_TYPES)}.")


def _validate_profiles(inst: Any, attr: Any, value: dict[str, tuple[str, ...]]) -> None:
    for name, args in value.items():
        if not isinstance(name, str) or not all(isinstance(a, str) for a in args):
            raise ValueError(f"Profile '{name}' must map to a list of strings, got {args!r}")


def _validate_environment(inst: Any, attr: Any, value: dict[str, str]) -> None:
    for key, val in value.items():
        if not isinstance(key, str) or not isinstance(val, str):
            raise ValueError(f"Environment override '{key}' must be a string, got {val!r}")


def _to_str_tuple(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _to_profiles(value: Any) -> dict[str, tuple[str, ...]]:
    return {name: _to_str_tuple(args) for name, args in dict(value).items()}


# --- Section models ---
@define(frozen=True, slots=True)
class RunnerConfig:
    """How the test process is built and launched."""

    interpreter: str = field(default="python3", validator=_validate_non_empty)
    entrypoint: str = field(default="manage.py", validator=_validate_non_empty)
    command_template: str = field(default=DEFAULT_COMMAND_TEMPLATE, validator=_validate_non_empty)
    # Ad-hoc arguments; when non-empty they win over the active profile.
    arguments: tuple[str, ...] = field(
        factory=tuple, converter=_to_str_tuple, validator=_validate_string_list
    )
    profiles: dict[str, tuple[str, ...]] = field(
        factory=lambda: {"Default": ()}, converter=_to_profiles, validator=_validate_profiles
    )
    active_profile: str = field(default="Default")
    environment: dict[str, str] = field(factory=dict, converter=dict, validator=_validate_environment)
    channel: str = field(default="pty", validator=_validate_channel)
    tick_interval_ms: int = field(default=200, validator=_validate_positive_int)
    notify_interval_ms: int = field(default=200, validator=_validate_positive_int)


@define(frozen=True, slots=True)
class DiscoveryConfig:
    """Where test files live and what a test looks like."""

    file_pattern: str = field(default="**/*test*.py", validator=_validate_non_empty)
    method_prefix: str = field(default="test_", validator=_validate_non_empty)
    base_classes: tuple[str, ...] = field(
        factory=tuple, converter=_to_str_tuple, validator=_validate_string_list
    )


@define(frozen=True, slots=True)
class WatchConfig:
    """Change-driven re-run settings."""

    enabled: bool = field(default=False)
    pattern: str = field(default="**/*.py", validator=_validate_non_empty)
    debounce_ms: int = field(default=1000, validator=_validate_positive_int)
    run_affected_only: bool = field(default=True)


@define(frozen=True, slots=True)
class HistoryConfig:
    """Session history retention and storage location."""

    max_sessions: int = field(default=50, validator=_validate_positive_int)
    max_tests_per_session: int = field(default=1000, validator=_validate_positive_int)
    storage_path: Path = field(default=Path(".testmgr/history.json"), converter=Path)


@define(frozen=True, slots=True)
class GlobalConfig:
    """Global default settings for testmgr."""

    log_level: str = field(default="INFO", validator=_validate_log_level)

    @property
    def numeric_log_level(self) -> int:
        return logging.getLevelNamesMapping()[self.log_level.upper()]


@define(frozen=True, slots=True)
class TestmgrConfig:
    """Root configuration object for the testmgr application."""

    __test__ = False

    global_config: GlobalConfig = field(factory=GlobalConfig, metadata={"toml_name": "global"})
    runner: RunnerConfig = field(factory=RunnerConfig)
    discovery: DiscoveryConfig = field(factory=DiscoveryConfig)
    watch: WatchConfig = field(factory=WatchConfig)
    history: HistoryConfig = field(factory=HistoryConfig)


# 🔼⚙️

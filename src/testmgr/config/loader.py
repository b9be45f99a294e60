#
# config/loader.py
#
"""
Loads the testmgr TOML configuration file into the attrs models.
"""

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import attrs
import structlog

from testmgr.config.models import (
    DiscoveryConfig,
    GlobalConfig,
    HistoryConfig,
    RunnerConfig,
    TestmgrConfig,
    WatchConfig,
)
from testmgr.exceptions import ConfigurationError
from testmgr.telemetry import StructLogger

log: StructLogger = structlog.get_logger("config.loader")

DEFAULT_CONFIG_NAME = "testmgr.toml"

# Section name in the TOML file -> model class.
SECTION_MODELS: dict[str, type] = {
    "global": GlobalConfig,
    "runner": RunnerConfig,
    "discovery": DiscoveryConfig,
    "watch": WatchConfig,
    "history": HistoryConfig,
}

# Environment variable -> (section, key). Env values win over the file.
ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TESTMGR_LOG_LEVEL": ("global", "log_level"),
    "TESTMGR_PYTHON": ("runner", "interpreter"),
}


def _build_section(name: str, model: type, data: Any, config_path: Path | None) -> Any:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"Section [{name}] must be a table", path=str(config_path) if config_path else None)

    known = {a.name for a in attrs.fields(model)}
    unknown = sorted(set(data) - known)
    if unknown:
        log.warning("Ignoring unknown configuration keys", section=name, keys=unknown)

    try:
        return model(**{k: v for k, v in data.items() if k in known})
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Invalid value in section [{name}]: {e}",
            path=str(config_path) if config_path else None,
            details=e,
        ) from e


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    for env_var, (section, key) in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            log.debug("Applying environment override", env_var=env_var, section=section, key=key)
            raw.setdefault(section, {})
            raw[section] = {**raw[section], key: value}
    return raw


def config_from_mapping(raw: Mapping[str, Any], config_path: Path | None = None) -> TestmgrConfig:
    """Builds a TestmgrConfig from an already-parsed TOML document."""
    sections: dict[str, Any] = {}
    for toml_name, model in SECTION_MODELS.items():
        if toml_name in raw:
            sections[toml_name] = _build_section(toml_name, model, raw[toml_name], config_path)

    unknown_sections = sorted(set(raw) - set(SECTION_MODELS))
    if unknown_sections:
        log.warning("Ignoring unknown configuration sections", sections=unknown_sections)

    global_config = sections.pop("global", None)
    kwargs = {"global_config": global_config} if global_config is not None else {}
    return TestmgrConfig(**kwargs, **sections)


def load_config(config_path: Path | None) -> TestmgrConfig:
    """
    Loads, validates and returns the configuration.

    A missing file is not an error: defaults (plus environment overrides) are used.
    """
    raw: dict[str, Any] = {}
    if config_path is not None and config_path.is_file():
        log.info("Loading configuration", path=str(config_path), emoji_key="config")
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML: {e}", path=str(config_path), details=e) from e
        except OSError as e:
            raise ConfigurationError(f"Cannot read file: {e}", path=str(config_path), details=e) from e
    else:
        log.info("No configuration file found, using defaults", path=str(config_path))

    config = config_from_mapping(_apply_env_overrides(raw), config_path)
    log.debug("Configuration loaded", active_profile=config.runner.active_profile)
    return config


# 🔼⚙️

#
# config/__init__.py
#
"""
Configuration handling sub-package for testmgr.

Exports the loading function and core configuration models.
"""

from .loader import DEFAULT_CONFIG_NAME, config_from_mapping, load_config
from .models import (
    DiscoveryConfig,
    GlobalConfig,
    HistoryConfig,
    RunnerConfig,
    TestmgrConfig,
    WatchConfig,
)

__all__ = [
    "DEFAULT_CONFIG_NAME",
    "DiscoveryConfig",
    "GlobalConfig",
    "HistoryConfig",
    "RunnerConfig",
    "TestmgrConfig",
    "WatchConfig",
    "config_from_mapping",
    "load_config",
]

# 🔼⚙️

#
# src/testmgr/runtime/__init__.py
#
"""
Runtime coordination: the orchestrator, single-run handling and watch mode.
"""

from .orchestrator import TestOrchestrator
from .run_handler import RunHandler, RunSummary
from .watch_engine import WatchEngine, WatchState, find_companion, is_test_file

__all__ = [
    "RunHandler",
    "RunSummary",
    "TestOrchestrator",
    "WatchEngine",
    "WatchState",
    "find_companion",
    "is_test_file",
]

# 🔼⚙️

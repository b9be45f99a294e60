#
# src/testmgr/history/__init__.py
#
"""
Test session history, persistence and analytics.
"""

from .manager import HISTORY_KEY, HistoryManager
from .models import HistorySummary, RecordStatus, RunSession, TestAggregate, TestRunRecord
from .store import JsonFileStore, KeyValueStore

__all__ = [
    "HISTORY_KEY",
    "HistoryManager",
    "HistorySummary",
    "JsonFileStore",
    "KeyValueStore",
    "RecordStatus",
    "RunSession",
    "TestAggregate",
    "TestRunRecord",
]

#
# src/testmgr/discovery/__init__.py
#
"""
Test discovery sub-package for testmgr.
"""
from .engine import DiscoveryEngine
from .models import EntityKind, SourceLocation, TestEntity
from .scanner import DEFAULT_TEST_BASE_CLASSES, is_test_group, scan_source

__all__ = [
    "DEFAULT_TEST_BASE_CLASSES",
    "DiscoveryEngine",
    "EntityKind",
    "SourceLocation",
    "TestEntity",
    "is_test_group",
    "scan_source",
]

# 🔼⚙️

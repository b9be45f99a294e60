# src/testmgr/telemetry/__init__.py

"""
Logging and telemetry sub-package for testmgr.
"""

from .logger import StructLogger, setup_logging

__all__ = ["StructLogger", "setup_logging"]

# 🔼⚙️

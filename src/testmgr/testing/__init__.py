#
# src/testmgr/testing/__init__.py
#
"""
Test command construction and process execution sub-package for testmgr.
"""
from .channels import PipeProcessChannel, PtyProcessChannel
from .command import CommandBuilder, Invocation
from .factory import get_process_channel
from .protocols import ProcessChannel

__all__ = [
    "CommandBuilder",
    "Invocation",
    "PipeProcessChannel",
    "ProcessChannel",
    "PtyProcessChannel",
    "get_process_channel",
]

# 🔼⚙️

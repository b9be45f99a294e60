#
# src/testmgr/testing/protocols.py
#
"""
Defines protocols and data structures for test process execution.
"""
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from testmgr.testing.command import Invocation

DataCallback = Callable[[str], None]
ExitCallback = Callable[[int], None]


@runtime_checkable
class ProcessChannel(Protocol):
    """
    Protocol for a reusable channel that runs one test process at a time and
    streams its combined output.
    """

    @property
    def is_busy(self) -> bool:
        """True from a successful start() until the process has exited."""
        ...

    async def start(
        self,
        invocation: Invocation,
        on_data: DataCallback,
        on_exit: ExitCallback | None = None,
    ) -> None:
        """
        Spawns the process and begins streaming output to ``on_data``.

        Raises:
            ProcessSpawnError: the process could not be started.
        """
        ...

    async def wait(self) -> int:
        """Waits for the current process and its output stream; returns the exit code."""
        ...

    async def run(
        self,
        invocation: Invocation,
        on_data: DataCallback,
        on_exit: ExitCallback | None = None,
    ) -> int:
        """start() followed by wait()."""
        ...

    def cancel(self) -> None:
        """Asks the running process to stop; repeats once after a grace period."""
        ...

    def close(self) -> None:
        """Releases the channel. A running process is interrupted."""
        ...

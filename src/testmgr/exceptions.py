# src/testmgr/exceptions.py

"""
Custom exceptions for testmgr.
"""


class TestmgrError(Exception):
    """Base class for all testmgr errors."""

    __test__ = False

    def __init__(self, message: str, details: Exception | None = None):
        self.details = details
        super().__init__(message)
        if details is not None:
            self.add_note(f"Original error: {type(details).__name__}: {details}")


class ConfigurationError(TestmgrError):
    """Raised when the configuration file is missing values or holds invalid ones."""

    def __init__(
        self,
        message: str,
        path: str | None = None,
        details: Exception | None = None,
    ):
        self.path = path
        full_message = f"[Config] {message}"
        if path:
            full_message += f" (File: '{path}')"
        super().__init__(full_message, details)


class DiscoveryError(TestmgrError):
    """Raised when a source file cannot be read or scanned."""

    def __init__(
        self,
        message: str,
        file_path: str | None = None,
        details: Exception | None = None,
    ):
        self.file_path = file_path
        full_message = f"[Discovery] {message}"
        if file_path:
            full_message += f" (File: '{file_path}')"
        super().__init__(full_message, details)


class ExecutionError(TestmgrError):
    """Base class for errors raised while running the test process."""

    pass


class ProcessSpawnError(ExecutionError):
    """The test process could not be started (bad interpreter path, missing cwd...)."""

    def __init__(self, message: str, command: str | None = None, details: Exception | None = None):
        self.command = command
        full_message = f"[Execution] {message}"
        if command:
            full_message += f" (Command: '{command}')"
        super().__init__(full_message, details)


class RunInProgressError(ExecutionError):
    """A run was requested while another one is still active."""

    pass


class MonitoringSetupError(TestmgrError):
    """The filesystem observer for watch mode could not be started."""

    pass


class CoverageParseError(TestmgrError):
    """A coverage report exists but could not be parsed."""

    pass


class HistoryStorageError(TestmgrError):
    """Session history could not be read from or written to storage."""

    pass


# 🔼⚙️

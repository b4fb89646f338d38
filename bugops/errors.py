"""Exceptions shared across bugops.

Messages never include credentials.
"""


class BugopsError(Exception):
    """Base exception for operator failures."""

    pass


class ConfigurationError(BugopsError):
    """Configuration problem that is reported but does not stop the operator."""

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(message)


class StartupError(BugopsError):
    """Raised when the operator cannot start; nothing is left running."""

    pass


class UnknownJobError(BugopsError, KeyError):
    """Raised when a job name is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown job {name!r}")

    def __str__(self) -> str:
        return f"Unknown job {self.name!r}"


class JobBusyError(BugopsError):
    """Raised when a job is asked to run while a previous run is in flight."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Job {name!r} is already running")

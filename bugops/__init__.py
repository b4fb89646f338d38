"""bugops: tracker housekeeping jobs, scheduled reports and a chat control surface."""

from bugops.errors import BugopsError, ConfigurationError, JobBusyError, StartupError, UnknownJobError
from bugops.operator import Operator

__all__ = [
    "BugopsError",
    "ConfigurationError",
    "JobBusyError",
    "Operator",
    "StartupError",
    "UnknownJobError",
]

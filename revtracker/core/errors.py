"""
Error taxonomy for the revision tracker.

Every error carries an ``ErrorKind`` so callers can branch on the kind of
failure instead of inspecting messages:

- TRANSIENT_FETCH: the revision source could not be reached; retried next run
- RECOVERABLE_CONFIG: the project config at a revision is missing or invalid;
  persisted as a stub version carrying the messages
- FATAL: infrastructural problem; aborts the current batch
- DUPLICATE: unique constraint violation in the store
"""

from typing import List, Optional

from .enums import ErrorKind


class TrackerError(Exception):
    """Base class for all tracker errors"""
    kind: ErrorKind = ErrorKind.FATAL


class TransientFetchError(TrackerError):
    """Revision source unreachable or returned an unusable listing"""
    kind = ErrorKind.TRANSIENT_FETCH


class ProjectConfigError(TrackerError):
    """Project configuration is invalid at a revision"""
    kind = ErrorKind.RECOVERABLE_CONFIG

    def __init__(self, errors: Optional[List[str]] = None, warnings: Optional[List[str]] = None):
        self.errors = list(errors or [])
        self.warnings = list(warnings or [])
        super().__init__("Invalid project configuration")

    def __str__(self) -> str:
        if self.errors:
            return f"Invalid project configuration: {'; '.join(self.errors)}"
        return "Invalid project configuration"


class FatalTrackerError(TrackerError):
    """Infrastructural failure that aborts the remaining batch"""
    kind = ErrorKind.FATAL


class OrderConsistencyError(FatalTrackerError):
    """A new version would break the per-project order number sequence"""


class WatermarkUpdateError(FatalTrackerError):
    """The repository's last revision could not be advanced"""


class ConfigFetchError(TrackerError):
    """Base class for errors raised while fetching a remote project config"""

    def __init__(self, message: str, revision: Optional[str] = None, path: Optional[str] = None):
        self.revision = revision
        self.path = path
        super().__init__(message)


class ConfigNotFoundError(ConfigFetchError):
    """The config file does not exist at the requested revision"""
    kind = ErrorKind.RECOVERABLE_CONFIG


class ConfigFormatError(ConfigFetchError):
    """The config file exists but is not valid YAML or has the wrong shape"""
    kind = ErrorKind.RECOVERABLE_CONFIG


class APIRequestError(ConfigFetchError):
    """The remote API rejected this specific request"""
    kind = ErrorKind.RECOVERABLE_CONFIG

    def __init__(self, message: str, status: Optional[int] = None, **kwargs):
        self.status = status
        super().__init__(message, **kwargs)


class APIResponseError(ConfigFetchError):
    """The remote API returned a missing or server-error response"""
    kind = ErrorKind.FATAL


class APIUnmarshalError(ConfigFetchError):
    """The remote API response envelope could not be decoded"""
    kind = ErrorKind.FATAL


class ResponseReadError(ConfigFetchError):
    """Transport failure while talking to the remote API"""
    kind = ErrorKind.FATAL


class StoreError(TrackerError):
    """Persistence failure"""
    kind = ErrorKind.FATAL


class DuplicateKeyError(StoreError):
    """Insert violated a unique constraint"""
    kind = ErrorKind.DUPLICATE

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message)


def is_recoverable_config_error(err: BaseException) -> bool:
    return isinstance(err, TrackerError) and err.kind == ErrorKind.RECOVERABLE_CONFIG


class NotificationError(TrackerError):
    """One or more notification subscriptions could not be created"""
    kind = ErrorKind.FATAL

    def __init__(self, problems: List[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))

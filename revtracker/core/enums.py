from enum import Enum


class VersionStatus(str, Enum):
    CREATED = "created"
    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"


class BuildStatusValue(str, Enum):
    CREATED = "created"
    STARTED = "started"
    SUCCESS = "success"
    FAILED = "failed"


class TaskStatus(str, Enum):
    UNDISPATCHED = "undispatched"
    DISPATCHED = "dispatched"
    SUCCESS = "success"
    FAILED = "failed"


class DiagnosticLevel(str, Enum):
    WARNING = "warning"
    ERROR = "error"


class ErrorKind(str, Enum):
    TRANSIENT_FETCH = "transient_fetch"
    RECOVERABLE_CONFIG = "recoverable_config"
    FATAL = "fatal"
    DUPLICATE = "duplicate"


class Requester(str, Enum):
    REPOTRACKER = "gitter_request"
    PATCH = "patch_request"


class NotificationPreference(str, Enum):
    EMAIL = "email"
    SLACK = "slack"


class StoreType(str, Enum):
    MEMORY = "memory"
    REDIS = "redis"

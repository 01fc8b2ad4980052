from .enums import DiagnosticLevel, ErrorKind, Requester, VersionStatus
from .models import (
    Revision, Repository, ProjectRef, RepotrackerError, ProjectConfig, TaskSpec,
    TaskDependency, BuildVariantSpec, Diagnostic, BuildStatus, Version, Build, Task,
    User, Subscription, Subscriber, Selector
)

__all__ = [
    'DiagnosticLevel', 'ErrorKind', 'Requester', 'VersionStatus',
    'Revision', 'Repository', 'ProjectRef', 'RepotrackerError', 'ProjectConfig',
    'TaskSpec', 'TaskDependency', 'BuildVariantSpec', 'Diagnostic', 'BuildStatus',
    'Version', 'Build', 'Task', 'User', 'Subscription', 'Subscriber', 'Selector',
]

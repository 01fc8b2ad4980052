import re
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

import pathspec

from .enums import (
    VersionStatus, BuildStatusValue, TaskStatus, DiagnosticLevel, Requester,
    NotificationPreference
)


_UNCLEAN_CHARS = re.compile(r"[^A-Za-z0-9_]")


def clean_name(name: str) -> str:
    """Replace characters that are not safe in entity ids"""
    return _UNCLEAN_CHARS.sub("_", name)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dt_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _str_to_dt(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class Revision:
    """A single source-control revision, as returned by a poller"""
    revision: str
    author: str = ""
    author_email: str = ""
    author_external_id: Optional[int] = None
    message: str = ""
    create_time: Optional[datetime] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['create_time'] = _dt_to_str(self.create_time)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Revision':
        data = dict(data)
        data['create_time'] = _str_to_dt(data.get('create_time'))
        return cls(**data)


@dataclass
class Repository:
    """Watermark: the last revision stored for a project"""
    project_id: str
    last_revision: str

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Repository':
        return cls(**data)


@dataclass
class RepotrackerError:
    """Sticky tracker error recorded on a project by whoever detected it"""
    exists: bool = False
    invalid_revision: Optional[str] = None
    merge_base_revision: Optional[str] = None


@dataclass
class ProjectRef:
    """Tracked project settings"""
    identifier: str
    owner: str = ""
    repo: str = ""
    branch: str = "main"
    enabled: bool = True
    remote_path: str = ""
    local_config: Optional[str] = None
    batch_time: int = 0  # minutes
    repotracker_error: Optional[RepotrackerError] = None
    notify_on_build_failure: bool = False
    admins: List[str] = field(default_factory=list)

    def __post_init__(self):
        if isinstance(self.repotracker_error, dict):
            self.repotracker_error = RepotrackerError(**self.repotracker_error)

    def __str__(self) -> str:
        return self.identifier

    def has_repotracker_error(self) -> bool:
        return bool(self.repotracker_error and self.repotracker_error.exists)

    def get_batch_time(self, variant: 'BuildVariantSpec', default: Optional[int] = None) -> int:
        """
        Batch time in minutes for a variant.

        The variant override wins, then the project setting, then ``default``
        (the config file's top-level batch time).
        """
        if variant.batch_time is not None:
            return variant.batch_time
        if self.batch_time:
            return self.batch_time
        return default or 0


@dataclass
class TaskDependency:
    name: str
    variant: Optional[str] = None  # None: same variant, "*": every variant


@dataclass
class TaskSpec:
    name: str
    depends_on: List[TaskDependency] = field(default_factory=list)
    priority: int = 0
    commands: List[Dict[str, Any]] = field(default_factory=list)


@dataclass
class BuildVariantSpec:
    name: str
    display_name: Optional[str] = None
    tasks: List[str] = field(default_factory=list)
    disabled: bool = False
    batch_time: Optional[int] = None  # minutes, overrides the project default


@dataclass
class ProjectConfig:
    """Build configuration of a project at one revision"""
    identifier: Optional[str] = None
    ignore: List[str] = field(default_factory=list)
    batch_time: Optional[int] = None
    tasks: List[TaskSpec] = field(default_factory=list)
    build_variants: List[BuildVariantSpec] = field(default_factory=list)

    def find_task(self, name: str) -> Optional[TaskSpec]:
        for task in self.tasks:
            if task.name == name:
                return task
        return None

    def find_build_variant(self, name: str) -> Optional[BuildVariantSpec]:
        for variant in self.build_variants:
            if variant.name == name:
                return variant
        return None

    def enabled_build_variants(self) -> List[BuildVariantSpec]:
        return [bv for bv in self.build_variants if not bv.disabled]

    def ignores_all_files(self, paths: List[str]) -> bool:
        """
        True when every changed path is matched by the ignore list.

        Patterns use gitignore syntax. They are evaluated in order and the
        last match decides; a pattern starting with ``!`` re-includes paths
        matched by earlier patterns.
        """
        if not self.ignore or not paths:
            return False
        spec = pathspec.PathSpec.from_lines("gitwildmatch", self.ignore)
        return all(spec.match_file(path.lstrip("/")) for path in paths)


@dataclass
class Diagnostic:
    """Single validation result"""
    level: DiagnosticLevel
    message: str

    def __str__(self) -> str:
        return f"{self.level.value}: {self.message}"


@dataclass
class BuildStatus:
    """Activation record of one build variant inside a version"""
    build_variant: str
    activated: bool = False
    activate_at: Optional[datetime] = None
    build_id: Optional[str] = None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['activate_at'] = _dt_to_str(self.activate_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'BuildStatus':
        data = dict(data)
        data['activate_at'] = _str_to_dt(data.get('activate_at'))
        return cls(**data)


@dataclass
class Version:
    """One revision's evaluated state within a project"""
    id: str
    project_id: str
    revision: str
    order_number: int
    author: str = ""
    author_email: str = ""
    author_id: Optional[str] = None
    message: str = ""
    create_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    status: str = VersionStatus.CREATED.value
    config: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    ignored: bool = False
    build_ids: List[str] = field(default_factory=list)
    build_variants: List[BuildStatus] = field(default_factory=list)
    branch: str = ""
    owner: str = ""
    repo: str = ""
    requester: str = Requester.REPOTRACKER.value

    @property
    def is_stub(self) -> bool:
        return bool(self.errors)

    def get_build_status(self, variant: str) -> Optional[BuildStatus]:
        for status in self.build_variants:
            if status.build_variant == variant:
                return status
        return None

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['create_time'] = _dt_to_str(self.create_time)
        data['created_at'] = _dt_to_str(self.created_at)
        data['build_variants'] = [status.to_dict() for status in self.build_variants]
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Version':
        data = dict(data)
        data['create_time'] = _str_to_dt(data.get('create_time'))
        data['created_at'] = _str_to_dt(data.get('created_at'))
        data['build_variants'] = [
            BuildStatus.from_dict(s) if isinstance(s, dict) else s
            for s in data.get('build_variants', [])
        ]
        return cls(**data)


@dataclass
class Build:
    """Per-variant expansion of a version"""
    id: str
    version_id: str
    project_id: str
    build_variant: str
    display_name: str = ""
    revision: str = ""
    order_number: int = 0
    task_ids: List[str] = field(default_factory=list)
    activated: bool = False
    activate_at: Optional[datetime] = None
    status: str = BuildStatusValue.CREATED.value
    create_time: Optional[datetime] = None
    requester: str = Requester.REPOTRACKER.value

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['activate_at'] = _dt_to_str(self.activate_at)
        data['create_time'] = _dt_to_str(self.create_time)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Build':
        data = dict(data)
        data['activate_at'] = _str_to_dt(data.get('activate_at'))
        data['create_time'] = _str_to_dt(data.get('create_time'))
        return cls(**data)


@dataclass
class Task:
    """Schedulable unit of work within a build"""
    id: str
    build_id: str
    version_id: str
    project_id: str
    display_name: str
    build_variant: str
    revision: str = ""
    order_number: int = 0
    depends_on: List[str] = field(default_factory=list)
    priority: int = 0
    activated: bool = False
    status: str = TaskStatus.UNDISPATCHED.value
    create_time: Optional[datetime] = None
    requester: str = Requester.REPOTRACKER.value

    def to_dict(self) -> Dict:
        data = asdict(self)
        data['create_time'] = _dt_to_str(self.create_time)
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Task':
        data = dict(data)
        data['create_time'] = _str_to_dt(data.get('create_time'))
        return cls(**data)


@dataclass
class User:
    """User record used to resolve commit authors and notification targets"""
    id: str
    email: str = ""
    external_id: Optional[int] = None
    slack_username: str = ""
    build_break_preference: Optional[NotificationPreference] = None
    build_break_subscription_id: Optional[str] = None

    def __post_init__(self):
        if self.build_break_preference == "":
            self.build_break_preference = None
        elif isinstance(self.build_break_preference, str) and \
                self.build_break_preference in {p.value for p in NotificationPreference}:
            self.build_break_preference = NotificationPreference(self.build_break_preference)
        # unknown preference strings are kept as-is and rejected when subscribing

    def to_dict(self) -> Dict:
        data = asdict(self)
        if isinstance(self.build_break_preference, NotificationPreference):
            data['build_break_preference'] = self.build_break_preference.value
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'User':
        return cls(**data)


@dataclass
class Selector:
    type: str
    data: str


@dataclass
class Subscriber:
    type: str
    target: str


@dataclass
class Subscription:
    resource_type: str
    trigger: str
    selectors: List[Selector]
    subscriber: Subscriber

    @property
    def key(self) -> str:
        selectors = ",".join(f"{s.type}={s.data}" for s in self.selectors)
        return f"{self.resource_type}:{self.trigger}:{selectors}:{self.subscriber.type}:{self.subscriber.target}"

    def to_dict(self) -> Dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict) -> 'Subscription':
        return cls(
            resource_type=data['resource_type'],
            trigger=data['trigger'],
            selectors=[Selector(**s) for s in data.get('selectors', [])],
            subscriber=Subscriber(**data['subscriber']),
        )

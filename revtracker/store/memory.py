import asyncio
import copy
from typing import Dict, List, Optional, Tuple, Any

from ..core.errors import DuplicateKeyError
from ..core.models import Version, Build, Task, Repository, User, Subscription
from .base import BaseStore


def _load(cls, data: Dict[str, Any]):
    return cls.from_dict(copy.deepcopy(data))


class InMemoryStore(BaseStore):
    """
    In-memory document store.

    Documents are kept as dicts and copied on the way in and out, so callers
    never share mutable state with the store. Async-safe with asyncio.Lock.
    """

    def __init__(self):
        self.lock = asyncio.Lock()

        self._versions: Dict[str, Dict[str, Any]] = {}
        self._version_by_revision: Dict[Tuple[str, str], str] = {}
        self._version_by_order: Dict[Tuple[str, int], str] = {}
        self._last_activation: Dict[Tuple[str, str], str] = {}  # (project, variant) -> version id
        self._builds: Dict[str, Dict[str, Any]] = {}
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._repositories: Dict[str, Dict[str, Any]] = {}
        self._order_counters: Dict[str, int] = {}
        self._users: Dict[str, Dict[str, Any]] = {}
        self._subscriptions: Dict[str, Dict[str, Any]] = {}

        # Statistics
        self.stats = {
            'version_inserts': 0,
            'build_inserts': 0,
            'task_inserts': 0,
            'build_deletes': 0,
        }

    async def connect(self):
        """No connection needed for in-memory store"""
        pass

    async def disconnect(self):
        pass

    # Versions

    async def insert_version(self, version: Version):
        rev_key = (version.project_id, version.revision)
        order_key = (version.project_id, version.order_number)

        async with self.lock:
            if version.id in self._versions:
                raise DuplicateKeyError(f"version {version.id} already exists", key=version.id)
            if rev_key in self._version_by_revision:
                raise DuplicateKeyError(
                    f"version for revision {version.revision} in project {version.project_id} already exists",
                    key=f"{version.project_id}:{version.revision}"
                )
            if order_key in self._version_by_order:
                raise DuplicateKeyError(
                    f"order number {version.order_number} in project {version.project_id} already used",
                    key=f"{version.project_id}:{version.order_number}"
                )

            self._versions[version.id] = version.to_dict()
            self._version_by_revision[rev_key] = version.id
            self._version_by_order[order_key] = version.id
            for status in version.build_variants:
                if status.activated:
                    self._record_activation(self._versions[version.id], status.build_variant)
            self.stats['version_inserts'] += 1

    async def find_version(self, version_id: str) -> Optional[Version]:
        async with self.lock:
            data = self._versions.get(version_id)
            return _load(Version, data) if data else None

    async def find_version_by_revision(self, project_id: str, revision: str) -> Optional[Version]:
        async with self.lock:
            version_id = self._version_by_revision.get((project_id, revision))
            return _load(Version, self._versions[version_id]) if version_id else None

    def _project_versions_desc(self, project_id: str) -> List[Dict[str, Any]]:
        versions = [v for v in self._versions.values() if v['project_id'] == project_id]
        return sorted(versions, key=lambda v: v['order_number'], reverse=True)

    async def find_latest_version(self, project_id: str) -> Optional[Version]:
        async with self.lock:
            versions = self._project_versions_desc(project_id)
            return _load(Version, versions[0]) if versions else None

    def _record_activation(self, data: Dict[str, Any], variant: str):
        key = (data['project_id'], variant)
        current = self._versions.get(self._last_activation.get(key))
        if current is None or current['order_number'] < data['order_number']:
            self._last_activation[key] = data['id']

    async def find_last_variant_activation(self, project_id: str, variant: str) -> Optional[Version]:
        async with self.lock:
            version_id = self._last_activation.get((project_id, variant))
            return _load(Version, self._versions[version_id]) if version_id else None

    async def list_versions(self, project_id: str, limit: int = 50) -> List[Version]:
        async with self.lock:
            return [_load(Version, v) for v in self._project_versions_desc(project_id)[:limit]]

    async def set_variant_activated(self, version_id: str, variant: str):
        async with self.lock:
            data = self._versions.get(version_id)
            if not data:
                return
            for status in data.get('build_variants', []):
                if status['build_variant'] == variant:
                    status['activated'] = True
                    self._record_activation(data, variant)

    # Builds and tasks

    async def insert_build(self, build: Build):
        async with self.lock:
            if build.id in self._builds:
                raise DuplicateKeyError(f"build {build.id} already exists", key=build.id)
            self._builds[build.id] = build.to_dict()
            self.stats['build_inserts'] += 1

    async def find_build(self, build_id: str) -> Optional[Build]:
        async with self.lock:
            data = self._builds.get(build_id)
            return _load(Build, data) if data else None

    async def delete_build(self, build_id: str):
        async with self.lock:
            self._builds.pop(build_id, None)
            for task_id in [tid for tid, t in self._tasks.items() if t['build_id'] == build_id]:
                del self._tasks[task_id]
            self.stats['build_deletes'] += 1

    async def activate_build(self, build_id: str):
        async with self.lock:
            data = self._builds.get(build_id)
            if not data:
                return
            data['activated'] = True
            for task in self._tasks.values():
                if task['build_id'] == build_id:
                    task['activated'] = True

    async def insert_tasks(self, tasks: List[Task]):
        async with self.lock:
            for task in tasks:
                if task.id in self._tasks:
                    raise DuplicateKeyError(f"task {task.id} already exists", key=task.id)
            for task in tasks:
                self._tasks[task.id] = task.to_dict()
                self.stats['task_inserts'] += 1

    async def find_tasks_for_build(self, build_id: str) -> List[Task]:
        async with self.lock:
            return [_load(Task, t) for t in self._tasks.values() if t['build_id'] == build_id]

    # Repository watermark

    async def find_repository(self, project_id: str) -> Optional[Repository]:
        async with self.lock:
            data = self._repositories.get(project_id)
            return _load(Repository, data) if data else None

    async def update_last_revision(self, project_id: str, revision: str):
        async with self.lock:
            self._repositories[project_id] = Repository(project_id=project_id, last_revision=revision).to_dict()

    # Order numbers

    async def next_order_number(self, project_id: str) -> int:
        async with self.lock:
            number = self._order_counters.get(project_id, 0) + 1
            self._order_counters[project_id] = number
            return number

    # Users and subscriptions

    async def insert_user(self, user: User):
        async with self.lock:
            if user.id in self._users:
                raise DuplicateKeyError(f"user {user.id} already exists", key=user.id)
            self._users[user.id] = user.to_dict()

    async def find_user(self, user_id: str) -> Optional[User]:
        async with self.lock:
            data = self._users.get(user_id)
            return _load(User, data) if data else None

    async def find_user_by_external_id(self, external_id: int) -> Optional[User]:
        async with self.lock:
            for data in self._users.values():
                if data.get('external_id') == external_id:
                    return _load(User, data)
            return None

    async def upsert_subscription(self, subscription: Subscription):
        async with self.lock:
            self._subscriptions[subscription.key] = subscription.to_dict()

    async def list_subscriptions(self) -> List[Subscription]:
        async with self.lock:
            return [_load(Subscription, s) for s in self._subscriptions.values()]

    def get_stats(self) -> Dict[str, Any]:
        """Get store statistics"""
        return {
            **self.stats,
            'versions': len(self._versions),
            'builds': len(self._builds),
            'tasks': len(self._tasks),
        }

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from ..core.errors import DuplicateKeyError, StoreError
from ..core.models import Version, Build, Task, Repository, User, Subscription
from .base import BaseStore


# Inserts a version only if none of its unique keys exist.
# Returns 0 on success, 1/2/3 for a duplicate id/revision/order number.
# KEYS[5..] are activation indexes of variants already activated.
INSERT_VERSION_SCRIPT = """
if redis.call("EXISTS", KEYS[1]) == 1 then
    return 1
end
if redis.call("EXISTS", KEYS[2]) == 1 then
    return 2
end
if redis.call("EXISTS", KEYS[3]) == 1 then
    return 3
end
redis.call("SET", KEYS[1], ARGV[1])
redis.call("SET", KEYS[2], ARGV[2])
redis.call("SET", KEYS[3], ARGV[2])
redis.call("ZADD", KEYS[4], ARGV[3], ARGV[2])
for i = 5, #KEYS do
    redis.call("ZADD", KEYS[i], ARGV[3], ARGV[2])
end
return 0
"""

_DUPLICATE_REASONS = {
    1: "version id",
    2: "project revision",
    3: "project order number",
}


class RedisStore(BaseStore):
    """
    Redis-backed document store.

    Documents are JSON strings under namespaced keys. Uniqueness of
    (project, revision) and (project, order number) is enforced by an atomic
    Lua insert; order numbers come from INCR so they never repeat.
    """

    def __init__(self, url: str = 'redis://localhost:6379',
                 key_prefix: str = 'revtracker:',
                 max_connections: int = 10,
                 scan_page_size: int = 50):
        self.url = url
        self.key_prefix = key_prefix
        self.max_connections = max_connections
        self.scan_page_size = scan_page_size
        self.redis: Optional[aioredis.Redis] = None
        self.logger = logging.getLogger(__name__)

    # Keys

    def _key(self, *parts: Any) -> str:
        return self.key_prefix + ":".join(str(p) for p in parts)

    def _version_key(self, version_id: str) -> str:
        return self._key("version", version_id)

    def _build_key(self, build_id: str) -> str:
        return self._key("build", build_id)

    def _task_key(self, task_id: str) -> str:
        return self._key("task", task_id)

    def _project_versions_key(self, project_id: str) -> str:
        return self._key("versions", project_id)

    def _activations_key(self, project_id: str, variant: str) -> str:
        return self._key("activations", project_id, variant)

    # Connection

    async def connect(self):
        self.redis = aioredis.from_url(
            self.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=self.max_connections
        )

    async def disconnect(self):
        if self.redis:
            await self.redis.aclose()
            self.redis = None

    def _client(self) -> aioredis.Redis:
        if not self.redis:
            raise RuntimeError("Redis not connected. Call connect() first.")
        return self.redis

    async def _get_raw(self, key: str) -> Optional[str]:
        try:
            return await self._client().get(key)
        except RedisError as e:
            raise StoreError(f"failed to read {key}: {e}") from e

    async def _mget(self, keys: List[str]) -> List[Optional[str]]:
        try:
            return await self._client().mget(keys)
        except RedisError as e:
            raise StoreError(f"failed to read {len(keys)} document(s): {e}") from e

    async def _get_doc(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self._get_raw(key)
        return json.loads(raw) if raw else None

    async def _update_doc(self, key: str, mutate: Callable[[Dict[str, Any]], None],
                          on_write: Optional[Callable[[Any, Dict[str, Any]], None]] = None) -> bool:
        """
        Optimistic read-modify-write of a JSON document; False if it does not exist.

        ``on_write(pipe, doc)`` may queue more commands in the same transaction.
        """
        client = self._client()
        while True:
            async with client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if not raw:
                        return False
                    doc = json.loads(raw)
                    mutate(doc)
                    pipe.multi()
                    pipe.set(key, json.dumps(doc))
                    if on_write is not None:
                        on_write(pipe, doc)
                    await pipe.execute()
                    return True
                except WatchError:
                    self.logger.debug(f"Concurrent update of {key}, retrying")
                    continue
                except RedisError as e:
                    raise StoreError(f"failed to update {key}: {e}") from e

    # Versions

    async def insert_version(self, version: Version):
        keys = [
            self._version_key(version.id),
            self._key("version_rev", version.project_id, version.revision),
            self._key("version_order", version.project_id, version.order_number),
            self._project_versions_key(version.project_id),
        ]
        keys.extend(
            self._activations_key(version.project_id, status.build_variant)
            for status in version.build_variants if status.activated
        )
        try:
            result = await self._client().eval(
                INSERT_VERSION_SCRIPT, len(keys), *keys,
                json.dumps(version.to_dict()), version.id, version.order_number
            )
        except RedisError as e:
            raise StoreError(f"failed to insert version {version.id}: {e}") from e

        result = int(result)
        if result:
            raise DuplicateKeyError(
                f"duplicate {_DUPLICATE_REASONS.get(result, 'key')} for version {version.id}",
                key=keys[result - 1] if result <= 3 else None
            )

    async def find_version(self, version_id: str) -> Optional[Version]:
        doc = await self._get_doc(self._version_key(version_id))
        return Version.from_dict(doc) if doc else None

    async def find_version_by_revision(self, project_id: str, revision: str) -> Optional[Version]:
        version_id = await self._get_raw(self._key("version_rev", project_id, revision))
        if not version_id:
            return None
        return await self.find_version(version_id)

    async def _iter_versions_desc(self, project_id: str, limit: Optional[int] = None):
        client = self._client()
        start = 0
        seen = 0
        while limit is None or seen < limit:
            page_size = self.scan_page_size if limit is None else min(self.scan_page_size, limit - seen)
            try:
                ids = await client.zrevrange(self._project_versions_key(project_id), start, start + page_size - 1)
            except RedisError as e:
                raise StoreError(f"failed to list versions of {project_id}: {e}") from e
            if not ids:
                return
            docs = await self._mget([self._version_key(i) for i in ids])
            for raw in docs:
                if raw:
                    seen += 1
                    yield Version.from_dict(json.loads(raw))
            start += len(ids)

    async def find_latest_version(self, project_id: str) -> Optional[Version]:
        async for version in self._iter_versions_desc(project_id, limit=1):
            return version
        return None

    async def find_last_variant_activation(self, project_id: str, variant: str) -> Optional[Version]:
        try:
            ids = await self._client().zrevrange(self._activations_key(project_id, variant), 0, 0)
        except RedisError as e:
            raise StoreError(f"failed to read last activation of {project_id}/{variant}: {e}") from e
        return await self.find_version(ids[0]) if ids else None

    async def list_versions(self, project_id: str, limit: int = 50) -> List[Version]:
        return [v async for v in self._iter_versions_desc(project_id, limit=limit)]

    async def set_variant_activated(self, version_id: str, variant: str):
        found = []

        def mutate(doc: Dict[str, Any]):
            found.clear()
            for status in doc.get('build_variants', []):
                if status['build_variant'] == variant:
                    status['activated'] = True
                    found.append(status)

        def index_activation(pipe, doc: Dict[str, Any]):
            if found:
                pipe.zadd(self._activations_key(doc['project_id'], variant), {doc['id']: doc['order_number']})

        await self._update_doc(self._version_key(version_id), mutate, on_write=index_activation)

    # Builds and tasks

    async def insert_build(self, build: Build):
        try:
            created = await self._client().set(self._build_key(build.id), json.dumps(build.to_dict()), nx=True)
        except RedisError as e:
            raise StoreError(f"failed to insert build {build.id}: {e}") from e
        if not created:
            raise DuplicateKeyError(f"build {build.id} already exists", key=build.id)

    async def find_build(self, build_id: str) -> Optional[Build]:
        doc = await self._get_doc(self._build_key(build_id))
        return Build.from_dict(doc) if doc else None

    async def delete_build(self, build_id: str):
        client = self._client()
        doc = await self._get_doc(self._build_key(build_id))
        keys = [self._build_key(build_id)]
        if doc:
            keys.extend(self._task_key(task_id) for task_id in doc.get('task_ids', []))
        try:
            await client.delete(*keys)
        except RedisError as e:
            raise StoreError(f"failed to delete build {build_id}: {e}") from e

    async def activate_build(self, build_id: str):
        def mutate(doc: Dict[str, Any]):
            doc['activated'] = True

        build = await self.find_build(build_id)
        if build is None:
            return
        await self._update_doc(self._build_key(build_id), mutate)
        for task_id in build.task_ids:
            await self._update_doc(self._task_key(task_id), mutate)

    async def insert_tasks(self, tasks: List[Task]):
        client = self._client()
        inserted = []
        try:
            for task in tasks:
                created = await client.set(self._task_key(task.id), json.dumps(task.to_dict()), nx=True)
                if not created:
                    if inserted:
                        await client.delete(*inserted)
                    raise DuplicateKeyError(f"task {task.id} already exists", key=task.id)
                inserted.append(self._task_key(task.id))
        except RedisError as e:
            raise StoreError(f"failed to insert tasks: {e}") from e

    async def find_tasks_for_build(self, build_id: str) -> List[Task]:
        build = await self.find_build(build_id)
        if build is None or not build.task_ids:
            return []
        docs = await self._mget([self._task_key(t) for t in build.task_ids])
        return [Task.from_dict(json.loads(raw)) for raw in docs if raw]

    # Repository watermark

    async def find_repository(self, project_id: str) -> Optional[Repository]:
        doc = await self._get_doc(self._key("repository", project_id))
        return Repository.from_dict(doc) if doc else None

    async def update_last_revision(self, project_id: str, revision: str):
        repository = Repository(project_id=project_id, last_revision=revision)
        try:
            await self._client().set(self._key("repository", project_id), json.dumps(repository.to_dict()))
        except RedisError as e:
            raise StoreError(f"failed to update last revision for {project_id}: {e}") from e

    # Order numbers

    async def next_order_number(self, project_id: str) -> int:
        try:
            return int(await self._client().incr(self._key("order", project_id)))
        except RedisError as e:
            raise StoreError(f"failed to allocate order number for {project_id}: {e}") from e

    # Users and subscriptions

    async def insert_user(self, user: User):
        client = self._client()
        try:
            created = await client.set(self._key("user", user.id), json.dumps(user.to_dict()), nx=True)
            if not created:
                raise DuplicateKeyError(f"user {user.id} already exists", key=user.id)
            if user.external_id is not None:
                await client.set(self._key("user_external", user.external_id), user.id)
        except RedisError as e:
            raise StoreError(f"failed to insert user {user.id}: {e}") from e

    async def find_user(self, user_id: str) -> Optional[User]:
        doc = await self._get_doc(self._key("user", user_id))
        return User.from_dict(doc) if doc else None

    async def find_user_by_external_id(self, external_id: int) -> Optional[User]:
        user_id = await self._get_raw(self._key("user_external", external_id))
        if not user_id:
            return None
        return await self.find_user(user_id)

    async def upsert_subscription(self, subscription: Subscription):
        try:
            await self._client().hset(
                self._key("subscriptions"), subscription.key, json.dumps(subscription.to_dict())
            )
        except RedisError as e:
            raise StoreError(f"failed to upsert subscription {subscription.key}: {e}") from e

    async def list_subscriptions(self) -> List[Subscription]:
        try:
            docs = await self._client().hgetall(self._key("subscriptions"))
        except RedisError as e:
            raise StoreError(f"failed to list subscriptions: {e}") from e
        return [Subscription.from_dict(json.loads(raw)) for raw in docs.values()]

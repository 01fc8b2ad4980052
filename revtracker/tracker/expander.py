"""
Expansion of a version into builds and tasks.

Every enabled build variant becomes one Build with one Task per task name it
lists. Builds are inserted before their version; if the version insert fails
for any reason other than a duplicate key, the builds (and their tasks) created
by this call are deleted again.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from ..core.errors import DuplicateKeyError, OrderConsistencyError
from ..core.models import (
    Build, BuildStatus, BuildVariantSpec, ProjectConfig, ProjectRef, Task, Version,
    clean_name, utcnow
)
from ..store.base import BaseStore

WILDCARD = "*"


class TaskIdTable:
    """Task ids of one version, keyed by (variant, task name)"""

    def __init__(self):
        self._ids: Dict[Tuple[str, str], str] = {}

    @classmethod
    def build(cls, config: ProjectConfig, version: Version, token: str) -> 'TaskIdTable':
        table = cls()
        for variant in config.enabled_build_variants():
            for task_name in variant.tasks:
                table._ids[(variant.name, task_name)] = clean_name(
                    f"{version.project_id}_{variant.name}_{task_name}_{version.revision}_{token}"
                )
        return table

    def get(self, variant: str, task: str) -> Optional[str]:
        return self._ids.get((variant, task))

    def variants(self) -> List[str]:
        seen = []
        for variant, _ in self._ids:
            if variant not in seen:
                seen.append(variant)
        return seen

    def tasks_in(self, variant: str) -> List[str]:
        return [task for v, task in self._ids if v == variant]

    def __len__(self) -> int:
        return len(self._ids)

    def resolve_dependency(self, variant: str, task: str, dep_name: str,
                           dep_variant: Optional[str]) -> List[str]:
        """
        Task ids a task depends on.

        ``dep_variant`` None means the task's own variant, ``"*"`` every
        variant; ``dep_name`` ``"*"`` means every task of those variants. A
        task never depends on itself, and references to tasks that are not
        part of this version are dropped.
        """
        if dep_variant is None:
            variants = [variant]
        elif dep_variant == WILDCARD:
            variants = self.variants()
        else:
            variants = [dep_variant]

        own_id = self.get(variant, task)
        ids = []
        for v in variants:
            names = self.tasks_in(v) if dep_name == WILDCARD else [dep_name]
            for name in names:
                task_id = self.get(v, name)
                if task_id and task_id != own_id and task_id not in ids:
                    ids.append(task_id)
        return ids


class BuildExpander:
    """Creates the builds and tasks of a version, then stores the version"""

    def __init__(self, project_ref: ProjectRef, store: BaseStore):
        self.project_ref = project_ref
        self.store = store
        self.logger = logging.getLogger(f"{__name__}.BuildExpander")

    async def expand(self, version: Version, config: ProjectConfig,
                     now: Optional[datetime] = None) -> bool:
        """
        Expand and store a version.

        Returns:
            True if this call stored the version, False if another run had
            already stored it.
        """
        now = now or utcnow()
        token = uuid.uuid4().hex[:8]
        table = TaskIdTable.build(config, version, token)
        created: List[str] = []

        try:
            for variant in config.build_variants:
                if variant.disabled:
                    self.logger.debug(f"Skipping disabled build variant {variant.name} for {version.id}")
                    continue

                activate_at = await self._activation_time(variant, config, now)
                build, tasks = self._create_build(version, variant, config, table, token, activate_at, now)

                await self.store.insert_build(build)
                created.append(build.id)
                await self.store.insert_tasks(tasks)

                version.build_ids.append(build.id)
                version.build_variants.append(BuildStatus(
                    build_variant=variant.name,
                    activated=False,
                    activate_at=activate_at,
                    build_id=build.id,
                ))

            await self.store.insert_version(version)
        except DuplicateKeyError as e:
            await self._delete_builds(created)
            existing = await self.store.find_version_by_revision(version.project_id, version.revision)
            if existing is None:
                self.logger.critical(
                    f"Version {version.id} (order {version.order_number}) conflicts with a stored "
                    f"version of another revision: {e}"
                )
                raise OrderConsistencyError(
                    f"order number {version.order_number} for {version.id} is already taken"
                ) from e
            self.logger.info(f"Version {version.id} was stored by a concurrent run, dropped our builds")
            return False
        except Exception as e:
            self.logger.error(f"Failed to store version {version.id}, removing {len(created)} build(s): {e}")
            await self._delete_builds(created)
            raise

        self.logger.info(
            f"Stored version {version.id} (order {version.order_number}) with "
            f"{len(created)} build(s) and {len(table)} task(s)"
        )
        return True

    async def _activation_time(self, variant: BuildVariantSpec, config: ProjectConfig,
                               now: datetime) -> datetime:
        project_id = self.project_ref.identifier
        last = await self.store.find_last_variant_activation(project_id, variant.name)
        if last is None:
            return now
        status = last.get_build_status(variant.name)
        if status is None or status.activate_at is None:
            return now

        batch_time = self.project_ref.get_batch_time(variant, config.batch_time)
        activate_at = status.activate_at + timedelta(minutes=batch_time)
        self.logger.debug(
            f"{project_id}/{variant.name}: last activated at {status.activate_at} "
            f"(version {last.id}), next at {activate_at}"
        )
        return activate_at

    def _create_build(self, version: Version, variant: BuildVariantSpec, config: ProjectConfig,
                      table: TaskIdTable, token: str, activate_at: datetime,
                      now: datetime) -> Tuple[Build, List[Task]]:
        build_id = clean_name(f"{version.project_id}_{variant.name}_{version.revision}_{token}")
        tasks = []
        for task_name in variant.tasks:
            spec = config.find_task(task_name)
            if spec is None:
                self.logger.warning(f"Build variant {variant.name} lists unknown task {task_name}, skipping")
                continue

            depends_on = []
            for dep in spec.depends_on:
                for dep_id in table.resolve_dependency(variant.name, task_name, dep.name, dep.variant):
                    if dep_id not in depends_on:
                        depends_on.append(dep_id)

            tasks.append(Task(
                id=table.get(variant.name, task_name),
                build_id=build_id,
                version_id=version.id,
                project_id=version.project_id,
                display_name=task_name,
                build_variant=variant.name,
                revision=version.revision,
                order_number=version.order_number,
                depends_on=depends_on,
                priority=spec.priority,
                create_time=now,
                requester=version.requester,
            ))

        build = Build(
            id=build_id,
            version_id=version.id,
            project_id=version.project_id,
            build_variant=variant.name,
            display_name=variant.display_name or variant.name,
            revision=version.revision,
            order_number=version.order_number,
            task_ids=[t.id for t in tasks],
            activate_at=activate_at,
            create_time=now,
            requester=version.requester,
        )
        return build, tasks

    async def _delete_builds(self, build_ids: List[str]):
        for build_id in build_ids:
            try:
                await self.store.delete_build(build_id)
            except Exception as e:
                self.logger.error(f"Could not delete build {build_id}: {e}")

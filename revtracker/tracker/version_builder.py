import asyncio
import logging
from typing import List, Optional

from ..config.config_serializer import ConfigSerializer
from ..core.errors import DuplicateKeyError, OrderConsistencyError, ProjectConfigError, TrackerError
from ..core.models import ProjectConfig, ProjectRef, Revision, Version, clean_name, utcnow
from ..notifications.base import NotificationHook
from ..sources.base import RepoPoller
from ..store.base import BaseStore
from ..validator import ProjectValidator, SyntaxValidator, split_diagnostics
from .expander import BuildExpander
from .resolver import ConfigResolver


class VersionBuilder:
    """
    Turns revisions into stored versions.

    Each revision becomes exactly one version: an existing version is returned
    unchanged, a revision whose config cannot be used becomes a stub version
    carrying the errors, and everything else is expanded into builds and
    tasks.
    """

    def __init__(
        self,
        project_ref: ProjectRef,
        store: BaseStore,
        poller: RepoPoller,
        resolver: Optional[ConfigResolver] = None,
        expander: Optional[BuildExpander] = None,
        validator: Optional[ProjectValidator] = None,
        notification_hook: Optional[NotificationHook] = None,
        fetch_timeout: Optional[float] = None
    ):
        self.project_ref = project_ref
        self.store = store
        self.poller = poller
        self.fetch_timeout = fetch_timeout
        self.resolver = resolver or ConfigResolver(project_ref, poller, store, fetch_timeout)
        self.expander = expander or BuildExpander(project_ref, store)
        self.validator = validator or SyntaxValidator()
        self.notification_hook = notification_hook
        self.logger = logging.getLogger(f"{__name__}.VersionBuilder")

    async def store_revisions(self, revisions: List[Revision]) -> Optional[Version]:
        """
        Store versions for a batch of revisions, given most recent first.

        Revisions are processed oldest first. Fatal errors propagate and leave
        the rest of the batch unprocessed.

        Returns:
            The version of the most recent revision, or None for an empty batch
        """
        newest = None
        for revision in reversed(revisions):
            newest = await self.build(revision)
        return newest

    async def build(self, revision: Revision) -> Version:
        project_id = self.project_ref.identifier

        existing = await self.store.find_version_by_revision(project_id, revision.revision)
        if existing is not None:
            self.logger.info(f"Skipping revision {revision.revision} for project {project_id}: already stored as {existing.id}")
            return existing

        self.logger.info(f"Processing revision {revision.revision} for project {project_id}")

        try:
            config = await self.resolver.resolve(revision.revision)
        except ProjectConfigError as e:
            version = await self._shell_version(revision)
            version.errors = e.errors
            version.warnings = e.warnings
            return await self._store_stub(version)

        ignored = await self._is_ignored(revision, config)

        version = await self._shell_version(revision)
        version.config = ConfigSerializer.config_to_yaml(config)
        version.ignored = ignored

        errors, warnings = split_diagnostics(self.validator.check(config))
        version.warnings = warnings
        if errors:
            self.logger.error(
                f"Project {project_id} config at revision {revision.revision} is invalid: {'; '.join(errors)}"
            )
            version.errors = errors
            return await self._store_stub(version)

        inserted = await self.expander.expand(version, config)
        if not inserted:
            return await self.store.find_version_by_revision(project_id, revision.revision)

        await self._notify(version)
        return version

    async def _is_ignored(self, revision: Revision, config: ProjectConfig) -> bool:
        if not config.ignore:
            return False
        try:
            changed = await asyncio.wait_for(
                self.poller.get_changed_files(revision.revision), timeout=self.fetch_timeout
            )
        except (TrackerError, asyncio.TimeoutError) as e:
            self.logger.warning(
                f"Could not list changed files for {revision.revision} in {self.project_ref}, "
                f"treating it as not ignored: {e}"
            )
            return False

        ignored = config.ignores_all_files(changed)
        if ignored:
            self.logger.info(f"Revision {revision.revision} only changes ignored files")
        return ignored

    async def _shell_version(self, revision: Revision) -> Version:
        """Version carrying the revision metadata and a freshly allocated order number"""
        project_id = self.project_ref.identifier
        order_number = await self.store.next_order_number(project_id)
        await self.sanity_check_order_number(order_number, revision.revision)

        return Version(
            id=clean_name(f"{project_id}_{revision.revision}"),
            project_id=project_id,
            revision=revision.revision,
            order_number=order_number,
            author=revision.author,
            author_email=revision.author_email,
            author_id=await self._resolve_author_id(revision),
            message=revision.message,
            create_time=revision.create_time,
            created_at=utcnow(),
            branch=self.project_ref.branch,
            owner=self.project_ref.owner,
            repo=self.project_ref.repo,
        )

    async def sanity_check_order_number(self, order_number: int, revision: str):
        """
        Raises:
            OrderConsistencyError: the order number does not exceed the latest
                stored one, or the revision is the latest stored revision
        """
        latest = await self.store.find_latest_version(self.project_ref.identifier)
        if latest is None:
            return

        if order_number <= latest.order_number:
            self.logger.critical(
                f"Order number {order_number} for revision {revision} of {self.project_ref} "
                f"does not exceed latest order number {latest.order_number} ({latest.revision})"
            )
            raise OrderConsistencyError(
                f"new order number {order_number} is not greater than {latest.order_number} "
                f"for project {self.project_ref}"
            )
        if latest.revision == revision:
            self.logger.critical(f"Revision {revision} of {self.project_ref} is already the latest version {latest.id}")
            raise OrderConsistencyError(f"revision {revision} is already the latest version of {self.project_ref}")

    async def _resolve_author_id(self, revision: Revision) -> Optional[str]:
        if revision.author_external_id is None:
            return None
        try:
            user = await self.store.find_user_by_external_id(revision.author_external_id)
        except Exception as e:
            self.logger.error(f"Could not look up author {revision.author_external_id} of {revision.revision}: {e}")
            return None
        return user.id if user else None

    async def _store_stub(self, version: Version) -> Version:
        try:
            await self.store.insert_version(version)
        except DuplicateKeyError as e:
            existing = await self.store.find_version_by_revision(version.project_id, version.revision)
            if existing is None:
                self.logger.critical(f"Stub version {version.id} conflicts with a stored version: {e}")
                raise OrderConsistencyError(
                    f"order number {version.order_number} for {version.id} is already taken"
                ) from e
            self.logger.info(f"Stub version {version.id} was stored by a concurrent run")
            return existing

        self.logger.info(f"Stored stub version {version.id} (order {version.order_number}) with {len(version.errors)} error(s)")
        return version

    async def _notify(self, version: Version):
        if self.notification_hook is None:
            return
        try:
            await self.notification_hook.version_created(version, self.project_ref)
        except Exception as e:
            self.logger.error(f"Notification hook failed for version {version.id}: {e}")

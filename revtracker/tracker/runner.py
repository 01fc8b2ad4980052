import asyncio
import logging
from typing import Callable, Dict, List, Optional

from ..config.global_config_loader import GlobalConfig
from ..core.models import ProjectRef
from ..notifications.base import NotificationHook
from ..sources import poller_for_project
from ..sources.base import RepoPoller
from ..store.base import BaseStore
from .repotracker import RepoTracker
from .version_builder import VersionBuilder

PollerFactory = Callable[[ProjectRef, GlobalConfig], RepoPoller]


class TrackerRunner:
    """Runs the tracker for many projects concurrently"""

    def __init__(
        self,
        global_config: GlobalConfig,
        store: BaseStore,
        poller_factory: Optional[PollerFactory] = None,
        notification_hook: Optional[NotificationHook] = None
    ):
        self.global_config = global_config
        self.store = store
        self.poller_factory = poller_factory or poller_for_project
        self.notification_hook = notification_hook
        self.logger = logging.getLogger(f"{__name__}.TrackerRunner")

    def create_tracker(self, project_ref: ProjectRef, poller: RepoPoller) -> RepoTracker:
        settings = self.global_config.tracker
        builder = VersionBuilder(
            project_ref, self.store, poller,
            notification_hook=self.notification_hook,
            fetch_timeout=settings.fetch_timeout,
        )
        return RepoTracker(project_ref, self.store, poller, settings=settings, builder=builder)

    async def run_project(self, project_ref: ProjectRef):
        poller = self.poller_factory(project_ref, self.global_config)
        try:
            await self.create_tracker(project_ref, poller).fetch_revisions()
        finally:
            await poller.close()

    async def run_all(self, project_refs: List[ProjectRef]) -> Dict[str, str]:
        """
        Track every enabled project, at most ``num_concurrent_requests`` at a time.

        A failing project never affects the others.

        Returns:
            Mapping of project identifier to "success" or the error message
        """
        semaphore = asyncio.Semaphore(self.global_config.tracker.num_concurrent_requests)
        enabled = [ref for ref in project_refs if ref.enabled]

        async def run_one(project_ref: ProjectRef) -> str:
            async with semaphore:
                try:
                    await self.run_project(project_ref)
                    return "success"
                except Exception as e:
                    self.logger.error(f"Tracking project {project_ref} failed: {e}", exc_info=True)
                    return str(e) or e.__class__.__name__

        outcomes = await asyncio.gather(*(run_one(ref) for ref in enabled))
        results = {ref.identifier: outcome for ref, outcome in zip(enabled, outcomes)}

        failed = sum(1 for outcome in outcomes if outcome != "success")
        self.logger.info(f"Tracked {len(enabled)} project(s), {failed} failed")
        return results

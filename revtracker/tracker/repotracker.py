import logging
from typing import List, Optional

from ..config.global_config_loader import TrackerConfig
from ..core.errors import TransientFetchError, WatermarkUpdateError
from ..core.models import ProjectRef, Revision
from ..sources.base import RepoPoller
from ..store.base import BaseStore
from .activation import ProjectActivator
from .version_builder import VersionBuilder


class RepoTracker:
    """
    Runs the tracking pipeline for one project.

    Polls the repository for revisions after the stored watermark (or the most
    recent ones on first run), stores a version for each, advances the
    watermark and activates build variants that have come due.
    """

    def __init__(
        self,
        project_ref: ProjectRef,
        store: BaseStore,
        poller: RepoPoller,
        settings: Optional[TrackerConfig] = None,
        builder: Optional[VersionBuilder] = None,
        activator: Optional[ProjectActivator] = None
    ):
        self.project_ref = project_ref
        self.store = store
        self.poller = poller
        self.settings = settings or TrackerConfig()
        self.builder = builder or VersionBuilder(
            project_ref, store, poller, fetch_timeout=self.settings.fetch_timeout
        )
        self.activator = activator or ProjectActivator(store, lookback=self.settings.activation_lookback)
        self.logger = logging.getLogger(f"{__name__}.RepoTracker")

    async def fetch_revisions(self):
        """
        Raises:
            FatalTrackerError: a revision could not be stored or the watermark
                could not be advanced; the watermark is left where it was
        """
        project_ref = self.project_ref

        if not project_ref.enabled:
            self.logger.info(f"Skipping disabled project {project_ref}")
            return

        repository = await self.store.find_repository(project_ref.identifier)
        last_revision = repository.last_revision if repository else None

        revisions: List[Revision] = []
        try:
            if not last_revision:
                num_revisions = self.settings.num_new_repo_revisions_to_fetch
                self.logger.debug(
                    f"No last recorded revision for {project_ref}, fetching the {num_revisions} most recent"
                )
                revisions = await self.poller.get_recent_revisions(num_revisions)
            else:
                self.logger.debug(f"Last recorded revision for {project_ref} is {last_revision}")
                if project_ref.has_repotracker_error():
                    self.logger.warning(
                        f"Repotracker error for base revision of {project_ref} "
                        f"({project_ref.owner}/{project_ref.repo}:{project_ref.branch}), not polling"
                    )
                    return
                revisions = await self.poller.get_revisions_since(
                    last_revision, self.settings.max_repo_revisions_to_search
                )
        except TransientFetchError as e:
            self.logger.error(f"Problem fetching revisions for {project_ref}: {e}")
            revisions = []

        if revisions:
            self.logger.info(f"Found {len(revisions)} new revision(s) for {project_ref}")
            try:
                last_version = await self.builder.store_revisions(revisions)
            except Exception as e:
                self.logger.error(f"Problem storing revisions for {project_ref}: {e}")
                raise

            try:
                await self.store.update_last_revision(project_ref.identifier, last_version.revision)
            except Exception as e:
                self.logger.error(f"Problem updating last revision for {project_ref}: {e}")
                raise WatermarkUpdateError(
                    f"could not advance {project_ref} to {last_version.revision}: {e}"
                ) from e

        try:
            await self.activator.activate(project_ref.identifier)
        except Exception as e:
            self.logger.error(f"Problem activating recent commits for {project_ref}: {e}")
            raise

import asyncio
import logging
from typing import Optional

from ..config.config_loader import ProjectConfigLoader
from ..core.errors import (
    ConfigFetchError, FatalTrackerError, ProjectConfigError, ResponseReadError,
    is_recoverable_config_error
)
from ..core.models import ProjectConfig, ProjectRef
from ..sources.base import RepoPoller
from ..store.base import BaseStore


class ConfigResolver:
    """
    Resolves a project's build configuration at a revision.

    A project with ``local_config`` set is loaded from that file and any
    failure is fatal. Otherwise the config file is fetched from the repository
    at the revision; missing or malformed files become ProjectConfigError so a
    stub version can be stored, while transport and response problems are
    re-raised unchanged.
    """

    def __init__(self, project_ref: ProjectRef, poller: RepoPoller, store: BaseStore,
                 fetch_timeout: Optional[float] = None):
        self.project_ref = project_ref
        self.poller = poller
        self.store = store
        self.fetch_timeout = fetch_timeout
        self.logger = logging.getLogger(f"{__name__}.ConfigResolver")

    async def resolve(self, revision: str) -> ProjectConfig:
        if self.project_ref.local_config:
            return self._load_local()

        try:
            return await self._fetch_remote(revision)
        except ConfigFetchError as e:
            if is_recoverable_config_error(e):
                message = (
                    f"project '{self.project_ref.identifier}' revision '{revision}': "
                    f"could not load config '{self.project_ref.remote_path}': {e}"
                )
                self.logger.error(message)
                raise ProjectConfigError(errors=[message]) from e

            last_revision = await self._last_known_good_revision()
            self.logger.critical(
                f"Unable to get config for project {self.project_ref} at revision {revision} "
                f"(last known good revision: {last_revision}): {e}"
            )
            raise

    def _load_local(self) -> ProjectConfig:
        path = self.project_ref.local_config
        try:
            return ProjectConfigLoader.load_from_yaml(path)
        except Exception as e:
            self.logger.critical(f"Unable to load local config {path} for project {self.project_ref}: {e}")
            raise FatalTrackerError(f"unable to load local config {path} for project {self.project_ref}: {e}") from e

    async def _fetch_remote(self, revision: str) -> ProjectConfig:
        try:
            return await asyncio.wait_for(self.poller.get_remote_config(revision), timeout=self.fetch_timeout)
        except asyncio.TimeoutError as e:
            raise ResponseReadError(
                f"timed out after {self.fetch_timeout}s fetching config at {revision}",
                revision=revision, path=self.project_ref.remote_path
            ) from e

    async def _last_known_good_revision(self) -> Optional[str]:
        try:
            repository = await self.store.find_repository(self.project_ref.identifier)
        except Exception as e:
            self.logger.error(f"Could not read watermark for {self.project_ref}: {e}")
            return None
        return repository.last_revision if repository else None

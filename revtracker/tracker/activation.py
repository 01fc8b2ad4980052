import logging
from datetime import datetime
from typing import List, Optional

from ..core.models import Version, utcnow
from ..store.base import BaseStore


class ProjectActivator:
    """
    Activates build variants whose activation time has passed.

    For every build variant, the most recent version (within the lookback
    window) whose activation time is due gets its build activated, unless it
    already is. Ignored and stub versions are never activated.
    """

    def __init__(self, store: BaseStore, lookback: int = 50):
        self.store = store
        self.lookback = lookback
        self.logger = logging.getLogger(f"{__name__}.ProjectActivator")

    async def activate(self, project_id: str, now: Optional[datetime] = None) -> List[str]:
        now = now or utcnow()
        versions = [
            v for v in await self.store.list_versions(project_id, limit=self.lookback)
            if not v.ignored and not v.is_stub
        ]

        activated: List[str] = []
        for variant in self._variant_names(versions):
            version = self._most_recent_due(versions, variant, now)
            if version is None:
                self.logger.debug(f"{project_id}/{variant}: nothing due")
                continue

            status = version.get_build_status(variant)
            if status.activated:
                self.logger.debug(f"{project_id}/{variant}: {version.id} already activated")
                continue
            if not status.build_id:
                continue

            await self.store.activate_build(status.build_id)
            await self.store.set_variant_activated(version.id, variant)
            activated.append(status.build_id)
            self.logger.debug(f"{project_id}/{variant}: activated build {status.build_id} of {version.id}")

        if activated:
            self.logger.info(f"Activated {len(activated)} build(s) for project {project_id}")
        return activated

    @staticmethod
    def _variant_names(versions: List[Version]) -> List[str]:
        names: List[str] = []
        for version in versions:
            for status in version.build_variants:
                if status.build_variant not in names:
                    names.append(status.build_variant)
        return names

    @staticmethod
    def _most_recent_due(versions: List[Version], variant: str, now: datetime) -> Optional[Version]:
        # versions are ordered most recent first
        for version in versions:
            status = version.get_build_status(variant)
            if status is None or status.activate_at is None:
                continue
            if status.activate_at <= now:
                return version
        return None

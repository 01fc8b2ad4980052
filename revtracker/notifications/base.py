from abc import ABC, abstractmethod

from ..core.models import ProjectRef, Version


class NotificationHook(ABC):
    """Called after a version has been fully expanded and stored"""

    @abstractmethod
    async def version_created(self, version: Version, project_ref: ProjectRef):
        pass

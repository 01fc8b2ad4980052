from abc import ABC, abstractmethod
from typing import List

from ..core.models import ProjectConfig, Revision


class RepoPoller(ABC):
    """
    Behaviour required of every repository poller.

    Revision listings are returned most recent first.
    """

    @abstractmethod
    async def get_remote_config(self, revision: str) -> ProjectConfig:
        """
        Fetch and parse the project's configuration file as of a revision.

        Raises:
            ConfigNotFoundError, ConfigFormatError, APIRequestError: recoverable
            APIResponseError, APIUnmarshalError, ResponseReadError: infrastructural
        """
        pass

    @abstractmethod
    async def get_changed_files(self, revision: str) -> List[str]:
        """All file paths modified by a revision"""
        pass

    @abstractmethod
    async def get_revisions_since(self, since_revision: str, max_revisions: int) -> List[Revision]:
        """
        All revisions after ``since_revision``.

        At most ``max_revisions`` revisions are searched for ``since_revision``;
        if it is not found within that bound, the revisions scanned so far are
        returned. A value <= 0 searches back to the first revision.

        Raises:
            TransientFetchError: the listing could not be fetched
        """
        pass

    @abstractmethod
    async def get_recent_revisions(self, max_revisions: int) -> List[Revision]:
        """
        The most recent ``max_revisions`` revisions.

        Raises:
            TransientFetchError: the listing could not be fetched
        """
        pass

    async def close(self):
        """Release any held resources"""
        pass

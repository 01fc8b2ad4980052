from abc import ABC, abstractmethod
from typing import List, Optional

from ..core.models import Version, Build, Task, Repository, User, Subscription


class BaseStore(ABC):
    """
    Base class for document stores.

    All stores implement this interface so the tracker never depends on a
    concrete backend. Implementations must enforce uniqueness of versions on
    (project_id, revision) and on (project_id, order_number), raising
    DuplicateKeyError on violation, and must be safe under concurrent access.

    Multi-document inserts are not atomic: callers that create builds before
    their version are responsible for deleting them if the version insert fails.
    """

    @abstractmethod
    async def connect(self):
        """Initialize connection (for external stores like Redis)"""
        pass

    @abstractmethod
    async def disconnect(self):
        """Close connection and cleanup resources"""
        pass

    # Versions

    @abstractmethod
    async def insert_version(self, version: Version):
        """
        Insert a version.

        Raises:
            DuplicateKeyError: id, (project, revision) or (project, order number) already stored
        """
        pass

    @abstractmethod
    async def find_version(self, version_id: str) -> Optional[Version]:
        pass

    @abstractmethod
    async def find_version_by_revision(self, project_id: str, revision: str) -> Optional[Version]:
        pass

    @abstractmethod
    async def find_latest_version(self, project_id: str) -> Optional[Version]:
        """Version with the highest order number for a project"""
        pass

    @abstractmethod
    async def find_last_variant_activation(self, project_id: str, variant: str) -> Optional[Version]:
        """Most recent version (by order number) whose build status for the variant is activated"""
        pass

    @abstractmethod
    async def list_versions(self, project_id: str, limit: int = 50) -> List[Version]:
        """Most recent versions first"""
        pass

    @abstractmethod
    async def set_variant_activated(self, version_id: str, variant: str):
        """Mark a version's build status for a variant as activated"""
        pass

    # Builds and tasks

    @abstractmethod
    async def insert_build(self, build: Build):
        """
        Raises:
            DuplicateKeyError: build id already stored
        """
        pass

    @abstractmethod
    async def find_build(self, build_id: str) -> Optional[Build]:
        pass

    @abstractmethod
    async def delete_build(self, build_id: str):
        """Delete a build and all of its tasks"""
        pass

    @abstractmethod
    async def activate_build(self, build_id: str):
        """Mark a build and all of its tasks as activated"""
        pass

    @abstractmethod
    async def insert_tasks(self, tasks: List[Task]):
        pass

    @abstractmethod
    async def find_tasks_for_build(self, build_id: str) -> List[Task]:
        pass

    # Repository watermark

    @abstractmethod
    async def find_repository(self, project_id: str) -> Optional[Repository]:
        pass

    @abstractmethod
    async def update_last_revision(self, project_id: str, revision: str):
        pass

    # Order numbers

    @abstractmethod
    async def next_order_number(self, project_id: str) -> int:
        """
        Atomically allocate the next revision order number for a project.
        Numbers may be skipped but never repeat or go backward.
        """
        pass

    # Users and subscriptions

    @abstractmethod
    async def insert_user(self, user: User):
        pass

    @abstractmethod
    async def find_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def find_user_by_external_id(self, external_id: int) -> Optional[User]:
        pass

    @abstractmethod
    async def upsert_subscription(self, subscription: Subscription):
        pass

    @abstractmethod
    async def list_subscriptions(self) -> List[Subscription]:
        pass

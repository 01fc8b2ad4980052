import logging
from typing import List, Optional

from ..core.enums import NotificationPreference, Requester
from ..core.errors import NotificationError
from ..core.models import ProjectRef, Selector, Subscriber, Subscription, User, Version
from ..store.base import BaseStore
from .base import NotificationHook

RESOURCE_TYPE_VERSION = "VERSION"
BUILD_BREAK_TRIGGER = "build-break"


class BuildBreakSubscriptionHook(NotificationHook):
    """
    Subscribes people to build-break alerts for a new version.

    A commit author who already has a build-break subscription of their own
    is left to it. Otherwise, when the project notifies on build failure,
    every admin with a build-break preference is subscribed. Admins that
    cannot be subscribed are reported together once the others are stored.
    """

    def __init__(self, store: BaseStore):
        self.store = store
        self.logger = logging.getLogger(f"{__name__}.BuildBreakSubscriptionHook")

    async def version_created(self, version: Version, project_ref: ProjectRef):
        problems: List[str] = []

        if version.author_id:
            try:
                author = await self.store.find_user(version.author_id)
            except Exception as e:
                problems.append(f"unable to retrieve user {version.author_id}: {e}")
            else:
                if author and author.build_break_subscription_id:
                    return

        if not project_ref.notify_on_build_failure:
            return

        subscribers: List[Subscriber] = []
        for admin in project_ref.admins:
            try:
                subscriber = await self._make_subscriber(admin)
            except NotificationError as e:
                problems.extend(e.problems)
                continue
            if subscriber is not None:
                subscribers.append(subscriber)

        for subscriber in subscribers:
            subscription = Subscription(
                resource_type=RESOURCE_TYPE_VERSION,
                trigger=BUILD_BREAK_TRIGGER,
                selectors=[
                    Selector(type="object", data="task"),
                    Selector(type="project", data=project_ref.identifier),
                    Selector(type="requester", data=Requester.REPOTRACKER.value),
                ],
                subscriber=subscriber,
            )
            try:
                await self.store.upsert_subscription(subscription)
            except Exception as e:
                problems.append(f"unable to store subscription for {subscriber.target}: {e}")

        self.logger.info(f"Subscribed {len(subscribers)} admin(s) of {project_ref} to build breaks for {version.id}")
        if problems:
            raise NotificationError(problems)

    async def _make_subscriber(self, user_id: str) -> Optional[Subscriber]:
        user: Optional[User] = await self.store.find_user(user_id)
        if user is None:
            raise NotificationError([f"user {user_id} does not exist"])

        preference = user.build_break_preference
        if not preference:
            return None
        if preference == NotificationPreference.EMAIL:
            return Subscriber(type=preference.value, target=user.email)
        if preference == NotificationPreference.SLACK:
            return Subscriber(type=preference.value, target=user.slack_username)
        raise NotificationError([f"invalid subscription preference for build break: {preference}"])

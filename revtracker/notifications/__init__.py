from .base import NotificationHook
from .build_break import BuildBreakSubscriptionHook

__all__ = ['NotificationHook', 'BuildBreakSubscriptionHook']

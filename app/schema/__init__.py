"""Schema package exports."""

from .chat import Message, NotificationPrefs, NotificationRateLimit, Profile, Room, RoomMember, TurnSession
from .push_subscriptions import PushSubscription

__all__ = ["Message", "NotificationPrefs", "NotificationRateLimit", "Profile", "PushSubscription", "Room", "RoomMember", "TurnSession"]

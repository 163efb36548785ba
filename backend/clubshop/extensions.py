# Overview: Shared extension instances for storage, sessions and notifications.

from .storage import JsonStore
from .services.session_service import InMemorySessionRegistry
from .services.notification_service import NotificationDispatcher

store = JsonStore()
sessions = InMemorySessionRegistry()
notifier = NotificationDispatcher()

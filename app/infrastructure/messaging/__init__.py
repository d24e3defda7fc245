# Messaging infrastructure package
"""
Notification messaging adapters.

This package contains:
- schemas: pydantic wire models, one per notification kind
- converters: mapping between domain notifications and wire models
- SqliteNotificationOutbox: append-only notification log in the queue database
"""

from .sqlite_notification_outbox import SqliteNotificationOutbox

__all__ = ["SqliteNotificationOutbox"]

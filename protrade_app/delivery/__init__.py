"""Position event notification sinks."""

from .base import LoggingNotificationSink, NotificationSink, notify_safely

__all__ = ["NotificationSink", "LoggingNotificationSink", "notify_safely"]

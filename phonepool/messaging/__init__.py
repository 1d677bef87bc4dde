"""
Messaging Package
=================

Customer notification port and its implementations.
"""

from phonepool.messaging.notifier import (
    CustomerEvent,
    EventKind,
    LoggingNotifier,
    Notifier,
    WebhookNotifier,
    create_notifier,
)

__all__ = [
    "CustomerEvent",
    "EventKind",
    "LoggingNotifier",
    "Notifier",
    "WebhookNotifier",
    "create_notifier",
]

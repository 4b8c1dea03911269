"""
Notifications Package.

Fire-and-forget delivery of ledger events (log + Telegram).
"""

from core.config import NotificationConfig
from notifications.dispatcher import (
    LogChannel,
    Notification,
    NotificationChannel,
    NotificationDispatcher,
    NotificationEvent,
)
from notifications.telegram import TelegramChannel


def build_dispatcher(config: NotificationConfig) -> NotificationDispatcher:
    """Log channel always, Telegram when configured."""
    channels = [LogChannel()]
    if config.telegram_enabled:
        channels.append(TelegramChannel.from_config(config))
    return NotificationDispatcher(channels)


__all__ = [
    "LogChannel",
    "Notification",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationEvent",
    "TelegramChannel",
    "build_dispatcher",
]

"""
Notification Dispatcher.

Fire-and-forget side channel invoked after a ledger operation
commits. A failing channel is logged and never propagates to
the operation that triggered it.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from core.clock import now_utc

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    TRANSFER_COMPLETED = "transfer_completed"
    ORDER_FOLLOWED = "order_followed"
    PROFIT_SETTLED = "profit_settled"
    SETTLEMENT_FAILED = "settlement_failed"


@dataclass
class Notification:
    """One outbound message."""

    event: NotificationEvent
    user_id: str
    title: str
    details: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=now_utc)


class NotificationChannel:
    """Base channel. Subclasses deliver a notification or raise."""

    name = "channel"

    def send(self, notification: Notification) -> None:
        raise NotImplementedError


class LogChannel(NotificationChannel):
    """Writes notifications to the application log."""

    name = "log"

    def send(self, notification: Notification) -> None:
        details = ", ".join(f"{k}={v}" for k, v in notification.details.items())
        logger.info(
            f"[{notification.event.value}] user={notification.user_id} "
            f"{notification.title} | {details}"
        )


class NotificationDispatcher:
    """Delivers notifications to every configured channel."""

    def __init__(self, channels: Optional[List[NotificationChannel]] = None):
        self._channels = list(channels) if channels is not None else [LogChannel()]

    @property
    def channels(self) -> List[NotificationChannel]:
        return list(self._channels)

    def add_channel(self, channel: NotificationChannel) -> None:
        self._channels.append(channel)

    def dispatch(self, notification: Notification) -> int:
        """
        Send to all channels.

        Returns:
            Number of channels that accepted the notification
        """
        delivered = 0
        for channel in self._channels:
            try:
                channel.send(notification)
                delivered += 1
            except Exception as e:
                logger.error(
                    f"Notification channel {channel.name} failed for "
                    f"{notification.event.value}/{notification.user_id}: {e}"
                )
        return delivered

    def notify(
        self,
        event: NotificationEvent,
        user_id: str,
        title: str,
        **details: Any,
    ) -> int:
        return self.dispatch(Notification(event=event, user_id=user_id, title=title, details=details))

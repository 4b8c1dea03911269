"""
Telegram Notification Channel.

Sends formatted ledger notifications to an operator chat.
"""

import logging
from typing import Optional

import requests

from core.config import NotificationConfig
from notifications.dispatcher import Notification, NotificationChannel, NotificationEvent

logger = logging.getLogger(__name__)


class TelegramChannel(NotificationChannel):
    """Send ledger notifications to Telegram."""

    name = "telegram"

    EVENT_EMOJI = {
        NotificationEvent.TRANSFER_COMPLETED: "💸",
        NotificationEvent.ORDER_FOLLOWED: "📋",
        NotificationEvent.PROFIT_SETTLED: "💰",
        NotificationEvent.SETTLEMENT_FAILED: "🔴",
    }

    def __init__(
        self,
        bot_token: Optional[str] = None,
        chat_id: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.timeout = timeout
        self.enabled = bool(self.bot_token and self.chat_id)

    @classmethod
    def from_config(cls, config: NotificationConfig) -> "TelegramChannel":
        return cls(
            bot_token=config.telegram_bot_token,
            chat_id=config.telegram_chat_id,
            timeout=config.timeout_seconds,
        )

    def format_message(self, notification: Notification) -> str:
        lines = [
            f"{self.EVENT_EMOJI.get(notification.event, '📌')} **{notification.title}**",
            "",
            f"👤 **User:** {notification.user_id}",
            f"⏰ **Time:** {notification.created_at.strftime('%Y-%m-%d %H:%M UTC')}",
        ]
        if notification.details:
            lines.append("")
            for key, value in notification.details.items():
                lines.append(f"• {key.replace('_', ' ').title()}: {value}")
        return "\n".join(lines)

    def send(self, notification: Notification) -> None:
        """
        Post the notification.

        Raises on transport or API errors; the dispatcher isolates them.
        """
        if not self.enabled:
            logger.debug("Telegram notifications not configured")
            return

        url = f"https://api.telegram.org/bot{self.bot_token}/sendMessage"
        payload = {
            "chat_id": self.chat_id,
            "text": self.format_message(notification),
            "parse_mode": "Markdown",
            "disable_web_page_preview": True,
        }

        response = requests.post(url, json=payload, timeout=self.timeout)
        if response.status_code != 200:
            raise RuntimeError(f"Telegram API error: {response.status_code}")

        logger.info(f"Telegram notification sent for {notification.event.value}/{notification.user_id}")

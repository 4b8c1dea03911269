#!/usr/bin/env python3
"""
Check Telegram Notification - verify the operator chat is reachable.

Usage:
    python -m scripts.check_telegram
"""

import sys

from core.config import NotificationConfig
from notifications import Notification, NotificationEvent, TelegramChannel


def main() -> int:
    config = NotificationConfig.from_env()

    print("=" * 60)
    print("TELEGRAM NOTIFICATION CHECK")
    print("=" * 60)
    print(f"  TELEGRAM_BOT_TOKEN: {'✅ Set' if config.telegram_bot_token else '❌ Missing'}")
    print(f"  TELEGRAM_CHAT_ID: {'✅ Set' if config.telegram_chat_id else '❌ Missing'}")

    if not config.telegram_enabled:
        print("❌ Missing configuration! Check .env file.")
        return 1

    channel = TelegramChannel.from_config(config)
    notification = Notification(
        event=NotificationEvent.TRANSFER_COMPLETED,
        user_id="operator",
        title="Telegram test message",
        details={"status": "operational"},
    )

    try:
        channel.send(notification)
    except Exception as e:
        print(f"❌ Error: {e}")
        return 1

    print("✅ SUCCESS! Check your Telegram for the message.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

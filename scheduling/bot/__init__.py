"""
Bot Module Initialization

Exports waitlist notifiers for use across the application.
"""

from scheduling.bot.notifier import (
    LoggingNotifier,
    TelegramNotifier,
    WaitlistNotifier,
    format_opening_message,
)

__all__ = [
    "LoggingNotifier",
    "TelegramNotifier",
    "WaitlistNotifier",
    "format_opening_message",
]

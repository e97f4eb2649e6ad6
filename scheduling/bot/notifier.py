"""
Waitlist Notifications

Tells waitlisted users that slots opened up on the day they asked for.
Telegram users are identified by their Telegram id, which is also the chat id.
"""

import logging
from typing import List, Protocol

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from scheduling.models.domain import TimeSlot, WaitlistRequest

logger = logging.getLogger(__name__)

# Openings listed in one message; the rest are summarised.
MAX_LISTED_SLOTS = 5


class WaitlistNotifier(Protocol):
    async def notify_opening(self, request: WaitlistRequest, slots: List[TimeSlot]) -> bool:
        """Deliver an opening notice. Returns False if delivery failed."""
        ...


def format_opening_message(request: WaitlistRequest, slots: List[TimeSlot]) -> str:
    """
    Build the user-facing opening message.

    Example:
        🎉 Good news! Slots opened up on Monday, January 07, 2030.

        Available times:
          • 10:00
          • 11:00

        Open your waitlist to book one before it is gone.
    """
    date_formatted = request.preferred_date.strftime("%A, %B %d, %Y")
    labels = [slot.label or slot.start_time.strftime("%H:%M") for slot in slots]
    lines = "\n".join(f"  • {label}" for label in labels[:MAX_LISTED_SLOTS])
    if len(labels) > MAX_LISTED_SLOTS:
        lines += f"\n  … and {len(labels) - MAX_LISTED_SLOTS} more"
    return (
        f"🎉 Good news! Slots opened up on {date_formatted}.\n\n"
        f"Available times:\n{lines}\n\n"
        f"Open your waitlist to book one before it is gone."
    )


class LoggingNotifier:
    """Notifier that only writes the notice to the log."""

    async def notify_opening(self, request: WaitlistRequest, slots: List[TimeSlot]) -> bool:
        logger.info(
            f"Waitlist {request.id}: {len(slots)} openings for user {request.user_id} "
            f"on {request.preferred_date}"
        )
        return True


class TelegramNotifier:
    """Notifier sending the notice as a Telegram message."""

    def __init__(self, bot: Bot):
        """
        Initialize TelegramNotifier.

        Args:
            bot: Aiogram Bot used to send messages
        """
        self.bot = bot

    async def notify_opening(self, request: WaitlistRequest, slots: List[TimeSlot]) -> bool:
        try:
            await self.bot.send_message(
                chat_id=request.user_id,
                text=format_opening_message(request, slots),
            )
        except TelegramAPIError as e:
            logger.error(f"Failed to notify user {request.user_id} for waitlist {request.id}: {e}")
            return False

        logger.info(f"Sent opening notice for waitlist {request.id} to user {request.user_id}")
        return True

    async def close(self) -> None:
        """
        Close bot session on application shutdown.
        """
        await self.bot.session.close()
        logger.info("Bot session closed successfully")

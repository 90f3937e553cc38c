from __future__ import annotations

import hashlib
import logging

from telegram import Bot
from telegram.error import TelegramError

from birthday_herald.models import Announcement

LOGGER = logging.getLogger(__name__)

BIRTHDAY_TEMPLATES = (
    "🎉 It's {name}'s birthday today!",
    "🥳 Today we celebrate {name}.",
    "🚨 Birthday Alert 🚨\n{name}'s big day has arrived.",
    "🎈 {name} leveled up today.\nAchievement unlocked.",
    "🎂 It's {name} Day™.",
    "📢 Public service announcement:\n{name} was born on this day.\nCake is appropriate.",
    "🌟 Today's featured human: {name}.",
)

BIRTHDAY_AGE_TEMPLATES = (
    "🎉 It's {name}'s birthday (turning {age})!",
    "🎈 {name} officially turns {age} today.",
    "🚨 {name} levels up to {age} today.",
    "🥳 Today marks {age} years of {name}.",
    "🎊 {age} looks good on {name}.",
)


def format_announcement(announcement: Announcement) -> str:
    has_age = announcement.turning_age is not None
    templates = BIRTHDAY_AGE_TEMPLATES if has_age else BIRTHDAY_TEMPLATES
    template = _select_rotating_template(announcement, templates)
    return template.format(name=announcement.display_name, age=announcement.turning_age)


def _select_rotating_template(announcement: Announcement, templates: tuple[str, ...]) -> str:
    seed = "|".join(
        (
            str(announcement.owner_id),
            str(announcement.community_id),
            announcement.occurrence.isoformat(),
        )
    )
    digest = hashlib.sha256(seed.encode("utf-8")).digest()
    index = int.from_bytes(digest[:4], "big") % len(templates)
    return templates[index]


class TelegramAnnouncer:
    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def announce(self, announcement: Announcement) -> bool:
        try:
            await self._bot.send_message(
                chat_id=announcement.destination,
                text=format_announcement(announcement),
            )
        except TelegramError:
            LOGGER.exception(
                "Could not post birthday of user %s to chat %s",
                announcement.owner_id,
                announcement.destination,
            )
            return False
        return True

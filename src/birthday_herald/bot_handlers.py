from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone

from telegram import Update, User
from telegram.constants import ChatType
from telegram.ext import CallbackContext, CommandHandler

from birthday_herald.birthday_service import BirthdayService
from birthday_herald.date_logic import (
    InvalidDateError,
    age_on,
    next_occurrence,
    projected_birthday,
    time_until_next_occurrence,
)
from birthday_herald.models import BirthdayRecord
from birthday_herald.record_store import StoreError

LOGGER = logging.getLogger(__name__)

GROUP_CHAT_TYPES = (ChatType.GROUP, ChatType.SUPERGROUP)

SET_BIRTHDAY_USAGE = "Usage: /setbirthday DD MM [YYYY] [UTC+H]\nExample: /setbirthday 14 3 1990 UTC+2"
STORE_FAILURE_REPLY = "⚠️ Could not reach the birthday list right now. Please try again."

LIFE_EXPECTANCY_YEARS = 80

_OFFSET_PATTERN = re.compile(r"(?:utc)?([+-]\d{1,2})", re.IGNORECASE)


@dataclass(frozen=True)
class HandlerDependencies:
    service: BirthdayService


@dataclass(frozen=True)
class BirthdayArgs:
    day: int
    month: int
    year: int | None
    utc_offset_hours: int


def parse_set_birthday_args(args: list[str]) -> BirthdayArgs:
    if len(args) < 2 or len(args) > 4:
        raise ValueError("Expected a day and a month, then optionally a year and a UTC offset")

    if not args[0].isdigit() or not args[1].isdigit():
        raise ValueError("Day and month must be numbers")

    year: int | None = None
    offset: int | None = None
    for token in args[2:]:
        offset_match = _OFFSET_PATTERN.fullmatch(token.strip())
        if offset_match and offset is None:
            offset = int(offset_match.group(1))
        elif re.fullmatch(r"\d{4}", token.strip()) and year is None:
            year = int(token)
        else:
            raise ValueError(f"Could not understand {token!r}; use YYYY for the year and UTC+H for the offset")

    return BirthdayArgs(
        day=int(args[0]),
        month=int(args[1]),
        year=year,
        utc_offset_hours=offset if offset is not None else 0,
    )


def _format_offset(hours: int) -> str:
    return f"UTC{hours:+d}"


def render_set_confirmation(record: BirthdayRecord) -> str:
    year = str(record.birth_year) if record.birth_year is not None else "???"
    message = (
        f"✍️📅🎈 Added birthday for {record.display_name} on "
        f"{record.birth_day}.{record.birth_month}.{year}!"
    )
    if record.utc_offset_hours:
        message += f" ({_format_offset(record.utc_offset_hours)})"
    return message


def render_birthday_message(record: BirthdayRecord, today: date, until_next: timedelta) -> str:
    age = age_on(record.birth_year, record.birth_month, record.birth_day, today)
    age_text = f".{record.birth_year} - They are {age} years old" if age is not None else ""
    message = (
        f"📅🎈 {record.display_name}'s birthday is on "
        f"{record.birth_day}.{record.birth_month}{age_text}!"
    )

    if until_next == timedelta(0):
        message += "\n🎉 It's today!"
    elif until_next.days == 0:
        message += "\n⏳ Less than a day to go."
    else:
        days = until_next.days
        message += f"\n⏳ {days} day{'s' if days != 1 else ''} to go."

    milestone = projected_birthday(
        record.birth_year, record.birth_month, record.birth_day, LIFE_EXPECTANCY_YEARS
    )
    if age is not None and milestone is not None and age < LIFE_EXPECTANCY_YEARS:
        message += (
            f"\n🔮 Turns {LIFE_EXPECTANCY_YEARS} on "
            f"{milestone.day}.{milestone.month}.{milestone.year}."
        )
    return message


def render_birthday_list(
    records: list[BirthdayRecord], today: date, community_id: int, target: int | None
) -> str:
    if not records:
        lines = ["No birthdays are set for this chat yet."]
    else:
        lines = [f"Birthdays in this chat ({len(records)})", "Sorted by soonest:"]
        for index, record in enumerate(records, start=1):
            days_until = (next_occurrence(record.birth_month, record.birth_day, today) - today).days
            when = "Today" if days_until == 0 else f"In {days_until}d"
            lines.append(
                f"{index}. {record.display_name} | {record.birth_day}.{record.birth_month} | {when}"
            )

    lines.append("")
    if target is None:
        lines.append("⚠️ No announcement chat set. Use /setbirthdaychat.")
    elif target == community_id:
        lines.append("📣 Announcements are posted in this chat.")
    else:
        lines.append(f"📣 Announcements are posted in chat {target}.")
    return "\n".join(lines)


def _render_help() -> str:
    return (
        "Commands:\n"
        "/setbirthday DD MM [YYYY] [UTC+H] - Set your birthday (reply to someone to set theirs)\n"
        "/birthday - Show your birthday (reply to someone to see theirs)\n"
        "/birthdays - List everyone's birthday in this chat\n"
        "/setbirthdaychat [chat_id] - Announce birthdays in this chat, or the given one\n"
        "/help - Show this help message"
    )


def _target_user(update: Update) -> User | None:
    message = update.effective_message
    if message is not None and message.reply_to_message is not None:
        replied_to = message.reply_to_message.from_user
        if replied_to is not None:
            return replied_to
    return update.effective_user


async def _require_group(update: Update) -> bool:
    chat = update.effective_chat
    if chat is not None and chat.type in GROUP_CHAT_TYPES:
        return True
    if update.effective_message:
        await update.effective_message.reply_text("Birthdays are tracked per group. Use this command in a group chat.")
    return False


async def help_command(update: Update, context: CallbackContext) -> None:
    await update.effective_message.reply_text(_render_help())


async def set_birthday_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not await _require_group(update):
        return

    user = _target_user(update)
    if user is None:
        return

    try:
        parsed = parse_set_birthday_args(list(context.args or []))
    except ValueError as exc:
        await update.effective_message.reply_text(f"{exc}.\n{SET_BIRTHDAY_USAGE}")
        return

    try:
        record = deps.service.set_birthday(
            owner_id=user.id,
            community_id=update.effective_chat.id,
            display_name=user.full_name,
            day=parsed.day,
            month=parsed.month,
            year=parsed.year,
            utc_offset_hours=parsed.utc_offset_hours,
        )
    except InvalidDateError as exc:
        await update.effective_message.reply_text(f"🐺🎩❌ Invalid date! {exc}")
        return
    except StoreError:
        LOGGER.exception("Failed to store birthday for user %s", user.id)
        await update.effective_message.reply_text(STORE_FAILURE_REPLY)
        return

    await update.effective_message.reply_text(render_set_confirmation(record))


async def get_birthday_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not await _require_group(update):
        return

    user = _target_user(update)
    if user is None:
        return

    try:
        record = deps.service.get_birthday(user.id, update.effective_chat.id)
    except StoreError:
        LOGGER.exception("Failed to read birthday for user %s", user.id)
        await update.effective_message.reply_text(STORE_FAILURE_REPLY)
        return

    if record is None:
        await update.effective_message.reply_text("☹️🎈 No birthday set for this user for this chat!")
        return

    now = datetime.now(timezone.utc)
    until_next = time_until_next_occurrence(
        record.birth_month, record.birth_day, record.utc_offset_hours, now
    )
    await update.effective_message.reply_text(render_birthday_message(record, now.date(), until_next))


async def list_birthdays_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not await _require_group(update):
        return

    community_id = update.effective_chat.id
    today = datetime.now(timezone.utc).date()
    try:
        records = deps.service.list_birthdays(community_id, today)
        target = deps.service.get_announcement_target(community_id)
    except StoreError:
        LOGGER.exception("Failed to list birthdays for community %s", community_id)
        await update.effective_message.reply_text(STORE_FAILURE_REPLY)
        return

    await update.effective_message.reply_text(render_birthday_list(records, today, community_id, target))


async def set_birthday_chat_command(update: Update, context: CallbackContext) -> None:
    deps: HandlerDependencies = context.application.bot_data["handler_deps"]
    if not await _require_group(update):
        return

    community_id = update.effective_chat.id
    args = list(context.args or [])
    if not args:
        destination = community_id
    elif len(args) == 1 and re.fullmatch(r"-?\d+", args[0]):
        destination = int(args[0])
    else:
        await update.effective_message.reply_text("Usage: /setbirthdaychat [chat_id]")
        return

    try:
        deps.service.set_announcement_target(community_id, destination)
    except StoreError:
        LOGGER.exception("Failed to store announcement chat for community %s", community_id)
        await update.effective_message.reply_text(STORE_FAILURE_REPLY)
        return

    where = "this chat" if destination == community_id else f"chat {destination}"
    await update.effective_message.reply_text(f"📣 Birthday announcements will be posted in {where}.")


def build_handlers() -> list:
    return [
        CommandHandler("help", help_command),
        CommandHandler("setbirthday", set_birthday_command),
        CommandHandler("birthday", get_birthday_command),
        CommandHandler("birthdays", list_birthdays_command),
        CommandHandler("setbirthdaychat", set_birthday_chat_command),
    ]

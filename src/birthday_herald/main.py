from __future__ import annotations

import logging

from telegram.ext import Application, CallbackContext

from birthday_herald.announcer import TelegramAnnouncer
from birthday_herald.birthday_service import BirthdayService
from birthday_herald.bot_handlers import HandlerDependencies, build_handlers
from birthday_herald.record_store import RecordStore
from birthday_herald.scheduler import AnnouncementScheduler
from birthday_herald.settings import load_settings

LOGGER = logging.getLogger(__name__)

ANNOUNCEMENT_JOB_NAME = "birthday-announcements"


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


async def scheduled_announcement_callback(context: CallbackContext) -> None:
    scheduler: AnnouncementScheduler = context.application.bot_data["scheduler"]
    try:
        await scheduler.tick()
    except Exception:
        # One bad tick must not unschedule announcements for every group.
        LOGGER.exception("Birthday announcement tick failed; retrying next tick")


def main() -> None:
    configure_logging()

    settings = load_settings()
    store = RecordStore(settings.birthday_store_path)
    service = BirthdayService(store)

    application = Application.builder().token(settings.telegram_bot_token).build()
    application.bot_data["settings"] = settings
    application.bot_data["handler_deps"] = HandlerDependencies(service=service)

    announcer = TelegramAnnouncer(application.bot)
    application.bot_data["scheduler"] = AnnouncementScheduler(
        store=store,
        announce=announcer.announce,
    )

    for handler in build_handlers():
        application.add_handler(handler)

    application.job_queue.run_repeating(
        scheduled_announcement_callback,
        interval=settings.announce_interval_seconds,
        first=0,
        name=ANNOUNCEMENT_JOB_NAME,
    )

    LOGGER.info("Using birthday store at %s", settings.birthday_store_path)
    application.run_polling()


if __name__ == "__main__":
    main()

"""Delete push delivery log rows past the retention window.

Meant for a daily cron job; same effect as POST /api/admin/push/cleanup,
followed by a summary of what is left in the stats window.
"""

import argparse
import asyncio
import logging

from app.db import close_db, get_db_context
from app.services.push import PushNotificationService, summarize_stats
from app.settings import settings

logger = logging.getLogger("cleanup_push_logs")


async def cleanup(days: int) -> tuple[int, dict[str, int]]:
    async with get_db_context() as session:
        service = PushNotificationService(session)
        deleted = await service.cleanup_old_logs(days)
        summary = summarize_stats(await service.get_stats(settings.notification_stats_days))
    await close_db()
    return deleted, summary


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--days", type=int, default=settings.notification_log_retention_days)
    args = parser.parse_args()

    logging.basicConfig(level=getattr(logging, settings.log_level.upper()))
    deleted, summary = asyncio.run(cleanup(args.days))
    logger.info("Deleted %d push log rows older than %d days", deleted, args.days)
    logger.info(
        "Last %d days: %s",
        settings.notification_stats_days,
        ", ".join(f"{status}={count}" for status, count in summary.items()),
    )

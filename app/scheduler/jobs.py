"""ADLENS: Scheduler Jobs.

APScheduler cron jobs: daily classification and daily findings for every
active client. One client failing never stops the others.
"""

from typing import Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session

from app.config import settings
from app.database import engine
from app.analyzer.pipeline import active_client_ids, run_classification, run_findings
from app.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


def run_for_active_clients(
    job_name: str, run: Callable[[Session, str], object], bind=None
) -> dict:
    """Apply ``run(session, client_id)`` to each active client.

    Returns {"ok": [...], "failed": [...]} client ids.
    """
    outcome: dict = {"ok": [], "failed": []}
    with Session(bind or engine) as session:
        client_ids = active_client_ids(session)
        logger.info(f"{job_name}: {len(client_ids)} active clients")
        for client_id in client_ids:
            try:
                run(session, client_id)
                outcome["ok"].append(client_id)
            except Exception as e:
                session.rollback()
                outcome["failed"].append(client_id)
                logger.error(
                    f"{job_name} failed for {client_id}: {e}",
                    extra={"client_id": client_id},
                )
    logger.info(
        f"{job_name} complete: {len(outcome['ok'])} ok, {len(outcome['failed'])} failed"
    )
    return outcome


async def daily_classification_job():
    """Classify the latest snapshot date of every active client."""
    run_for_active_clients("Daily classification", run_classification)


async def daily_findings_job():
    """Run the findings rules for every active client."""
    run_for_active_clients("Daily findings", run_findings)


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        daily_classification_job,
        "cron",
        hour=settings.classification_hour,
        minute=0,
        id="daily_classification",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.add_job(
        daily_findings_job,
        "cron",
        hour=settings.findings_hour,
        minute=0,
        id="daily_findings",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Classification at {settings.classification_hour}:00 UTC, "
        f"findings at {settings.findings_hour}:00 UTC"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

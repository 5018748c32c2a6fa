"""
scheduler.py – Cooperative background jobs for the API process.

Two interval jobs run beside request handling, sharing nothing with it but
the database:

* leaderboard reconciliation, every RECONCILE_INTERVAL_HOURS (default 24)
* re-drive of pending aggregates, every REDRIVE_INTERVAL_SECONDS

Each run opens its own connection in a worker thread.  A failed run is
logged and the loop carries on at the next interval.  Cron can replace
this with `footprint reconcile` / `footprint redrive`.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from footprint.aggregates import redrive_pending_aggregates
from footprint.config import Config
from footprint.db import with_connection
from footprint.leaderboard import reconcile_leaderboard

logger = logging.getLogger(__name__)


async def run_periodic(
    name: str,
    interval_seconds: float,
    job: Callable[[], Any],
    *,
    run_immediately: bool = False,
) -> None:
    """Run blocking *job* in a thread every *interval_seconds* until cancelled."""
    logger.info("Scheduled job %s every %.0fs", name, interval_seconds)
    if not run_immediately:
        await asyncio.sleep(interval_seconds)
    while True:
        try:
            await asyncio.to_thread(job)
        except Exception:  # noqa: BLE001 – keep the loop alive
            logger.exception("Scheduled job %s failed", name)
        await asyncio.sleep(interval_seconds)


def start_background_jobs(config: Config) -> list[asyncio.Task]:
    """Create the reconciliation and re-drive tasks on the running loop."""
    url = config.database_url

    def reconcile() -> None:
        with_connection(url, reconcile_leaderboard)

    def redrive() -> None:
        with_connection(
            url, lambda conn: redrive_pending_aggregates(conn, limit=config.redrive_batch_size)
        )

    return [
        asyncio.create_task(
            run_periodic("reconcile_leaderboard", config.reconcile_interval_seconds, reconcile),
            name="reconcile_leaderboard",
        ),
        asyncio.create_task(
            run_periodic("redrive_pending_aggregates", config.redrive_interval_seconds, redrive),
            name="redrive_pending_aggregates",
        ),
    ]


async def stop_background_jobs(tasks: list[asyncio.Task]) -> None:
    """Cancel *tasks* and wait for them to finish."""
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)

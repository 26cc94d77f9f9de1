"""Background incident sync loop.

Periodically runs a full sync cycle (fetch, enrich, persist, backlog
sweep) so the stored incidents stay current without an external trigger.
"""

import asyncio
import logging

from pulsemap.sync.service import IncidentSyncService

logger = logging.getLogger(__name__)

SYNC_INTERVAL = 300  # 5 minutes
STARTUP_DELAY = 10


async def incident_sync_loop(
    service: IncidentSyncService,
    district: str,
    days_back: int,
    interval: float = SYNC_INTERVAL,
    *,
    startup_delay: float = STARTUP_DELAY,
) -> None:
    """Background loop: sync incidents for one district every ``interval`` seconds.

    Runs forever (until cancelled). A cycle that overlaps a manually
    triggered sync is skipped by the service's running guard.

    All errors are caught so the loop never crashes the server.
    """
    # Short delay to let the server finish startup
    await asyncio.sleep(startup_delay)
    logger.info("Background incident sync started (district=%s, interval=%ds)", district, interval)

    while True:
        try:
            result = await service.sync_incidents(district, days_back)
            if result.skipped:
                logger.info("Background sync skipped: %s", result.message)
            elif result.errors:
                logger.warning(
                    "Background sync: %s, first error: %s", result.message, result.errors[0]
                )
            else:
                logger.info("Background sync: %s", result.message)
        except Exception:
            logger.exception("Background incident sync failed")

        await asyncio.sleep(interval)

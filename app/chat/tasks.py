"""
Celery tasks for chat app.

This module defines periodic tasks for:
- Presence cleanup (stale live connections)

Related files:
    - services.py: PresenceService
    - broadcast.py: presence fan-out from sync code

Usage:
    from chat.tasks import sweep_stale_connections

    sweep_stale_connections.delay()

Scheduled in config/settings.py (CELERY_BEAT_SCHEDULE) every
PRESENCE_CONFIG.HEARTBEAT_INTERVAL_SECONDS.
"""

import logging

from celery import shared_task

from chat.broadcast import broadcast_presence
from chat.constants import PRESENCE_CONFIG
from chat.services import PresenceService

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def sweep_stale_connections(
    self,
    max_age_seconds: int = PRESENCE_CONFIG.STALE_CONNECTION_SECONDS,
) -> int:
    """
    Drop live connections whose heartbeat stopped and announce offline users.

    A worker process that dies never runs its consumers' disconnect
    handlers; without this sweep its users would stay online forever.

    Args:
        max_age_seconds: Connections silent for longer than this are dropped

    Returns:
        Number of users that went offline
    """
    result = PresenceService.sweep_stale_connections(max_age_seconds=max_age_seconds)
    if not result.success:
        logger.error(f"Stale connection sweep failed: {result.error}")
        return 0

    for update in result.data:
        broadcast_presence(update)

    if result.data:
        logger.info(f"Stale connection sweep marked {len(result.data)} users offline")
    return len(result.data)

"""Best-effort Redis pub/sub broadcasts for reward events."""

from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)

LEVEL_UP_CHANNEL = "pubsub:level_up"
ACHIEVEMENT_UNLOCKED_CHANNEL = "pubsub:achievement_unlocked"
REWARD_SENT_CHANNEL = "pubsub:reward_sent"
REWARD_FAILED_CHANNEL = "pubsub:reward_failed"


async def publish_event(redis: object | None, channel: str, payload: dict[str, Any]) -> None:
    """Publish a JSON payload. Never raises; a missing client is a no-op."""
    if redis is None:
        return
    try:
        await redis.publish(channel, json.dumps(payload, default=str))  # type: ignore[union-attr]
    except Exception:
        logger.warning("Failed to publish %s broadcast", channel, exc_info=True)

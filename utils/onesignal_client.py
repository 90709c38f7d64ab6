import httpx
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import config
from app.models.push import OneSignalPlayer

logger = logging.getLogger(__name__)

ONESIGNAL_API_URL = "https://onesignal.com/api/v1/notifications"
ONESIGNAL_ACTIVITY_THRESHOLD_SECONDS = 30  # Don't send push if user was active in last 30 seconds


async def send_push_notification_async(
    player_ids: List[str],
    heading: str,
    content: str,
    data: Optional[Dict[str, Any]] = None,
    url: Optional[str] = None,
) -> bool:
    """
    Send push notification via OneSignal asynchronously.

    Args:
        player_ids: List of OneSignal player IDs to send to
        heading: Notification heading/title
        content: Notification content/message
        data: Optional data payload to include
        url: Optional URL to open when notification is clicked
    """
    if not config.ONESIGNAL_ENABLED:
        logger.debug("OneSignal not enabled, notification not sent")
        return False

    if not player_ids:
        return False

    if not all([config.ONESIGNAL_APP_ID, config.ONESIGNAL_REST_API_KEY]):
        logger.warning("OneSignal credentials not fully configured")
        return False

    payload = {
        "app_id": config.ONESIGNAL_APP_ID,
        "include_player_ids": player_ids,
        "headings": {"en": heading},
        "contents": {"en": content},
    }
    if data:
        payload["data"] = data
    if url:
        payload["url"] = url

    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Basic {config.ONESIGNAL_REST_API_KEY}",
    }

    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(ONESIGNAL_API_URL, json=payload, headers=headers)
            response.raise_for_status()

            result = response.json()
            if result.get("invalid_player_ids"):
                logger.warning(f"OneSignal reported invalid player IDs: {result['invalid_player_ids']}")

            logger.info(f"OneSignal notification sent to {len(player_ids)} players")
            return True
    except httpx.HTTPStatusError as e:
        logger.error(f"OneSignal API error: {e.response.status_code} - {e.response.text}")
        return False
    except Exception as e:
        logger.error(f"Failed to send OneSignal notification: {e}")
        return False


async def is_account_active(db: AsyncSession, account_id: int) -> bool:
    """True when a device reported activity within the threshold; push is skipped then."""
    threshold_time = datetime.utcnow() - timedelta(seconds=ONESIGNAL_ACTIVITY_THRESHOLD_SECONDS)
    result = await db.execute(
        select(OneSignalPlayer.id).where(
            OneSignalPlayer.account_id == account_id,
            OneSignalPlayer.is_valid.is_(True),
            OneSignalPlayer.last_active >= threshold_time,
        ).limit(1)
    )
    return result.scalar_one_or_none() is not None


async def get_player_ids(db: AsyncSession, account_id: int, valid_only: bool = True) -> List[str]:
    """Get all player IDs for an account"""
    stmt = select(OneSignalPlayer.player_id).where(OneSignalPlayer.account_id == account_id)
    if valid_only:
        stmt = stmt.where(OneSignalPlayer.is_valid.is_(True))
    result = await db.execute(stmt)
    return [row[0] for row in result.all()]

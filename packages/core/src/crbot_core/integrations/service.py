"""Fan a single notification out to every enabled channel of a project."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from crbot_core.integrations.base import IntegrationClientType, NotificationMessage, create_integration_client

logger = logging.getLogger(__name__)

_MAX_WORKERS = 4


def _send_one(channel: str, channel_config: dict, message: NotificationMessage, settings: dict) -> bool:
    client = create_integration_client(channel, channel_config or {}, settings)
    if client is None:
        logger.warning("Unknown integration channel: %s", channel)
        return False
    if not client.is_enabled():
        logger.info("Integration channel is disabled: %s", channel)
        return False
    ok = client.send_notification(message)
    if ok:
        logger.info("Notification sent to %s", channel)
    else:
        logger.warning("Notification to %s was not delivered", channel)
    return ok


def send_notification(
    message: NotificationMessage,
    channel_configs: Optional[dict],
    settings: dict,
) -> dict[str, bool]:
    """Deliver ``message`` to every configured channel concurrently.

    Every channel is attempted and awaited; one channel raising never stops
    or leaks past the others. Returns ``{channel: delivered}``.
    """
    if not channel_configs:
        return {}

    results: dict[str, bool] = {}
    with ThreadPoolExecutor(max_workers=min(_MAX_WORKERS, len(channel_configs))) as pool:
        futures = {
            channel: pool.submit(_send_one, channel, cfg, message, settings)
            for channel, cfg in channel_configs.items()
        }

    for channel, future in futures.items():
        try:
            results[channel] = bool(future.result())
        except Exception as e:
            logger.error("Notification to %s failed: %s", channel, e)
            results[channel] = False
    return results


def get_work_item_details(title: Optional[str], channel_configs: Optional[dict], settings: dict) -> Optional[str]:
    """Look up the PingCode work item named in a pull request title.

    Returns its title and description as review context, or None when the
    channel is not enabled for the project or the lookup fails.
    """
    channel_config = (channel_configs or {}).get(IntegrationClientType.PINGCODE)
    if not title or not channel_config:
        return None
    client = create_integration_client(IntegrationClientType.PINGCODE, channel_config, settings)
    if client is None or not client.is_enabled():
        return None
    try:
        return client.get_work_item_details_from_title(title)
    except Exception as e:
        logger.error("Failed to fetch work item details: %s", e)
        return None

"""Chat robots that accept a JSON POST on an incoming-webhook URL."""

from __future__ import annotations

import logging
from typing import Any

import requests

from crbot_core.integrations.base import DEFAULT_TITLE, NotificationMessage, titled, webhook_url

logger = logging.getLogger(__name__)

_TIMEOUT = 10


class WebhookChannelClient:
    """Shared POST/validate logic; subclasses define the payload and success check."""

    NAME = ""

    def __init__(self, channel_config: dict, settings: dict | None = None):
        self.config = channel_config or {}
        self.webhook_url = webhook_url(self.config)

    def is_enabled(self) -> bool:
        return bool(self.config.get("enabled")) and bool(self.webhook_url)

    def format_message(self, message: NotificationMessage) -> dict[str, Any]:
        raise NotImplementedError

    def is_success(self, data: dict[str, Any]) -> bool:
        return data.get("errcode") == 0

    def send_notification(self, message: NotificationMessage) -> bool:
        if not self.webhook_url:
            logger.info("%s webhook URL is not configured", self.NAME)
            return False
        try:
            resp = requests.post(self.webhook_url, json=self.format_message(message), timeout=_TIMEOUT)
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("%s notification failed: %s", self.NAME, e)
            return False

        ok = isinstance(data, dict) and self.is_success(data)
        if not ok:
            logger.warning("%s rejected notification: %s", self.NAME, data)
        return ok


class DingTalkClient(WebhookChannelClient):
    NAME = "DingTalk"

    def format_message(self, message: NotificationMessage) -> dict[str, Any]:
        if message.msg_type == "markdown":
            return {
                "msgtype": "markdown",
                "markdown": {"title": message.title or DEFAULT_TITLE, "text": message.content},
            }
        return {"msgtype": "text", "text": {"content": titled(message)}}


class FeishuClient(WebhookChannelClient):
    NAME = "Feishu"

    def format_message(self, message: NotificationMessage) -> dict[str, Any]:
        if message.msg_type == "markdown":
            return {
                "msg_type": "interactive",
                "card": {
                    "elements": [
                        {
                            "tag": "div",
                            "text": {
                                "content": f"**{message.title or DEFAULT_TITLE}**\n\n{message.content}",
                                "tag": "lark_md",
                            },
                        }
                    ]
                },
            }
        return {"msg_type": "text", "content": {"text": titled(message)}}

    def is_success(self, data: dict[str, Any]) -> bool:
        return data.get("code") == 0


class WeComClient(WebhookChannelClient):
    NAME = "WeCom"

    def format_message(self, message: NotificationMessage) -> dict[str, Any]:
        if message.msg_type == "markdown":
            return {
                "msgtype": "markdown",
                "markdown": {"content": f"## {message.title or DEFAULT_TITLE}\n\n{message.content}"},
            }
        return {"msgtype": "text", "text": {"content": titled(message)}}

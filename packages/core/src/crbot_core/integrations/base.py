"""Notification channel interface and registry.

Each project lists its channels under ``integrations`` in ``.codereview.yml``::

    integrations:
      dingtalk:
        enabled: true
        notification:
          webhook_url: https://oapi.dingtalk.com/robot/send?access_token=...
      pingcode:
        enabled: true

Channel clients are built per event from that section and the bot settings,
then selected by the type tag they were configured under.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Protocol

DEFAULT_TITLE = "代码审查通知"


class IntegrationClientType:
    PINGCODE = "pingcode"
    DINGTALK = "dingtalk"
    WECOM = "wecom"
    FEISHU = "feishu"


@dataclass
class PullRequestRef:
    title: str = ""
    url: str = ""


@dataclass
class NotificationMessage:
    content: str
    title: Optional[str] = None
    msg_type: str = "text"  # "text" | "markdown"
    pull_request: Optional[PullRequestRef] = None


class IntegrationClient(Protocol):
    def is_enabled(self) -> bool: ...

    def send_notification(self, message: NotificationMessage) -> bool: ...


def webhook_url(channel_config: dict) -> Optional[str]:
    notification = channel_config.get("notification") or {}
    return notification.get("webhook_url") or notification.get("webhookUrl")


def titled(message: NotificationMessage) -> str:
    """Plain-text body with the optional bold title on top."""
    if message.title:
        return f"**{message.title}**\n\n{message.content}"
    return message.content


_REGISTRY: dict[str, Callable[[dict, dict], IntegrationClient]] = {}


def register_integration_client(client_type: str, factory: Callable[[dict, dict], IntegrationClient]) -> None:
    _REGISTRY[client_type] = factory


def create_integration_client(client_type: str, channel_config: dict, settings: dict) -> Optional[IntegrationClient]:
    """Build the client for ``client_type``, or None for an unknown channel."""
    if not _REGISTRY:
        _register_builtin_clients()
    factory = _REGISTRY.get(client_type)
    if factory is None:
        return None
    return factory(channel_config, settings)


def _register_builtin_clients() -> None:
    from crbot_core.integrations.pingcode import PingCodeClient
    from crbot_core.integrations.webhooks import DingTalkClient, FeishuClient, WeComClient

    register_integration_client(IntegrationClientType.DINGTALK, DingTalkClient)
    register_integration_client(IntegrationClientType.FEISHU, FeishuClient)
    register_integration_client(IntegrationClientType.WECOM, WeComClient)
    register_integration_client(IntegrationClientType.PINGCODE, PingCodeClient.from_settings)

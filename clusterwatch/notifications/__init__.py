"""Proactive notifications — Slack and Telegram webhooks.

Fires on cluster ready-count transitions recorded by the reconciler.
All webhook calls are fire-and-forget: delivery failures are logged, never raised.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

import httpx

from clusterwatch.config import settings

logger = logging.getLogger(__name__)


class NotifyLevel(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    RECOVERY = "recovery"


_EMOJI = {
    NotifyLevel.WARNING: "⚠️",
    NotifyLevel.CRITICAL: "🔴",
    NotifyLevel.RECOVERY: "✅",
}


class NotificationManager:
    """Central dispatcher for Slack / Telegram notifications."""

    def __init__(
        self,
        slack_webhook: str = "",
        telegram_token: str = "",
        telegram_chat_id: str = "",
    ) -> None:
        self.slack_webhook = slack_webhook or settings.slack_webhook_url
        self.telegram_token = telegram_token or settings.telegram_bot_token
        self.telegram_chat_id = telegram_chat_id or settings.telegram_chat_id
        self._enabled = bool(self.slack_webhook or self.telegram_token)

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    def status(self) -> dict[str, Any]:
        return {
            "enabled": self._enabled,
            "slack_configured": bool(self.slack_webhook),
            "telegram_configured": bool(self.telegram_token and self.telegram_chat_id),
        }

    async def notify_cluster_health(self, cluster_id: str, healthy: bool, ready: str) -> None:
        """Notify on a change of a cluster's ready-node count."""
        if healthy:
            level = NotifyLevel.RECOVERY
            headline = "Cluster healthy"
        elif ready.startswith("0/"):
            level = NotifyLevel.CRITICAL
            headline = "Cluster down"
        else:
            level = NotifyLevel.WARNING
            headline = "Cluster degraded"

        text = (
            f"{_EMOJI[level]} *{headline}*\n"
            f"Cluster: `{cluster_id}`\n"
            f"Ready nodes: *{ready}*\n"
        )
        await self._send(text)

    # -- Low-level dispatch -------------------------------------------------

    async def _send(self, text: str) -> None:
        """Dispatch to all configured channels."""
        if not self._enabled:
            return
        tasks = []
        if self.slack_webhook:
            tasks.append(self._send_slack(text))
        if self.telegram_token and self.telegram_chat_id:
            tasks.append(self._send_telegram(text))
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _send_slack(self, text: str) -> None:
        """POST to Slack incoming webhook."""
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    self.slack_webhook,
                    json={"text": text, "mrkdwn": True},
                )
                if resp.status_code != 200:
                    logger.warning("Slack webhook returned %d: %s", resp.status_code, resp.text[:200])
        except httpx.HTTPError as exc:
            logger.warning("Slack notification failed: %s", exc)

    async def _send_telegram(self, text: str) -> None:
        """POST to Telegram Bot API."""
        url = f"https://api.telegram.org/bot{self.telegram_token}/sendMessage"
        try:
            async with httpx.AsyncClient(timeout=10) as client:
                resp = await client.post(
                    url,
                    json={
                        "chat_id": self.telegram_chat_id,
                        "text": text,
                        "parse_mode": "Markdown",
                    },
                )
                if resp.status_code != 200:
                    logger.warning("Telegram API returned %d: %s", resp.status_code, resp.text[:200])
        except httpx.HTTPError as exc:
            logger.warning("Telegram notification failed: %s", exc)


# -- Singleton -----------------------------------------------------------------

_notifier: NotificationManager | None = None


def get_notifier() -> NotificationManager:
    """Return the process-level notification manager."""
    global _notifier
    if _notifier is None:
        _notifier = NotificationManager()
    return _notifier

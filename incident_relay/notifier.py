"""
DingTalk Notifier: signed markdown messages to a custom robot webhook.

Each request carries the robot access token plus a millisecond timestamp
and an HMAC-SHA256 signature over ``"{timestamp}\\n{secret}"`` keyed by the
robot secret, as required by DingTalk's "additional signature" mode.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import logging
import time
from typing import Any, Dict, Optional

import aiohttp

from incident_relay.errors import NotificationFailed
from incident_relay.models import WebhookConfig

log = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10


def sign(timestamp_ms: str, secret: str) -> str:
    """Base64 HMAC-SHA256 signature DingTalk expects for ``timestamp_ms``."""
    string_to_sign = f"{timestamp_ms}\n{secret}"
    digest = hmac.new(
        secret.encode("utf-8"),
        string_to_sign.encode("utf-8"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def build_message(title: str, text: str) -> Dict[str, Any]:
    """Markdown message payload."""
    return {"msgtype": "markdown", "markdown": {"title": title, "text": text}}


class DingTalkNotifier:
    """Sends (title, body) notifications to one DingTalk robot."""

    def __init__(self, config: WebhookConfig, session: aiohttp.ClientSession) -> None:
        self.config = config
        self._session = session

    def _params(self, timestamp_ms: Optional[str] = None) -> Dict[str, str]:
        timestamp_ms = timestamp_ms or str(int(time.time() * 1000))
        return {
            "access_token": self.config.webhook_token,
            "timestamp": timestamp_ms,
            "sign": sign(timestamp_ms, self.config.secret),
        }

    async def send(self, title: str, body: str) -> None:
        """
        Deliver one markdown notification.

        Raises:
            NotificationFailed: on transport errors, non-2xx responses or a
                non-zero ``errcode`` in DingTalk's reply.
        """
        message = build_message(title, body)
        log.info("Sending notification %r (%d chars)", title, len(body))

        try:
            async with self._session.post(
                self.config.endpoint,
                params=self._params(),
                json=message,
                timeout=aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS),
            ) as resp:
                resp.raise_for_status()
                reply = await resp.json(content_type=None)
        except aiohttp.ClientResponseError as exc:
            raise NotificationFailed(f"webhook returned HTTP {exc.status}: {exc.message}") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise NotificationFailed(f"webhook request failed: {exc!r}") from exc

        errcode = reply.get("errcode", 0) if isinstance(reply, dict) else 0
        if errcode != 0:
            raise NotificationFailed(
                f"webhook rejected message: errcode={errcode} errmsg={reply.get('errmsg')}"
            )
        log.info("Notification %r delivered", title)

"""
Delivery channels - email and push gateways over HTTP.
"""

import logging
from typing import Optional, Dict, Any, Protocol

import httpx

from app.config import settings

logger = logging.getLogger(__name__)


class ChannelSender(Protocol):
    """Anything that can hand a notification payload to a transport."""

    async def send(self, payload: Dict[str, Any]) -> None:
        ...


class HttpChannel:
    """
    Posts `{recipientId, title, message}` to a gateway.

    Without a gateway URL (or in development) the payload is only logged.
    Raises on transport or HTTP errors; the dispatcher isolates failures.
    """

    channel_name = "http"

    def __init__(
        self,
        gateway_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.gateway_url = gateway_url
        self.timeout = timeout if timeout is not None else settings.channel_timeout_seconds

    async def send(self, payload: Dict[str, Any]) -> None:
        if not self.gateway_url or settings.is_development:
            logger.info(
                f"{self.channel_name} notification queued for {payload.get('recipientId')}: "
                f"{payload.get('title')}"
            )
            return

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.gateway_url, json=payload)
            response.raise_for_status()

        logger.debug(f"{self.channel_name} notification sent to {payload.get('recipientId')}")


class EmailChannel(HttpChannel):
    channel_name = "email"

    def __init__(self, gateway_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(gateway_url or settings.email_gateway_url, timeout)


class PushChannel(HttpChannel):
    channel_name = "push"

    def __init__(self, gateway_url: Optional[str] = None, timeout: Optional[float] = None):
        super().__init__(gateway_url or settings.push_gateway_url, timeout)

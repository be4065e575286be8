"""Notification push webhook client with exponential backoff retry logic"""

import httpx
import asyncio
from typing import Dict, Any, Optional
from sacco_admin.config import settings
from sacco_admin.infrastructure.observability.metrics import notification_delivery_latency_histogram


class NotificationPushClient:
    """Client for pushing notifications to an external delivery gateway"""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        timeout: Optional[float] = None,
    ):
        self.webhook_url = webhook_url or settings.notification_push_url
        self.max_retries = max_retries or settings.webhook_max_retries
        self.backoff_base = settings.webhook_backoff_base if backoff_base is None else backoff_base
        self.timeout = timeout or settings.http_timeout_seconds

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def push(self, payload: Dict[str, Any]) -> None:
        """
        Send one notification {userId, type, title, message} to the gateway.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base, ... between attempts
        - Retries on error status codes and network failures
        - Re-raises the last error once retries are exhausted

        Args:
            payload: Notification body to post
        """
        attempt = 0
        async with httpx.AsyncClient() as client:
            while attempt < self.max_retries:
                try:
                    with notification_delivery_latency_histogram.time():
                        response = await client.post(
                            self.webhook_url,
                            json=payload,
                            timeout=self.timeout,
                        )
                        response.raise_for_status()
                        return

                except (httpx.HTTPStatusError, httpx.RequestError):
                    attempt += 1

                    if attempt >= self.max_retries:
                        raise

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

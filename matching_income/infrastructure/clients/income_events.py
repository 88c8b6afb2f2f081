"""Income event webhook client with exponential backoff retry logic"""

import httpx
import asyncio
import logging
from typing import Dict, Any
from matching_income.config import settings
from matching_income.domain.exceptions import IncomeWebhookError
from matching_income.infrastructure.observability.metrics import webhook_latency_histogram, webhook_failure_counter


class IncomeEventClient:
    """Client for sending income lifecycle events (approved, paid, ...) to the payout service"""

    def __init__(
        self,
        webhook_url: str | None = None,
        max_retries: int | None = None,
        backoff_base: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.webhook_url = settings.income_webhook_url if webhook_url is None else webhook_url
        self.max_retries = settings.webhook_max_retries if max_retries is None else max_retries
        self.backoff_base = settings.webhook_backoff_base if backoff_base is None else backoff_base
        self.timeout = settings.http_timeout_seconds
        self.transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    async def send_event(self, payload: Dict[str, Any]) -> None:
        """
        Send an income event with retry logic.

        Retry strategy:
        - One attempt plus up to max_retries retries; max_retries=0 sends once
        - Exponential backoff: 1s, 2s, 4s, 8s (base * 2^(attempt-1))
        - Retries on 5xx/4xx responses and network failures
        - Tracks latency histogram and failure counter

        Raises:
            IncomeWebhookError: delivery failed after all retries
        """
        if not self.enabled:
            return

        attempt = 0
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            while True:
                try:
                    with webhook_latency_histogram.time():
                        response = await client.post(self.webhook_url, json=payload)
                        response.raise_for_status()
                        return  # Success

                except (httpx.HTTPStatusError, httpx.RequestError) as e:
                    attempt += 1
                    webhook_failure_counter.inc()

                    if attempt > self.max_retries:
                        logging.error(
                            f"Income event delivery failed: {e}",
                            extra={"event": payload.get("event"), "record_id": payload.get("record_id")},
                        )
                        raise IncomeWebhookError(
                            f"Income event {payload.get('event')} undelivered after {attempt} attempts"
                        ) from e

                    backoff = self.backoff_base * (2 ** (attempt - 1))
                    await asyncio.sleep(backoff)

import asyncio
import logging
from datetime import datetime, timezone

import httpx

logger = logging.getLogger(__name__)


class WebhookLogger:
    """Analytics sink for an n8n-style webhook.

    ``log_event`` is fire-and-forget: the POST runs as a background task and
    any failure is logged as a warning.  ``send_call_summary`` is awaited and
    retries once with a short backoff, but also never raises.  With no URL
    configured both are no-ops.
    """

    def __init__(
        self,
        url: str = "",
        *,
        timeout: float = 10.0,
        retry_delay: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.retry_delay = retry_delay
        self._client = client
        self._pending: set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    async def _post(self, payload: dict) -> None:
        if self._client is not None:
            resp = await self._client.post(self.url, json=payload)
            resp.raise_for_status()
            return
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(self.url, json=payload)
            resp.raise_for_status()

    async def _send_event(self, payload: dict) -> None:
        try:
            await self._post(payload)
        except Exception as e:
            logger.warning("Analytics event %s failed: %s", payload.get("eventType"), e)

    def log_event(self, event_type: str, payload: dict) -> None:
        if not self.enabled:
            return
        body = {
            "eventType": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **payload,
        }
        try:
            task = asyncio.get_running_loop().create_task(self._send_event(body))
        except RuntimeError:
            logger.warning("No event loop, dropping analytics event %s", event_type)
            return
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send_call_summary(self, summary: dict) -> None:
        if not self.enabled:
            logger.info("Call summary not sent (no webhook URL configured)")
            return
        for attempt in range(2):
            try:
                await self._post(summary)
                logger.info("Call summary sent for %s", summary.get("callId"))
                return
            except Exception as e:
                if attempt == 0:
                    logger.warning("Call summary failed (attempt 1), retrying in %.0fs: %s", self.retry_delay, e)
                    await asyncio.sleep(self.retry_delay)
                else:
                    logger.error("Call summary failed after retry: %s", e)

    async def drain(self) -> None:
        """Wait for in-flight events, e.g. before shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

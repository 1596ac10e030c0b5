"""Alert sinks: where price alerts are delivered.

``notify`` is fire-and-forget. A sink must never raise into the caller;
delivery failures are logged and dropped.
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections import deque

import httpx

from cryptotracker.logging import get_logger

logger = get_logger(__name__)


class AlertSink(ABC):
    """Abstract notification target."""

    @abstractmethod
    def notify(self, title: str, body: str) -> None:
        """Deliver one notification without blocking the caller."""
        ...


class LogAlertSink(AlertSink):
    """Writes each alert to the structured log at WARNING level."""

    def notify(self, title: str, body: str) -> None:
        logger.warning("price_alert", title=title, body=body)


class AlertHistory(AlertSink):
    """Keeps the most recent alerts in memory for the dashboard."""

    def __init__(self, max_size: int = 100) -> None:
        self._entries: deque[dict] = deque(maxlen=max_size)

    def notify(self, title: str, body: str) -> None:
        self._entries.appendleft({"title": title, "body": body, "created_at": time.time()})

    def recent(self, limit: int | None = None) -> list[dict]:
        """Newest first."""
        entries = list(self._entries)
        return entries if limit is None else entries[:limit]

    def clear(self) -> None:
        self._entries.clear()


class WebhookAlertSink(AlertSink):
    """POSTs each alert as JSON to a webhook URL in a background task."""

    def __init__(self, url: str, http_client: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=10.0)
        self._pending: set[asyncio.Task] = set()  # type: ignore[type-arg]

    def notify(self, title: str, body: str) -> None:
        try:
            task = asyncio.get_running_loop().create_task(self._post(title, body))
        except RuntimeError:
            logger.error("webhook_alert_no_event_loop", title=title)
            return
        # Keep a reference until done so the task is not garbage-collected
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def drain(self) -> None:
        """Wait for in-flight deliveries."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._owns_client:
            await self._http.aclose()

    async def _post(self, title: str, body: str) -> None:
        try:
            response = await self._http.post(self._url, json={"title": title, "body": body})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("webhook_alert_failed", url=self._url, title=title, error=str(e))


class FanoutAlertSink(AlertSink):
    """Delivers to every child sink; one failing child does not affect the others."""

    def __init__(self, sinks: list[AlertSink]) -> None:
        self._sinks = list(sinks)

    def notify(self, title: str, body: str) -> None:
        for sink in self._sinks:
            try:
                sink.notify(title, body)
            except Exception:
                logger.error(
                    "alert_sink_failed",
                    sink=type(sink).__name__,
                    title=title,
                    exc_info=True,
                )

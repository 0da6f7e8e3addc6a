"""Single-target webhook delivery with bounded retry and exponential backoff."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx

from .models import DeliveryOutcome

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

JSON_HEADERS = {"Content-Type": "application/json"}


async def pause(sleep: Sleep, seconds: float, cancel: Optional[asyncio.Event] = None) -> bool:
    """Sleep unless ``cancel`` is set first; False means the wait was cut short."""

    if cancel is None:
        await sleep(seconds)
        return True
    if cancel.is_set():
        return False
    sleeper = asyncio.ensure_future(sleep(seconds))
    waiter = asyncio.ensure_future(cancel.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [task for task in (sleeper, waiter) if not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
    return not cancel.is_set()


def build_payload(event_data: dict[str, Any]) -> dict[str, Any]:
    return {"eventData": event_data, "createdAt": int(time.time() * 1000)}


class Sender(Protocol):
    async def send(
        self,
        url: str,
        payload: dict[str, Any],
        cancel: Optional[asyncio.Event] = None,
    ) -> DeliveryOutcome: ...


class HttpSender:
    """POST a JSON payload to one URL, retrying non-2xx and transport errors.

    Failures end up in the returned ``DeliveryOutcome``; nothing is raised, so
    one exhausted target never aborts its siblings in a batch.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        max_retries: int = 5,
        base_delay: float = 0.5,
        max_delay: float | None = None,
        timeout: float = 10.0,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self._sleep = sleep

    def backoff(self, attempt: int) -> float:
        delay = self.base_delay * (2**attempt)
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay

    async def send(
        self,
        url: str,
        payload: dict[str, Any],
        cancel: Optional[asyncio.Event] = None,
    ) -> DeliveryOutcome:
        attempts = 0
        status: int | None = None
        error: str | None = None
        for attempt in range(self.max_retries):
            attempts += 1
            try:
                response = await self.client.post(
                    url, json=payload, headers=JSON_HEADERS, timeout=self.timeout
                )
            except (httpx.HTTPError, httpx.InvalidURL) as exc:
                status, error = None, f"{type(exc).__name__}: {exc}"
            else:
                status, error = response.status_code, None
                if 200 <= status < 300:
                    return DeliveryOutcome(
                        target_url=url, attempts_made=attempts, status_code=status, success=True
                    )
            logger.warning(
                "delivery attempt %d/%d to %s failed: %s",
                attempts,
                self.max_retries,
                url,
                error or f"HTTP {status}",
            )
            if attempt + 1 >= self.max_retries:
                break
            if not await pause(self._sleep, self.backoff(attempt), cancel):
                logger.info("delivery to %s stopped by cancellation after %d attempts", url, attempts)
                break
        return DeliveryOutcome(
            target_url=url,
            attempts_made=attempts,
            status_code=status,
            error=error,
            success=False,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpSender":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

"""In-memory stand-ins for the registry and the HTTP sender."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

from hookrelay.errors import LoadError
from hookrelay.models import DeliveryOutcome
from hookrelay.store import Subscription


class FakeStore:
    def __init__(self, urls: Iterable[str] = (), fail: bool = False) -> None:
        self.rows = [
            Subscription(id=f"sub-{i}", target_url=url, created_at=0, updated_at=0)
            for i, url in enumerate(urls)
        ]
        self.fail = fail
        self.calls = 0

    def list(self) -> list[Subscription]:
        self.calls += 1
        if self.fail:
            raise LoadError("registry unreachable")
        return list(self.rows)


class FakeSender:
    """Records every send; URLs in ``failing`` come back as exhausted failures."""

    def __init__(self, failing: Iterable[str] = (), delays: dict[str, int] | None = None) -> None:
        self.failing = set(failing)
        self.delays = delays or {}
        self.sent: list[tuple[str, dict[str, Any]]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def send(self, url, payload, cancel=None) -> DeliveryOutcome:
        self.sent.append((url, payload))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            for _ in range(self.delays.get(url, 1)):
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1
        if url in self.failing:
            return DeliveryOutcome(target_url=url, attempts_made=5, status_code=500, success=False)
        return DeliveryOutcome(target_url=url, attempts_made=1, status_code=200, success=True)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)

"""Chunked, paced fan-out of one event to every registered subscriber."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Optional, Protocol, Sequence, Union

import anyio
from pydantic import ValidationError as PydanticValidationError

from .aggregate import aggregate
from .chunker import DEFAULT_DIVISOR, DEFAULT_MIN_BATCH, chunk
from .config import Settings
from .errors import LoadError, NoSubscribersError, ValidationError
from .metrics import DELIVERIES, DISPATCH_SECONDS
from .models import (
    DeliveryOutcome,
    DispatchResult,
    LoadFailed,
    NoSubscribers,
    Ok,
    TriggerEvent,
    TriggerResult,
    ValidationFailed,
)
from .sender import Sender, Sleep, build_payload, pause

logger = logging.getLogger(__name__)


class SubscriberSource(Protocol):
    def list(self) -> Sequence[Any]: ...


class DispatchState(str, Enum):
    IDLE = "idle"
    VALIDATION_FAILED = "validation_failed"
    LOADING = "loading"
    LOAD_FAILED = "load_failed"
    EMPTY = "empty"
    DISPATCHING = "dispatching"
    BATCH_RUNNING = "batch_running"
    BATCH_DELAY = "batch_delay"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class DispatchRun:
    """State history of a single dispatch; never shared between runs."""

    def __init__(self) -> None:
        self.state = DispatchState.IDLE
        self.history: list[DispatchState] = [DispatchState.IDLE]

    def transition(self, state: DispatchState) -> None:
        self.state = state
        self.history.append(state)


class DispatchEngine:
    def __init__(
        self,
        store: SubscriberSource,
        sender: Sender,
        pacing_seconds: float = 2.0,
        max_batch_items: Optional[int] = None,
        min_batch: int = DEFAULT_MIN_BATCH,
        divisor: int = DEFAULT_DIVISOR,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.store = store
        self.sender = sender
        self.pacing_seconds = pacing_seconds
        self.max_batch_items = max_batch_items
        self.min_batch = min_batch
        self.divisor = divisor
        self._sleep = sleep

    @classmethod
    def from_settings(
        cls, store: SubscriberSource, sender: Sender, settings: Settings
    ) -> "DispatchEngine":
        return cls(
            store,
            sender,
            pacing_seconds=settings.PACING_SECONDS,
            max_batch_items=settings.MAX_BATCH_ITEMS,
            min_batch=settings.BATCH_MIN_SIZE,
            divisor=settings.BATCH_DIVISOR,
        )

    async def dispatch(
        self,
        event: Union[TriggerEvent, dict[str, Any]],
        cancel: Optional[asyncio.Event] = None,
        run: Optional[DispatchRun] = None,
    ) -> DispatchResult:
        """Deliver ``event`` to every subscriber, one batch at a time.

        Raises ``ValidationError``, ``LoadError`` or ``NoSubscribersError``
        before any network call. Delivery failures are only reported in the
        returned result.
        """

        run = run or DispatchRun()
        event = self._validate(event, run)

        run.transition(DispatchState.LOADING)
        try:
            snapshot = tuple(await anyio.to_thread.run_sync(self.store.list))
        except LoadError:
            run.transition(DispatchState.LOAD_FAILED)
            raise
        if not snapshot:
            run.transition(DispatchState.EMPTY)
            raise NoSubscribersError()

        run.transition(DispatchState.DISPATCHING)
        started = time.time()
        targets = [s.target_url for s in snapshot]
        batches = chunk(targets, self.max_batch_items, self.min_batch, self.divisor)
        event_data = event.model_dump()
        logger.info(
            "dispatching event from %s to %d targets in %d batches",
            event.ipAddress,
            len(targets),
            len(batches),
        )

        outcomes: list[DeliveryOutcome] = []
        cancelled = False
        batches_run = 0
        for index, batch in enumerate(batches):
            if cancel is not None and cancel.is_set():
                cancelled = True
                break
            run.transition(DispatchState.BATCH_RUNNING)
            outcomes.extend(await self._run_batch(batch, event_data, cancel))
            batches_run += 1
            logger.info("batch %d/%d settled (%d targets)", index + 1, len(batches), len(batch))
            if index + 1 == len(batches):
                break
            if cancel is not None and cancel.is_set():
                cancelled = True
                break
            run.transition(DispatchState.BATCH_DELAY)
            await pause(self._sleep, self.pacing_seconds, cancel)

        run.transition(DispatchState.CANCELLED if cancelled else DispatchState.COMPLETED)
        result = aggregate(outcomes, cancelled=cancelled, total=len(targets), batches_run=batches_run)
        for outcome in outcomes:
            DELIVERIES.labels("success" if outcome.success else "failure").inc()
        DISPATCH_SECONDS.observe(time.time() - started)
        log = logger.info if result.overall_success else logger.warning
        log("dispatch finished: %s", result.message)
        return result

    def _validate(self, event: Union[TriggerEvent, dict[str, Any]], run: DispatchRun) -> TriggerEvent:
        if isinstance(event, TriggerEvent):
            return event
        try:
            return TriggerEvent.model_validate(event)
        except PydanticValidationError as exc:
            run.transition(DispatchState.VALIDATION_FAILED)
            raise ValidationError(
                "event data requires a non-empty ipAddress",
                errors=exc.errors(include_url=False, include_context=False),
            ) from exc

    async def _run_batch(
        self,
        batch: list[str],
        event_data: dict[str, Any],
        cancel: Optional[asyncio.Event],
    ) -> list[DeliveryOutcome]:
        results = await asyncio.gather(
            *(self.sender.send(url, build_payload(event_data), cancel) for url in batch),
            return_exceptions=True,
        )
        outcomes: list[DeliveryOutcome] = []
        for url, result in zip(batch, results):
            if isinstance(result, DeliveryOutcome):
                outcomes.append(result)
            elif isinstance(result, Exception):
                logger.error("sender raised for %s: %r", url, result)
                outcomes.append(
                    DeliveryOutcome(
                        target_url=url, attempts_made=0, error=repr(result), success=False
                    )
                )
            else:
                raise result
        return outcomes


async def trigger(
    engine: DispatchEngine,
    event: Union[TriggerEvent, dict[str, Any]],
    cancel: Optional[asyncio.Event] = None,
) -> TriggerResult:
    """Run a dispatch and fold fatal errors into a typed result."""

    try:
        result = await engine.dispatch(event, cancel=cancel)
    except ValidationError as exc:
        return ValidationFailed(message=str(exc), errors=exc.errors)
    except LoadError as exc:
        logger.error("subscriber load failed: %s", exc)
        return LoadFailed(message=str(exc))
    except NoSubscribersError as exc:
        return NoSubscribers(message=str(exc))
    return Ok(result=result)

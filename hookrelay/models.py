from __future__ import annotations

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import DeliveryError


class TriggerEvent(BaseModel):
    """Event data forwarded verbatim to every subscriber.

    ``ipAddress`` identifies the caller that raised the event; any extra
    fields are passed through untouched.
    """

    model_config = ConfigDict(extra="allow", str_strip_whitespace=True)

    ipAddress: str = Field(..., min_length=1)


class DeliveryOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_url: str
    attempts_made: int
    status_code: Optional[int] = None
    error: Optional[str] = None
    success: bool

    @property
    def detail(self) -> str | None:
        if self.error:
            return self.error
        if self.status_code is not None:
            return f"HTTP {self.status_code}"
        return None

    def raise_for_failure(self) -> None:
        if not self.success:
            raise DeliveryError(self.target_url, self.attempts_made, self.detail)


class DispatchResult(BaseModel):
    overall_success: bool
    outcomes: list[DeliveryOutcome] = Field(default_factory=list)
    message: str
    cancelled: bool = False
    batches_run: int = 0

    @property
    def failed(self) -> list[DeliveryOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.success]


class Ok(BaseModel):
    kind: Literal["ok"] = "ok"
    result: DispatchResult


class LoadFailed(BaseModel):
    kind: Literal["load_failed"] = "load_failed"
    message: str


class NoSubscribers(BaseModel):
    kind: Literal["no_subscribers"] = "no_subscribers"
    message: str


class ValidationFailed(BaseModel):
    kind: Literal["validation_failed"] = "validation_failed"
    message: str
    errors: list[dict[str, Any]] = Field(default_factory=list)


TriggerResult = Annotated[
    Union[Ok, LoadFailed, NoSubscribers, ValidationFailed],
    Field(discriminator="kind"),
]

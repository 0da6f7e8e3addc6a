"""Error taxonomy shared by the store, the dispatch engine and the gateway."""

from __future__ import annotations


class HookRelayError(Exception):
    """Base class for every error raised by hookrelay."""


class LoadError(HookRelayError):
    """The subscriber registry could not be read."""


class ValidationError(HookRelayError):
    """Malformed trigger input or subscription data."""

    def __init__(self, message: str, errors: list[dict] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)


class NotFoundError(HookRelayError):
    """No subscription exists for the given id."""

    def __init__(self, subscription_id: str) -> None:
        self.subscription_id = subscription_id
        super().__init__(f"subscription {subscription_id} not found")


class NoSubscribersError(HookRelayError):
    """The registry snapshot was empty, so there is nothing to notify."""

    def __init__(self, message: str = "No subscribers found to send triggers. Try again after creating one") -> None:
        super().__init__(message)


class AuthError(HookRelayError):
    """A gateway token could not be verified."""


class DeliveryError(HookRelayError):
    """A single target exhausted its retry budget.

    The engine never raises this; it is produced on demand from a failed
    outcome by ``DeliveryOutcome.raise_for_failure``.
    """

    def __init__(self, target_url: str, attempts: int, detail: str | None) -> None:
        self.target_url = target_url
        self.attempts = attempts
        self.detail = detail
        super().__init__(f"delivery to {target_url} failed after {attempts} attempts: {detail}")

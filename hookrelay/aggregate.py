from __future__ import annotations

from typing import Optional, Sequence

from .models import DeliveryOutcome, DispatchResult

NO_SUBSCRIBERS_MESSAGE = "No subscribers found to send triggers. Try again after creating one"
ALL_DELIVERED_MESSAGE = "All triggers sent successfully"


def aggregate(
    outcomes: Sequence[DeliveryOutcome],
    cancelled: bool = False,
    total: Optional[int] = None,
    batches_run: int = 0,
) -> DispatchResult:
    """Fold per-target outcomes into one result, keeping subscriber order."""

    ordered = list(outcomes)
    failed = [o.target_url for o in ordered if not o.success]
    if not ordered and not cancelled:
        message = NO_SUBSCRIBERS_MESSAGE
    elif cancelled:
        message = f"Dispatch cancelled after {len(ordered)} of {total if total is not None else len(ordered)} targets"
        if failed:
            message += f"; {len(failed)} failed: {', '.join(failed)}"
    elif failed:
        message = f"{len(failed)} of {len(ordered)} triggers failed: {', '.join(failed)}"
    else:
        message = ALL_DELIVERED_MESSAGE
    return DispatchResult(
        overall_success=bool(ordered) and not failed and not cancelled,
        outcomes=ordered,
        message=message,
        cancelled=cancelled,
        batches_run=batches_run,
    )

"""Status conditions and outcome classification.

The classifier is the single place that decides retryable vs terminal and
records that decision on the resource, where operators can see it.

Conditions are keyed by type. Setting a condition with the same
(type, status, reason) is a no-op, so repeated reconciles with the same
outcome never churn transition timestamps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from .errors import RetryClass, classify_error
from .models import ApiResource, ApiStatus, Condition, ConditionStatus, ConditionType

logger = logging.getLogger(__name__)

REASON_SYNCED = "Synced"
REASON_RESOLVED = "Resolved"


def set_condition(
    status: ApiStatus,
    condition_type: ConditionType,
    value: ConditionStatus,
    reason: str | None = None,
    message: str | None = None,
) -> bool:
    """Set a condition in place.

    The transition time only moves when the status value flips.

    Returns:
        True if the condition list changed.
    """
    existing = status.get_condition(condition_type)
    if existing is None:
        status.conditions.append(
            Condition(type=condition_type, status=value, reason=reason, message=message)
        )
        return True

    if existing.status == value and existing.reason == reason:
        return False

    if existing.status != value:
        existing.last_transition_time = datetime.now(UTC)
    existing.status = value
    existing.reason = reason
    existing.message = message
    return True


def error_reason(error: BaseException) -> str:
    """Condition reason carrying the error detail."""
    return str(error) or type(error).__name__


@dataclass
class Classification:
    """Outcome of classifying one operation result."""

    resource: ApiResource
    changed: bool
    error: BaseException | None = None
    retry_class: RetryClass | None = None

    @property
    def terminal(self) -> bool:
        """True if the control loop must stop retrying this resource."""
        return self.retry_class is RetryClass.TERMINAL


def classify(resource: ApiResource, success: bool, error: BaseException | None = None) -> Classification:
    """Update conditions for an operation outcome.

    Works copy-on-write: the returned resource is a new object when any
    condition changed, and the input itself when nothing did.

    On success, a Terminal=True condition is flipped to False and a
    Synced=False condition to True; otherwise nothing is written.

    On failure, a terminal error sets Terminal=True (and Synced=False); any
    other error sets Synced=False and resolves a stale Terminal=True. The
    error is returned unchanged.
    """
    working = resource.deep_copy()
    status = working.status
    changed = False

    if success:
        terminal = status.get_condition(ConditionType.TERMINAL)
        if terminal is not None and terminal.status == ConditionStatus.TRUE:
            changed |= set_condition(
                status, ConditionType.TERMINAL, ConditionStatus.FALSE, REASON_RESOLVED
            )
        synced = status.get_condition(ConditionType.SYNCED)
        if synced is not None and synced.status == ConditionStatus.FALSE:
            changed |= set_condition(
                status, ConditionType.SYNCED, ConditionStatus.TRUE, REASON_SYNCED
            )
        return Classification(resource=working if changed else resource, changed=changed)

    if error is None:
        raise ValueError("classify() requires an error when success is False")

    retry_class = classify_error(error)
    reason = error_reason(error)
    message = f"{type(error).__name__} ({retry_class.value})"

    if retry_class is RetryClass.TERMINAL:
        changed |= set_condition(
            status, ConditionType.TERMINAL, ConditionStatus.TRUE, reason, message
        )
    else:
        terminal = status.get_condition(ConditionType.TERMINAL)
        if terminal is not None and terminal.status == ConditionStatus.TRUE:
            # A retryable failure means the old rejection no longer applies
            changed |= set_condition(
                status, ConditionType.TERMINAL, ConditionStatus.FALSE, REASON_RESOLVED
            )
    changed |= set_condition(status, ConditionType.SYNCED, ConditionStatus.FALSE, reason, message)

    if changed:
        logger.info(
            "Conditions updated for failed operation",
            extra={
                "resource": resource.identity,
                "retry_class": retry_class.value,
                "error": reason,
            },
        )

    return Classification(
        resource=working if changed else resource,
        changed=changed,
        error=error,
        retry_class=retry_class,
    )


def mark_synced(resource: ApiResource) -> bool:
    """Record a fully reconciled resource, in place."""
    return set_condition(
        resource.status, ConditionType.SYNCED, ConditionStatus.TRUE, REASON_SYNCED
    )

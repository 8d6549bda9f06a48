"""Late initialization of backend-defaulted fields.

After a create or update the backend may fill in fields the user left
unset (for an API, its selection expressions). Late initialization reads
the resource back and copies those values into the spec, so the next
delta does not report them as drift.

States:
    NOT_NEEDED: the kind has no late-initialized fields. No read is made.
    READING: a read is in flight.
    INCOMPLETE: some fields are still unset after the read; requeue after
        LATE_INIT_REQUEUE_SECONDS.
    COMPLETE: every field is set. A resource with nothing missing completes
        without a read.
    FAILED: the read failed; its error is carried unchanged.

Whether a pass ends INCOMPLETE or COMPLETE depends only on which fields
are still unset. There are no attempt counters.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import Enum

from .conditions import error_reason, set_condition
from .config import LATE_INIT_REQUEUE_SECONDS
from .executor import OperationOutcome
from .models import ApiResource, ConditionStatus, ConditionType, is_present

logger = logging.getLogger(__name__)

# Spec fields the backend defaults for the API kind
API_LATE_INIT_FIELDS = ("api_key_selection_expression", "route_selection_expression")

REASON_DELAYED = "Delayed"
REASON_FAILURE = "Failure"
REASON_COMPLETE = "Complete"

MESSAGE_READ_FAILED = "Unable to complete Read operation required for late initialization"
MESSAGE_DELAYED = (
    f"Late initialization did not complete, requeuing with delay of "
    f"{LATE_INIT_REQUEUE_SECONDS} seconds"
)
MESSAGE_COMPLETE = "Late initialization successful"


class LateInitState(str, Enum):
    NOT_NEEDED = "NotNeeded"
    READING = "Reading"
    INCOMPLETE = "Incomplete"
    COMPLETE = "Complete"
    FAILED = "Failed"


@dataclass
class LateInitResult:
    """Where the workflow stopped and the resource it produced."""

    state: LateInitState
    resource: ApiResource
    requeue_after: float | None = None
    error: BaseException | None = None


def missing_fields(resource: ApiResource, fields: Sequence[str]) -> list[str]:
    """Late-initialized fields still unset on ``resource``, in field order."""
    return [name for name in fields if not is_present(getattr(resource.spec, name))]


def fill_from_observed(
    resource: ApiResource, observed: ApiResource, fields: Sequence[str]
) -> list[str]:
    """Copy unset fields from ``observed`` into ``resource`` in place.

    Values the user set always win.

    Returns:
        Names of the fields that were filled.
    """
    filled = []
    for name in fields:
        if is_present(getattr(resource.spec, name)):
            continue
        value = getattr(observed.spec, name)
        if is_present(value):
            setattr(resource.spec, name, value)
            filled.append(name)
    return filled


class LateInitializer:
    """Runs the late-initialization workflow for one resource kind.

    Args:
        fields: Spec fields the backend defaults. Empty means the kind
            never needs late initialization.
        read: Async reader returning the backend's view of a resource.
    """

    def __init__(
        self,
        fields: Sequence[str],
        read: Callable[[ApiResource], Awaitable[OperationOutcome]],
    ) -> None:
        self.fields = tuple(fields)
        self._read = read

    async def run(self, latest: ApiResource) -> LateInitResult:
        """Late-initialize a copy of ``latest``; ``latest`` is never mutated."""
        if not self.fields:
            return LateInitResult(LateInitState.NOT_NEEDED, latest)

        working = latest.deep_copy()
        if not missing_fields(working, self.fields):
            return self._complete(working)

        state = LateInitState.READING
        logger.debug(
            "Late initialization reading backend",
            extra={"resource": latest.identity, "state": state.value},
        )

        outcome = await self._read(working)
        if outcome.error is not None or outcome.resource is None:
            error = outcome.error
            set_condition(
                working.status,
                ConditionType.LATE_INITIALIZED,
                ConditionStatus.FALSE,
                REASON_FAILURE,
                MESSAGE_READ_FAILED,
            )
            set_condition(
                working.status,
                ConditionType.SYNCED,
                ConditionStatus.FALSE,
                error_reason(error) if error is not None else None,
            )
            logger.warning(
                "Late initialization read failed",
                extra={"resource": latest.identity, "error": str(error)},
            )
            return LateInitResult(LateInitState.FAILED, working, error=error)

        filled = fill_from_observed(working, outcome.resource, self.fields)
        missing = missing_fields(working, self.fields)

        if missing:
            set_condition(
                working.status,
                ConditionType.LATE_INITIALIZED,
                ConditionStatus.FALSE,
                REASON_DELAYED,
                MESSAGE_DELAYED,
            )
            set_condition(working.status, ConditionType.SYNCED, ConditionStatus.FALSE)
            logger.info(
                "Late initialization incomplete",
                extra={"resource": latest.identity, "missing": missing, "filled": filled},
            )
            return LateInitResult(
                LateInitState.INCOMPLETE, working, requeue_after=LATE_INIT_REQUEUE_SECONDS
            )

        logger.info(
            "Late initialization complete",
            extra={"resource": latest.identity, "filled": filled},
        )
        return self._complete(working)

    def _complete(self, working: ApiResource) -> LateInitResult:
        set_condition(
            working.status,
            ConditionType.LATE_INITIALIZED,
            ConditionStatus.TRUE,
            REASON_COMPLETE,
            MESSAGE_COMPLETE,
        )
        return LateInitResult(LateInitState.COMPLETE, working)

"""Reconcile pass for API resources.

One pass runs in this order:
1. Merge the controller's default tags into a copy of the desired resource
2. Read the backend; a missing resource goes down the create path
3. Otherwise compute the delta and update when it is non-empty
4. Late-initialize backend-defaulted fields
5. Decide what the control loop does next

The pass never mutates the caller's resource. Its result carries the
snapshot to persist and one of four actions:

- DONE: fully reconciled, Synced=True is recorded
- REQUEUE: late initialization is incomplete or the backend is still
  settling, run again after a fixed delay
- RETRY: a retryable failure, run again with exponential backoff
- TERMINAL: the desired state was rejected, stop until it changes

Only one pass per resource may be in flight at a time. Passes for
different resources may run concurrently against one Reconciler.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from .conditions import classify, mark_synced
from .config import (
    MAX_RETRY_BACKOFF_SECONDS,
    RETRY_BACKOFF_BASE_SECONDS,
    SYNC_REQUEUE_SECONDS,
)
from .late_init import LateInitState
from .manager import ManagerResult, ResourceManager
from .models import ApiResource
from .provenance import ProvenanceLogger
from .selector import Operation

logger = logging.getLogger(__name__)

# Upper bound of the random jitter added to a retry backoff, as a fraction
RETRY_JITTER_FRACTION = 0.2


class ReconcileAction(str, Enum):
    """What the control loop should do after a pass."""

    DONE = "done"
    REQUEUE = "requeue"
    RETRY = "retry"
    TERMINAL = "terminal"


@dataclass
class ReconcileResult:
    """Result of a single reconcile pass."""

    resource: ApiResource
    action: ReconcileAction = ReconcileAction.DONE
    operation: Operation | None = None
    delta: list[str] = field(default_factory=list)
    requeue_after: float | None = None
    late_init_state: LateInitState | None = None
    error: BaseException | None = None
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None

    @property
    def duration_seconds(self) -> float:
        """Calculate duration in seconds."""
        if self.end_time is None:
            return 0.0
        return (self.end_time - self.start_time).total_seconds()

    @property
    def success(self) -> bool:
        """Check if the pass ended without an error."""
        return self.error is None


class Reconciler:
    """Drives reconcile passes through a ResourceManager.

    Args:
        manager: Resource manager built from the controller configuration.
        provenance: Audit logger (default: one built from the manager's config).
    """

    def __init__(
        self,
        manager: ResourceManager,
        provenance: ProvenanceLogger | None = None,
    ) -> None:
        self._manager = manager
        self._provenance = provenance or ProvenanceLogger(manager.config)
        self._shutdown_event = asyncio.Event()

    @property
    def manager(self) -> ResourceManager:
        return self._manager

    async def reconcile(self, desired: ApiResource) -> ReconcileResult:
        """Run one reconcile pass for ``desired``."""
        result = ReconcileResult(resource=desired)
        provenance = self._provenance.create_provenance(
            desired.identity, desired.metadata.generation
        )
        try:
            await self._reconcile_once(desired, result)
        finally:
            result.end_time = datetime.now(UTC)
            provenance.operation = result.operation.value if result.operation else None
            provenance.action = result.action.value
            provenance.delta = list(result.delta)
            provenance.api_id = result.resource.status.api_id or ""
            provenance.late_init_state = (
                result.late_init_state.value if result.late_init_state else None
            )
            provenance.duration_seconds = result.duration_seconds
            if result.error is not None:
                provenance.error = str(result.error)
                provenance.error_type = type(result.error).__name__
            self._provenance.log_provenance(provenance)

        self._log_result(result)
        return result

    async def _reconcile_once(self, desired: ApiResource, result: ReconcileResult) -> None:
        manager = self._manager
        working = manager.ensure_tags(desired)

        read = await manager.read_one(working)
        if read.not_found:
            outcome = await manager.create(working)
            result.operation = outcome.operation
            if not outcome.success:
                self._fail(result, outcome)
                return
            resource = outcome.resource
        elif not read.success:
            self._fail(result, read)
            return
        else:
            latest = read.resource
            target = read.desired or working
            result.delta = manager.compute_delta(target, latest)
            if result.delta:
                outcome = await manager.update(target, latest, result.delta)
                result.operation = outcome.operation
                if not outcome.success:
                    self._fail(result, outcome)
                    return
                resource = outcome.resource
            else:
                resource = target.deep_copy()
                resource.status = latest.status.model_copy(deep=True)

        # Backend-injected tags are mirrored for diffing only, never persisted
        resource = manager.filter_system_tags(resource)

        late = await manager.late_initialize(resource)
        result.late_init_state = late.state
        resource = late.resource

        if late.state is LateInitState.FAILED and late.error is not None:
            classification = classify(resource, False, late.error)
            self._fail(result, ManagerResult.from_classification(classification, result.operation))
            return

        if late.state is LateInitState.INCOMPLETE:
            result.resource = resource
            result.action = ReconcileAction.REQUEUE
            result.requeue_after = late.requeue_after
            return

        if not manager.is_synced(resource):
            result.resource = resource
            result.action = ReconcileAction.REQUEUE
            result.requeue_after = SYNC_REQUEUE_SECONDS
            return

        resource = classify(resource, True).resource
        mark_synced(resource)
        resource.status.observed_generation = desired.metadata.generation
        result.resource = resource
        result.action = ReconcileAction.DONE

    def _fail(self, result: ReconcileResult, outcome: ManagerResult) -> None:
        result.resource = outcome.resource
        result.error = outcome.error
        result.action = ReconcileAction.TERMINAL if outcome.terminal else ReconcileAction.RETRY

    async def finalize(self, resource: ApiResource) -> ReconcileResult:
        """Delete the backend resource for ``resource``."""
        result = ReconcileResult(resource=resource)
        outcome = await self._manager.delete(resource)
        result.end_time = datetime.now(UTC)
        if not outcome.success:
            self._fail(result, outcome)
        else:
            logger.info(
                "Resource finalized",
                extra={"resource": resource.identity, "api_id": resource.status.api_id},
            )
        self._log_result(result)
        return result

    def next_delay(self, result: ReconcileResult, attempt: int = 1) -> float | None:
        """Delay before the next pass, or None to stop.

        Args:
            result: The pass just completed.
            attempt: Consecutive retry count, starting at 1.
        """
        match result.action:
            case ReconcileAction.DONE | ReconcileAction.TERMINAL:
                return None
            case ReconcileAction.REQUEUE:
                return result.requeue_after
            case ReconcileAction.RETRY:
                # Exponential backoff with jitter
                backoff = RETRY_BACKOFF_BASE_SECONDS * (2 ** (max(attempt, 1) - 1))
                jitter = random.uniform(0, backoff * RETRY_JITTER_FRACTION)
                return min(backoff + jitter, MAX_RETRY_BACKOFF_SECONDS)
            case _:
                raise ValueError(f"Unsupported action: {result.action}")

    async def run(self, desired: ApiResource) -> ReconcileResult | None:
        """Reconcile ``desired`` until it settles or shutdown is requested.

        Each pass starts from the previous pass's snapshot. Returns the last
        result, or None if shutdown was requested before the first pass.
        """
        result: ReconcileResult | None = None
        current = desired
        attempt = 0

        while not self._shutdown_event.is_set():
            result = await self.reconcile(current)
            current = result.resource

            # A cancelled backend call is retryable, but a cancelled task stops
            task = asyncio.current_task()
            if task is not None and task.cancelling():
                raise asyncio.CancelledError()

            attempt = attempt + 1 if result.action is ReconcileAction.RETRY else 0
            delay = self.next_delay(result, attempt)
            if delay is None:
                return result

            logger.info(
                "Reconcile scheduled",
                extra={
                    "resource": desired.identity,
                    "action": result.action.value,
                    "delay_seconds": delay,
                    "attempt": attempt,
                },
            )
            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=delay)
            except TimeoutError:
                # Normal timeout, continue to next pass
                pass

        logger.info("Reconciler shutdown complete", extra={"resource": desired.identity})
        return result

    def shutdown(self) -> None:
        """Signal the run loop to stop."""
        logger.info("Shutdown requested")
        self._shutdown_event.set()

    def _log_result(self, result: ReconcileResult) -> None:
        """Log reconcile result with structured data."""
        extra: dict[str, Any] = {
            "resource": result.resource.identity,
            "action": result.action.value,
            "operation": result.operation.value if result.operation else None,
            "delta": result.delta,
            "duration_seconds": result.duration_seconds,
        }
        if result.late_init_state is not None:
            extra["late_init_state"] = result.late_init_state.value
        if result.requeue_after is not None:
            extra["requeue_after"] = result.requeue_after

        if result.error is not None:
            extra["error"] = str(result.error)
            extra["error_type"] = type(result.error).__name__

        if result.action is ReconcileAction.TERMINAL:
            logger.error("Reconcile halted on terminal error", extra=extra)
        elif result.action is ReconcileAction.RETRY:
            logger.warning("Reconcile failed, will retry", extra=extra)
        elif result.action is ReconcileAction.REQUEUE:
            logger.info("Reconcile requeued", extra=extra)
        else:
            logger.info("Reconcile result", extra=extra)

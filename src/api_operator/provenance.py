"""Reconcile provenance records for audit.

Every reconcile pass is stamped with one record answering:
- "Which resource, at which generation, was reconciled?"
- "What operation did the controller choose, and what came of it?"
- "Which controller version and instance made the call?"

Records are emitted as structured log lines so they can be queried
alongside the rest of the controller's JSON logs.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from .config import ControllerConfig

logger = logging.getLogger(__name__)

# Actions that log at WARNING; TERMINAL logs at ERROR, everything else at INFO
WARNING_ACTIONS = frozenset({"requeue", "retry"})


@dataclass
class ReconcileProvenance:
    """Provenance record for one reconcile pass."""

    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    # Identity
    resource: str = ""
    generation: int = 0
    api_id: str = ""
    controller_version: str = "dev"
    controller_instance_id: str = ""  # Pod name if available

    # Backend context
    account_id: str = ""
    region: str = ""

    # Outcome
    operation: str | None = None
    action: str = ""
    delta: list[str] = field(default_factory=list)
    late_init_state: str | None = None

    duration_seconds: float = 0.0

    error: str | None = None
    error_type: str | None = None

    @property
    def delta_size(self) -> int:
        return len(self.delta)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = asdict(self)
        result["timestamp"] = self.timestamp.isoformat()
        result["delta_size"] = self.delta_size
        return result


class ProvenanceLogger:
    """Emits provenance records through the structured logger."""

    def __init__(self, config: ControllerConfig) -> None:
        self._config = config
        self._instance_id = os.environ.get("POD_NAME", "")

    @property
    def enabled(self) -> bool:
        return self._config.enable_audit_logging

    def create_provenance(self, resource: str, generation: int) -> ReconcileProvenance:
        """Start a record for a pass over ``resource``."""
        return ReconcileProvenance(
            resource=resource,
            generation=generation,
            controller_version=self._config.controller_version,
            controller_instance_id=self._instance_id,
            account_id=self._config.account_id,
            region=self._config.region,
        )

    def log_provenance(self, provenance: ReconcileProvenance) -> None:
        """Log a completed record.

        Terminal passes log at ERROR, requeues and retries at WARNING and
        everything else at INFO. Nothing is logged when audit logging is
        disabled.
        """
        if not self.enabled:
            return

        log_level = logging.INFO
        if provenance.action == "terminal":
            log_level = logging.ERROR
        elif provenance.action in WARNING_ACTIONS:
            log_level = logging.WARNING

        logger.log(
            log_level,
            "Reconcile provenance",
            extra={
                "provenance": provenance.to_dict(),
                # Flatten key fields for easier querying
                "resource": provenance.resource,
                "operation": provenance.operation,
                "action": provenance.action,
                "delta_size": provenance.delta_size,
                "controller_version": provenance.controller_version,
                "duration_seconds": provenance.duration_seconds,
            },
        )

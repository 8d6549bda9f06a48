"""Resource manager for the API kind.

Ties the selector, executor, tag reconciler, late-initialization workflow
and classifier together behind the operations a reconcile pass needs.
A manager is built once from an explicit ControllerConfig and holds no
per-resource state between calls.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from .backend import BackendClient
from .conditions import Classification, classify
from .config import CONTROLLER_SERVICE, ControllerConfig
from .errors import ResourceNotFound, RetryClass, ValidationError
from .executor import BackendOperationExecutor, OperationOutcome
from .late_init import API_LATE_INIT_FIELDS, LateInitializer, LateInitResult, LateInitState
from .mapper import ApiMapper
from .metrics import MetricsSink
from .models import ApiResource, is_present
from .selector import IMPORT_FIELDS, Operation, import_fields_present, select_operation
from .tags import (
    OrderedTags,
    ensure_tags,
    expand_default_tags,
    filter_system_tags,
    is_system_tag,
    mirror_tags,
)

logger = logging.getLogger(__name__)


@dataclass
class ManagerResult:
    """Classified result of one manager operation."""

    resource: ApiResource
    error: BaseException | None = None
    retry_class: RetryClass | None = None
    operation: Operation | None = None
    # Reads only: copy of desired with backend tags mirrored in
    desired: ApiResource | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def terminal(self) -> bool:
        return self.retry_class is RetryClass.TERMINAL

    @property
    def not_found(self) -> bool:
        return isinstance(self.error, ResourceNotFound)

    @classmethod
    def from_classification(
        cls, classification: Classification, operation: Operation | None = None
    ) -> ManagerResult:
        return cls(
            resource=classification.resource,
            error=classification.error,
            retry_class=classification.retry_class,
            operation=operation,
        )


def _differs(wanted: Any, have: Any) -> bool:
    """Compare a declared value against an observed one.

    Nested models only compare the sub-fields ``wanted`` declares.
    """
    if isinstance(wanted, BaseModel):
        if have is None:
            return True
        return any(
            _differs(getattr(wanted, name), getattr(have, name))
            for name in type(wanted).model_fields
            if is_present(getattr(wanted, name))
        )
    return wanted != have


class ResourceManager:
    """Backend-facing operations for API resources.

    Args:
        config: Validated controller configuration.
        client: Backend client implementing BackendClient.
        mapper: Request/response mapper (default: ApiMapper).
        metrics: Metrics sink (default: a sink on a private registry).
        late_init_fields: Spec fields the backend defaults.
    """

    def __init__(
        self,
        config: ControllerConfig,
        client: BackendClient,
        mapper: ApiMapper | None = None,
        metrics: MetricsSink | None = None,
        late_init_fields: Sequence[str] = API_LATE_INIT_FIELDS,
    ) -> None:
        self._config = config
        self._mapper = mapper or ApiMapper()
        self._metrics = metrics or MetricsSink()
        self._executor = BackendOperationExecutor(
            client=client,
            mapper=self._mapper,
            metrics=self._metrics,
            call_timeout_seconds=config.call_timeout_seconds,
            arn_builder=self.arn_from_name,
            system_tag_prefix=config.system_tag_prefix,
        )
        self._late_initializer = LateInitializer(late_init_fields, self._executor.read)

    @property
    def config(self) -> ControllerConfig:
        return self._config

    @property
    def metrics(self) -> MetricsSink:
        return self._metrics

    # -------------------------------------------------------------------------
    # Backend operations
    # -------------------------------------------------------------------------

    async def read_one(self, desired: ApiResource) -> ManagerResult:
        """Read the backend state for ``desired``.

        Reserved-prefix tags the backend injected are mirrored into a copy of
        desired (``result.desired``), so a later diff never schedules them
        for removal. A successful read leaves conditions as desired carries
        them: a read alone never marks the resource synced. A missing
        resource is returned as ResourceNotFound without touching
        conditions: it is the create path's signal, not a failure.
        """
        outcome = await self._executor.read(desired)

        if isinstance(outcome.error, ResourceNotFound):
            return ManagerResult(
                resource=desired, error=outcome.error, retry_class=RetryClass.RETRYABLE
            )

        if outcome.error is not None or outcome.resource is None:
            return ManagerResult.from_classification(
                classify(desired, False, outcome.error or ResourceNotFound("empty read"))
            )

        observed = outcome.resource
        prefix = self._config.system_tag_prefix
        # Only backend-injected tags: user tags absent from desired are removals
        backend_tags = OrderedTags(
            tag
            for tag in OrderedTags.from_mapping(observed.spec.tags)
            if is_system_tag(tag.key, prefix)
        )
        mirrored = desired.deep_copy()
        mirrored.spec.tags = (
            mirror_tags(OrderedTags.from_mapping(desired.spec.tags), backend_tags).to_dict()
            or None
        )
        return ManagerResult(resource=observed, desired=mirrored)

    async def create(self, desired: ApiResource) -> ManagerResult:
        """Create or import the resource on the backend."""
        try:
            operation = select_operation(desired)
        except ValidationError as e:
            return ManagerResult.from_classification(classify(desired, False, e))

        outcome = await self._executor.execute(operation, desired)
        return self._classify_outcome(outcome, desired, operation)

    async def update(
        self, desired: ApiResource, latest: ApiResource, delta: Sequence[str]
    ) -> ManagerResult:
        """Update or reimport the resource so the backend matches desired."""
        try:
            operation = select_operation(desired, latest.status)
        except ValidationError as e:
            return ManagerResult.from_classification(classify(latest, False, e))

        outcome = await self._executor.execute(operation, desired, latest, list(delta))
        return self._classify_outcome(outcome, latest, operation)

    async def delete(self, resource: ApiResource) -> ManagerResult:
        """Delete the backend resource."""
        outcome = await self._executor.delete(resource)
        if outcome.error is not None:
            return ManagerResult.from_classification(classify(resource, False, outcome.error))
        return ManagerResult(resource=resource)

    async def late_initialize(self, latest: ApiResource) -> LateInitResult:
        """Fill backend-defaulted fields into ``latest``.

        Import-class resources are never late-initialized: the field rules
        allow nothing next to ``body`` besides the import fields and tags.
        """
        if import_fields_present(latest.spec):
            return LateInitResult(LateInitState.NOT_NEEDED, latest)
        return await self._late_initializer.run(latest)

    def _classify_outcome(
        self, outcome: OperationOutcome, fallback: ApiResource, operation: Operation
    ) -> ManagerResult:
        resource = outcome.resource if outcome.resource is not None else fallback
        if outcome.error is not None:
            return ManagerResult.from_classification(
                classify(resource, False, outcome.error), operation
            )
        return ManagerResult.from_classification(classify(resource, True), operation)

    # -------------------------------------------------------------------------
    # Pure helpers
    # -------------------------------------------------------------------------

    def ensure_tags(self, resource: ApiResource) -> ApiResource:
        """Copy of ``resource`` with the controller's default tags merged in."""
        defaults = expand_default_tags(
            self._config, resource.metadata.namespace, resource.metadata.name
        )
        merged = ensure_tags(OrderedTags.from_mapping(resource.spec.tags), defaults)
        result = resource.deep_copy()
        result.spec.tags = merged.to_dict() or None
        return result

    def filter_system_tags(self, resource: ApiResource) -> ApiResource:
        """Copy of ``resource`` without backend-reserved tags."""
        filtered = filter_system_tags(
            OrderedTags.from_mapping(resource.spec.tags), self._config.system_tag_prefix
        )
        result = resource.deep_copy()
        result.spec.tags = filtered.to_dict() or None
        return result

    def is_synced(self, resource: ApiResource) -> bool:
        """API resources have no asynchronous backend state to wait on."""
        return True

    def arn_from_name(self, name: str) -> str:
        return f"arn:aws:{CONTROLLER_SERVICE}:{self._config.region}:{self._config.account_id}:{name}"

    def compute_delta(self, desired: ApiResource, latest: ApiResource) -> list[str]:
        """Spec fields where desired declares a value latest does not have.

        Fields desired leaves unset are never drift, except tags: an unset
        tag map means no tags, so removing every tag is drift. Tags are
        compared without backend-reserved tags on either side. The backend never
        echoes import fields, so they count as changed whenever the spec
        generation is ahead of the last reconciled one.
        """
        prefix = self._config.system_tag_prefix
        delta = []
        for name in desired.spec.present_fields():
            if name in IMPORT_FIELDS or name == "tags":
                continue
            if _differs(getattr(desired.spec, name), getattr(latest.spec, name)):
                delta.append(name)

        wanted_tags = filter_system_tags(OrderedTags.from_mapping(desired.spec.tags), prefix)
        have_tags = filter_system_tags(OrderedTags.from_mapping(latest.spec.tags), prefix)
        if wanted_tags.to_dict() != have_tags.to_dict():
            delta.append("tags")

        if import_fields_present(desired.spec) and (
            latest.status.observed_generation != desired.metadata.generation
        ):
            present = desired.spec.present_fields()
            delta.extend(name for name in IMPORT_FIELDS if name in present)

        if delta:
            logger.debug(
                "Computed delta",
                extra={"resource": desired.identity, "delta": delta},
            )
        return delta

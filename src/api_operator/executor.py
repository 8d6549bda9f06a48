"""Backend operation execution.

Runs one selected operation against the backend client, records a metric
per call, and merges the response into a copy of the desired resource.

Errors are never swallowed: each operation returns an OperationOutcome
carrying the raw error next to whatever snapshot exists, and the caller
decides how to attribute it.

Backend calls are blocking. They run in the default thread executor under
a timeout so one slow call cannot hang a reconcile. A timeout surfaces as
CallTimeoutError and a cancellation as CallCancelledError; both are
retryable.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from azure.core.exceptions import ResourceNotFoundError

from .backend import BackendClient
from .config import DEFAULT_SYSTEM_TAG_PREFIX
from .errors import CallCancelledError, CallTimeoutError, ResourceNotFound
from .mapper import ApiMapper
from .metrics import MetricsSink
from .models import ApiResource
from .selector import Operation
from .tags import OrderedTags, compute_tag_changes

logger = logging.getLogger(__name__)

OP_TYPE_READ = "READ_ONE"
OP_TYPE_DELETE = "DELETE"
OP_TYPE_UPDATE = "UPDATE"


@dataclass
class OperationOutcome:
    """Result of one backend operation: a snapshot, an error, or both."""

    operation: str
    resource: ApiResource | None
    error: BaseException | None = None

    @property
    def success(self) -> bool:
        return self.error is None


class BackendOperationExecutor:
    """Invokes backend verbs and merges their responses."""

    def __init__(
        self,
        client: BackendClient,
        mapper: ApiMapper,
        metrics: MetricsSink,
        call_timeout_seconds: int,
        arn_builder: Callable[[str], str],
        system_tag_prefix: str = DEFAULT_SYSTEM_TAG_PREFIX,
    ) -> None:
        self._client = client
        self._mapper = mapper
        self._metrics = metrics
        self._call_timeout_seconds = call_timeout_seconds
        self._arn_builder = arn_builder
        self._system_tag_prefix = system_tag_prefix

    async def _call(self, op_type: str, op_id: str, fn: Callable[..., Any], *args: Any) -> Any:
        """Run one blocking backend call with timeout and metrics."""
        loop = asyncio.get_running_loop()
        error: BaseException | None = None
        deadline = asyncio.timeout(self._call_timeout_seconds)
        try:
            async with deadline:
                return await loop.run_in_executor(None, functools.partial(fn, *args))
        except TimeoutError as e:
            if not deadline.expired():
                # Raised by the client itself, e.g. a socket timeout
                error = e
                raise
            error = CallTimeoutError(
                f"{op_id} did not complete within {self._call_timeout_seconds}s"
            )
            raise error from e
        except asyncio.CancelledError as e:
            error = CallCancelledError(f"{op_id} was cancelled")
            raise error from e
        except Exception as e:
            error = e
            raise
        finally:
            self._metrics.record_api_call(op_type, op_id, error)
            if error is not None:
                logger.warning(
                    "Backend call failed",
                    extra={"op_type": op_type, "op_id": op_id, "error": str(error)},
                )

    async def execute(
        self,
        operation: Operation,
        desired: ApiResource,
        latest: ApiResource | None = None,
        delta: list[str] | None = None,
    ) -> OperationOutcome:
        """Run a selected operation.

        Args:
            operation: What the selector chose.
            desired: Desired resource; never mutated.
            latest: Latest observed resource, for Update/Reimport.
            delta: Spec fields that differ, for Update/Reimport. ``None``
                means everything is considered changed.

        Returns:
            OperationOutcome. On failure of a first creation the snapshot
            is None; on failure of an update it is ``desired`` itself.
        """
        match operation:
            case Operation.CREATE:
                return await self._create(desired)
            case Operation.IMPORT:
                return await self._import(desired)
            case Operation.UPDATE | Operation.REIMPORT:
                return await self._update(operation, desired, latest, delta)
            case _:
                raise ValueError(f"Unsupported operation: {operation}")

    async def _create(self, desired: ApiResource) -> OperationOutcome:
        op = Operation.CREATE
        request = self._mapper.create_request(desired)
        try:
            response = await self._call(op.op_type, op.verb, self._client.create_api, request)
        except Exception as e:
            return OperationOutcome(op.verb, None, e)

        created = desired.deep_copy()
        self._mapper.merge_status(created, response)
        return OperationOutcome(op.verb, created)

    async def _import(self, desired: ApiResource) -> OperationOutcome:
        op = Operation.IMPORT
        request = self._mapper.import_request(desired)
        try:
            response = await self._call(op.op_type, op.verb, self._client.import_api, request)
        except Exception as e:
            return OperationOutcome(op.verb, None, e)

        imported = desired.deep_copy()
        self._mapper.merge_status(imported, response)

        # The import verb takes no tags; apply them to the new API separately
        if desired.spec.tags and imported.status.api_id:
            try:
                await self._call(
                    op.op_type,
                    "TagResource",
                    self._client.tag_resource,
                    self._arn_builder(imported.status.api_id),
                    dict(desired.spec.tags),
                )
            except Exception as e:
                return OperationOutcome(op.verb, imported, e)

        return OperationOutcome(op.verb, imported)

    async def _update(
        self,
        operation: Operation,
        desired: ApiResource,
        latest: ApiResource | None,
        delta: list[str] | None,
    ) -> OperationOutcome:
        updated = desired.deep_copy()
        if latest is not None:
            updated.status = latest.status.model_copy(deep=True)

        changed = set(delta) if delta is not None else None
        spec_changed = changed is None or bool(changed - {"tags"})

        if spec_changed:
            try:
                if operation is Operation.REIMPORT:
                    request = self._mapper.reimport_request(updated)
                    verb = self._client.reimport_api
                else:
                    request = self._mapper.update_request(updated)
                    verb = self._client.update_api
                response = await self._call(operation.op_type, operation.verb, verb, request)
            except Exception as e:
                return OperationOutcome(operation.verb, desired, e)
            self._mapper.merge_status(updated, response)

        if latest is not None and (changed is None or "tags" in changed):
            error = await self.sync_tags(desired, latest)
            if error is not None:
                return OperationOutcome(operation.verb, updated, error)

        return OperationOutcome(operation.verb, updated)

    async def sync_tags(
        self,
        desired: ApiResource,
        latest: ApiResource,
    ) -> BaseException | None:
        """Make the backend tag set match desired.

        Returns:
            The first failing call's error, or None.
        """
        api_id = latest.status.api_id
        if not api_id:
            return None
        changes = compute_tag_changes(
            OrderedTags.from_mapping(desired.spec.tags),
            OrderedTags.from_mapping(latest.spec.tags),
            self._system_tag_prefix,
        )
        if changes.empty:
            return None

        arn = self._arn_builder(api_id)
        try:
            if changes.to_remove:
                await self._call(
                    OP_TYPE_UPDATE, "UntagResource", self._client.untag_resource, arn, changes.to_remove
                )
            if changes.to_add:
                await self._call(
                    OP_TYPE_UPDATE, "TagResource", self._client.tag_resource, arn, changes.to_add
                )
        except Exception as e:
            return e
        return None

    async def read(self, desired: ApiResource) -> OperationOutcome:
        """Read the backend's view of a resource.

        Without a backend identifier the resource cannot exist yet, so
        this returns ResourceNotFound without calling the backend.
        """
        op_id = "GetApi"
        if not desired.status.api_id:
            return OperationOutcome(op_id, None, ResourceNotFound("resource has no apiID yet"))

        request = self._mapper.read_request(desired)
        try:
            response = await self._call(OP_TYPE_READ, op_id, self._client.get_api, request)
        except ResourceNotFoundError as e:
            return OperationOutcome(
                op_id, None, ResourceNotFound(f"API {desired.status.api_id} not found: {e}")
            )
        except Exception as e:
            return OperationOutcome(op_id, None, e)

        observed = desired.deep_copy()
        self._mapper.merge_observed(observed, response)
        return OperationOutcome(op_id, observed)

    async def delete(self, resource: ApiResource) -> OperationOutcome:
        """Delete the backend resource; an already-missing resource counts as deleted."""
        op_id = "DeleteApi"
        if not resource.status.api_id:
            return OperationOutcome(op_id, None)

        request = self._mapper.delete_request(resource)
        try:
            await self._call(OP_TYPE_DELETE, op_id, self._client.delete_api, request)
        except ResourceNotFoundError:
            logger.info(
                "API already deleted",
                extra={"resource": resource.identity, "api_id": resource.status.api_id},
            )
        except Exception as e:
            return OperationOutcome(op_id, resource, e)
        return OperationOutcome(op_id, None)

"""Tests for the late-initialization workflow."""

import pytest

from api_operator.errors import ResourceNotFound
from api_operator.executor import OperationOutcome
from api_operator.late_init import (
    API_LATE_INIT_FIELDS,
    MESSAGE_COMPLETE,
    MESSAGE_DELAYED,
    MESSAGE_READ_FAILED,
    REASON_DELAYED,
    REASON_FAILURE,
    LateInitializer,
    LateInitState,
    fill_from_observed,
    missing_fields,
)
from api_operator.models import ApiResource, ConditionStatus, ConditionType
from backend_mock import http_error
from conftest import make_resource


class RecordingReader:
    """Async reader returning canned outcomes and counting calls."""

    def __init__(self, *outcomes: OperationOutcome) -> None:
        self._outcomes = list(outcomes)
        self.calls: list[ApiResource] = []

    async def __call__(self, resource: ApiResource) -> OperationOutcome:
        self.calls.append(resource)
        return self._outcomes.pop(0)


def observed(**spec: str) -> OperationOutcome:
    return OperationOutcome("GetApi", make_resource(spec=spec, status={"apiID": "abc"}))


def created() -> ApiResource:
    return make_resource(spec={"name": "a", "protocolType": "HTTP"}, status={"apiID": "abc"})


class TestHelpers:
    """Tests for field helpers."""

    def test_missing_fields(self) -> None:
        resource = make_resource(spec={"routeSelectionExpression": "$x"})
        assert missing_fields(resource, API_LATE_INIT_FIELDS) == ["api_key_selection_expression"]

    def test_fill_keeps_user_values(self) -> None:
        resource = make_resource(spec={"routeSelectionExpression": "user"})
        source = make_resource(
            spec={"routeSelectionExpression": "backend", "apiKeySelectionExpression": "$k"}
        )
        filled = fill_from_observed(resource, source, API_LATE_INIT_FIELDS)

        assert filled == ["api_key_selection_expression"]
        assert resource.spec.route_selection_expression == "user"
        assert resource.spec.api_key_selection_expression == "$k"


class TestLateInitializer:
    """Tests for the workflow states."""

    @pytest.mark.asyncio
    async def test_no_fields_is_not_needed_without_read(self) -> None:
        reader = RecordingReader()
        latest = created()

        result = await LateInitializer([], reader).run(latest)

        assert result.state is LateInitState.NOT_NEEDED
        assert result.resource is latest
        assert reader.calls == []
        assert result.requeue_after is None

    @pytest.mark.asyncio
    async def test_complete(self) -> None:
        reader = RecordingReader(
            observed(apiKeySelectionExpression="$k", routeSelectionExpression="$r")
        )
        latest = created()

        result = await LateInitializer(API_LATE_INIT_FIELDS, reader).run(latest)

        assert result.state is LateInitState.COMPLETE
        assert result.resource.spec.api_key_selection_expression == "$k"
        assert result.resource.spec.route_selection_expression == "$r"
        condition = result.resource.status.get_condition(ConditionType.LATE_INITIALIZED)
        assert condition.status == ConditionStatus.TRUE
        assert condition.message == MESSAGE_COMPLETE
        assert latest.spec.api_key_selection_expression is None

    @pytest.mark.asyncio
    async def test_all_fields_set_completes_without_read(self) -> None:
        reader = RecordingReader()
        latest = make_resource(
            spec={"apiKeySelectionExpression": "$k", "routeSelectionExpression": "$r"}
        )

        result = await LateInitializer(API_LATE_INIT_FIELDS, reader).run(latest)

        assert result.state is LateInitState.COMPLETE
        assert reader.calls == []

    @pytest.mark.asyncio
    async def test_incomplete_requeues_after_five_seconds(self) -> None:
        reader = RecordingReader(observed(routeSelectionExpression="$r"))

        result = await LateInitializer(API_LATE_INIT_FIELDS, reader).run(created())

        assert result.state is LateInitState.INCOMPLETE
        assert result.requeue_after == 5
        assert result.error is None
        status = result.resource.status
        late = status.get_condition(ConditionType.LATE_INITIALIZED)
        assert late.status == ConditionStatus.FALSE
        assert late.reason == REASON_DELAYED
        assert late.message == MESSAGE_DELAYED
        assert "5 seconds" in late.message
        assert status.get_condition(ConditionType.SYNCED).status == ConditionStatus.FALSE
        # Partial progress is kept
        assert result.resource.spec.route_selection_expression == "$r"

    @pytest.mark.asyncio
    async def test_read_failure_propagates_error(self) -> None:
        error = http_error(503, "unavailable")
        reader = RecordingReader(OperationOutcome("GetApi", None, error))

        result = await LateInitializer(API_LATE_INIT_FIELDS, reader).run(created())

        assert result.state is LateInitState.FAILED
        assert result.error is error
        status = result.resource.status
        late = status.get_condition(ConditionType.LATE_INITIALIZED)
        assert late.reason == REASON_FAILURE
        assert late.message == MESSAGE_READ_FAILED
        synced = status.get_condition(ConditionType.SYNCED)
        assert synced.status == ConditionStatus.FALSE
        assert synced.reason == "unavailable"

    @pytest.mark.asyncio
    async def test_not_found_read_fails(self) -> None:
        reader = RecordingReader(OperationOutcome("GetApi", None, ResourceNotFound("gone")))
        result = await LateInitializer(API_LATE_INIT_FIELDS, reader).run(created())
        assert result.state is LateInitState.FAILED

    @pytest.mark.asyncio
    async def test_deterministic(self) -> None:
        """Same observed state, same outcome, with no hidden counters."""
        initializer = LateInitializer(
            API_LATE_INIT_FIELDS,
            RecordingReader(
                observed(routeSelectionExpression="$r"),
                observed(routeSelectionExpression="$r"),
            ),
        )
        first = await initializer.run(created())
        second = await initializer.run(created())

        assert first.state is second.state is LateInitState.INCOMPLETE
        assert first.resource.spec == second.resource.spec

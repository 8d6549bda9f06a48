"""Tests for request/response mapping."""

from datetime import datetime

import pytest

from api_operator.errors import MissingIdentifierError
from api_operator.mapper import ApiMapper
from api_operator.models import ProtocolType
from conftest import SAMPLE_OPENAPI, make_resource


@pytest.fixture
def mapper() -> ApiMapper:
    return ApiMapper()


class TestRequests:
    """Tests for request builders."""

    def test_create_request_only_present_fields(self, mapper: ApiMapper) -> None:
        resource = make_resource(
            spec={
                "name": "a",
                "protocolType": "HTTP",
                "corsConfiguration": {"allowOrigins": ["*"], "maxAge": 60},
                "tags": {"team": "a"},
            }
        )
        request = mapper.create_request(resource)

        assert request == {
            "Name": "a",
            "ProtocolType": "HTTP",
            "CorsConfiguration": {"AllowOrigins": ["*"], "MaxAge": 60},
            "Tags": {"team": "a"},
        }

    def test_update_request_drops_tags_and_protocol(self, mapper: ApiMapper) -> None:
        resource = make_resource(
            spec={"name": "a", "protocolType": "HTTP", "description": "d", "tags": {"k": "v"}},
            status={"apiID": "abc"},
        )
        request = mapper.update_request(resource)

        assert request == {"Name": "a", "Description": "d", "ApiId": "abc"}

    def test_import_request(self, mapper: ApiMapper) -> None:
        resource = make_resource(
            spec={"body": SAMPLE_OPENAPI, "basepath": "split", "failOnWarnings": False}
        )
        request = mapper.import_request(resource)

        assert request == {"Body": SAMPLE_OPENAPI, "Basepath": "split", "FailOnWarnings": False}

    def test_reimport_request(self, mapper: ApiMapper) -> None:
        resource = make_resource(spec={"body": SAMPLE_OPENAPI}, status={"apiID": "abc"})
        assert mapper.reimport_request(resource) == {"ApiId": "abc", "Body": SAMPLE_OPENAPI}

    def test_reimport_request_requires_identifier(self, mapper: ApiMapper) -> None:
        resource = make_resource(spec={"body": SAMPLE_OPENAPI})
        with pytest.raises(MissingIdentifierError):
            mapper.reimport_request(resource)

    def test_read_and_delete_requests(self, mapper: ApiMapper) -> None:
        resource = make_resource(status={"apiID": "abc"})
        assert mapper.read_request(resource) == {"ApiId": "abc"}
        assert mapper.delete_request(resource) == {"ApiId": "abc"}


class TestMergeStatus:
    """Tests for merging response status fields."""

    def test_merges_present_fields(self, mapper: ApiMapper) -> None:
        resource = make_resource(spec={"name": "a"})
        mapper.merge_status(
            resource,
            {
                "ApiId": "abc",
                "ApiEndpoint": "https://abc.example.com",
                "CreatedDate": "2024-05-01T10:00:00+00:00",
                "Warnings": ["w1"],
            },
        )
        status = resource.status
        assert status.api_id == "abc"
        assert status.api_endpoint == "https://abc.example.com"
        assert status.created_date == datetime.fromisoformat("2024-05-01T10:00:00+00:00")
        assert status.warnings == ["w1"]

    def test_absent_fields_left_untouched(self, mapper: ApiMapper) -> None:
        resource = make_resource(status={"apiID": "abc", "apiEndpoint": "https://old"})
        mapper.merge_status(resource, {"ApiEndpoint": None, "Warnings": ["w"]})

        assert resource.status.api_id == "abc"
        assert resource.status.api_endpoint == "https://old"
        assert resource.status.warnings == ["w"]


class TestMergeObserved:
    """Tests for merging read responses."""

    def test_overwrites_readable_spec_fields(self, mapper: ApiMapper) -> None:
        resource = make_resource(
            spec={"name": "a", "protocolType": "HTTP", "description": "old", "target": "https://t"}
        )
        mapper.merge_observed(
            resource,
            {
                "ApiId": "abc",
                "Name": "a",
                "ProtocolType": "WEBSOCKET",
                "RouteSelectionExpression": "$request.body.action",
                "Tags": {"aws:x": "y"},
            },
        )
        spec = resource.spec
        assert spec.protocol_type is ProtocolType.WEBSOCKET
        assert spec.description is None
        assert spec.route_selection_expression == "$request.body.action"
        assert spec.target == "https://t"
        assert spec.tags == {"aws:x": "y"}
        assert resource.status.api_id == "abc"

    def test_import_fields_kept(self, mapper: ApiMapper) -> None:
        resource = make_resource(spec={"body": SAMPLE_OPENAPI, "basepath": "split"})
        mapper.merge_observed(resource, {"ApiId": "abc", "Name": "pets"})

        assert resource.spec.body == SAMPLE_OPENAPI
        assert resource.spec.basepath == "split"
        assert resource.spec.name == "pets"

    def test_cors_parsed(self, mapper: ApiMapper) -> None:
        resource = make_resource()
        mapper.merge_observed(
            resource, {"CorsConfiguration": {"AllowMethods": ["GET"], "AllowCredentials": True}}
        )
        cors = resource.spec.cors_configuration
        assert cors is not None
        assert cors.allow_methods == ["GET"]
        assert cors.allow_credentials is True

"""Structural mapping between ApiResource and backend wire payloads.

Requests and responses use the backend's PascalCase member names, so a
client can forward them unchanged. Requests carry only present fields.
Status merges skip absent response members; an observed read replaces
the readable spec fields outright.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from .errors import MissingIdentifierError
from .models import ApiResource, ApiSpec, CorsConfiguration, ProtocolType

# Spec field -> wire member, shared by create/update requests and read responses
SPEC_WIRE_FIELDS: dict[str, str] = {
    "api_key_selection_expression": "ApiKeySelectionExpression",
    "credentials_arn": "CredentialsArn",
    "description": "Description",
    "disable_execute_api_endpoint": "DisableExecuteApiEndpoint",
    "disable_schema_validation": "DisableSchemaValidation",
    "name": "Name",
    "route_key": "RouteKey",
    "route_selection_expression": "RouteSelectionExpression",
    "target": "Target",
    "version": "Version",
}

# Fields the backend never returns on read
WRITE_ONLY_FIELDS = ("route_key", "target", "credentials_arn")

CORS_WIRE_FIELDS: dict[str, str] = {
    "allow_credentials": "AllowCredentials",
    "allow_headers": "AllowHeaders",
    "allow_methods": "AllowMethods",
    "allow_origins": "AllowOrigins",
    "expose_headers": "ExposeHeaders",
    "max_age": "MaxAge",
}

STATUS_WIRE_FIELDS: dict[str, str] = {
    "api_endpoint": "ApiEndpoint",
    "api_gateway_managed": "ApiGatewayManaged",
    "api_id": "ApiId",
    "created_date": "CreatedDate",
    "import_info": "ImportInfo",
    "warnings": "Warnings",
}


def _cors_to_wire(cors: CorsConfiguration) -> dict[str, Any]:
    wire: dict[str, Any] = {}
    for attr, member in CORS_WIRE_FIELDS.items():
        value = getattr(cors, attr)
        if value is not None:
            wire[member] = list(value) if isinstance(value, list) else value
    return wire


def _cors_from_wire(wire: dict[str, Any]) -> CorsConfiguration:
    values = {attr: wire[member] for attr, member in CORS_WIRE_FIELDS.items() if member in wire}
    return CorsConfiguration(**values)


def _import_members(spec: ApiSpec) -> dict[str, Any]:
    request: dict[str, Any] = {}
    if spec.body is not None:
        request["Body"] = spec.body
    if spec.basepath is not None:
        request["Basepath"] = spec.basepath
    if spec.fail_on_warnings is not None:
        request["FailOnWarnings"] = spec.fail_on_warnings
    return request


class ApiMapper:
    """Default request/response mapper for the API resource kind."""

    def create_request(self, resource: ApiResource) -> dict[str, Any]:
        spec = resource.spec
        request: dict[str, Any] = {}
        for attr, member in SPEC_WIRE_FIELDS.items():
            value = getattr(spec, attr)
            if value is not None:
                request[member] = value
        if spec.protocol_type is not None:
            request["ProtocolType"] = spec.protocol_type.value
        if spec.cors_configuration is not None:
            request["CorsConfiguration"] = _cors_to_wire(spec.cors_configuration)
        if spec.tags:
            request["Tags"] = dict(spec.tags)
        return request

    def update_request(self, resource: ApiResource) -> dict[str, Any]:
        """UpdateApi payload. Tags are synced separately, protocol is immutable."""
        request = self.create_request(resource)
        request.pop("Tags", None)
        request.pop("ProtocolType", None)
        if resource.status.api_id is not None:
            request["ApiId"] = resource.status.api_id
        return request

    def import_request(self, resource: ApiResource) -> dict[str, Any]:
        return _import_members(resource.spec)

    def reimport_request(self, resource: ApiResource) -> dict[str, Any]:
        """ReimportApi payload.

        Raises:
            MissingIdentifierError: If the resource has no backend identifier.
        """
        if resource.status.api_id is None:
            raise MissingIdentifierError("'apiID' is required input for the reimport operation")
        request = {"ApiId": resource.status.api_id}
        request.update(_import_members(resource.spec))
        return request

    def read_request(self, resource: ApiResource) -> dict[str, Any]:
        return {"ApiId": resource.status.api_id}

    def delete_request(self, resource: ApiResource) -> dict[str, Any]:
        return {"ApiId": resource.status.api_id}

    def merge_status(self, resource: ApiResource, response: dict[str, Any]) -> ApiResource:
        """Copy present response status members onto ``resource.status`` in place."""
        status = resource.status
        for attr, member in STATUS_WIRE_FIELDS.items():
            value = response.get(member)
            if value is None:
                continue
            if attr == "created_date" and isinstance(value, str):
                value = datetime.fromisoformat(value)
            if isinstance(value, list):
                value = list(value)
            setattr(status, attr, value)
        return resource

    def merge_observed(self, resource: ApiResource, response: dict[str, Any]) -> ApiResource:
        """Overwrite spec with what the backend reports and merge status, in place.

        A readable spec field missing from the response is cleared, so the
        result reflects the backend rather than the desired state it was
        copied from. Write-only and import fields keep their values.
        """
        spec = resource.spec
        for attr, member in SPEC_WIRE_FIELDS.items():
            if attr in WRITE_ONLY_FIELDS:
                continue
            setattr(spec, attr, response.get(member))
        protocol = response.get("ProtocolType")
        spec.protocol_type = ProtocolType(protocol) if protocol is not None else None
        cors = response.get("CorsConfiguration")
        spec.cors_configuration = _cors_from_wire(cors) if cors is not None else None
        spec.tags = dict(response.get("Tags") or {})
        return self.merge_status(resource, response)

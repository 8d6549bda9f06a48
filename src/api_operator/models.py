"""Pydantic models for the API resource kind.

These models provide:
1. Type-safe manifest parsing with camelCase aliases
2. Explicit field presence (``None`` is absent, never a zero value)
3. Deep copies so the caller's desired state is never mutated
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, Field, field_validator

# =============================================================================
# Conditions
# =============================================================================


class ConditionType(str, Enum):
    """Condition types recorded on a resource."""

    SYNCED = "ACK.ResourceSynced"
    LATE_INITIALIZED = "ACK.LateInitialized"
    TERMINAL = "ACK.Terminal"


class ConditionStatus(str, Enum):
    """Kubernetes-style tri-state condition status."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Condition(BaseModel):
    """A single status condition keyed by type."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    type: ConditionType
    status: ConditionStatus
    reason: str | None = None
    message: str | None = None
    last_transition_time: datetime = Field(
        default_factory=lambda: datetime.now(UTC), alias="lastTransitionTime"
    )


# =============================================================================
# API Spec
# =============================================================================


class ProtocolType(str, Enum):
    """Supported API protocols."""

    HTTP = "HTTP"
    WEBSOCKET = "WEBSOCKET"


class CorsConfiguration(BaseModel):
    """Cross-origin resource sharing settings for HTTP APIs."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    allow_credentials: bool | None = Field(None, alias="allowCredentials")
    allow_headers: list[str] | None = Field(None, alias="allowHeaders")
    allow_methods: list[str] | None = Field(None, alias="allowMethods")
    allow_origins: list[str] | None = Field(None, alias="allowOrigins")
    expose_headers: list[str] | None = Field(None, alias="exposeHeaders")
    max_age: int | None = Field(None, alias="maxAge", ge=-1, le=86400)


class ApiSpec(BaseModel):
    """Desired state of an API.

    Every field is optional: presence drives operation selection, so a
    field left unset must stay ``None`` rather than collapse to a default.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str | None = Field(None, min_length=1, max_length=128)
    protocol_type: ProtocolType | None = Field(None, alias="protocolType")

    # Import fields - body is the bulk OpenAPI definition document
    body: str | None = None
    basepath: str | None = None
    fail_on_warnings: bool | None = Field(None, alias="failOnWarnings")

    api_key_selection_expression: str | None = Field(None, alias="apiKeySelectionExpression")
    cors_configuration: CorsConfiguration | None = Field(None, alias="corsConfiguration")
    credentials_arn: str | None = Field(None, alias="credentialsARN")
    description: str | None = Field(None, max_length=1024)
    disable_execute_api_endpoint: bool | None = Field(None, alias="disableExecuteAPIEndpoint")
    disable_schema_validation: bool | None = Field(None, alias="disableSchemaValidation")
    route_key: str | None = Field(None, alias="routeKey")
    route_selection_expression: str | None = Field(None, alias="routeSelectionExpression")
    target: str | None = None
    version: str | None = None
    tags: dict[str, str] | None = None

    @field_validator("basepath")
    @classmethod
    def validate_basepath(cls, v: str | None) -> str | None:
        valid = {"ignore", "prepend", "split"}
        if v is not None and v not in valid:
            raise ValueError(f"basepath must be one of {sorted(valid)}")
        return v

    def present_fields(self) -> list[str]:
        """Return the names of fields that carry a value, in declaration order.

        Empty lists and mappings count as absent, the same as ``None``.
        """
        return [name for name in type(self).model_fields if is_present(getattr(self, name))]


def is_present(value: Any) -> bool:
    """Check whether a spec or status value counts as set."""
    if value is None:
        return False
    if isinstance(value, (list, dict)):
        return len(value) > 0
    if isinstance(value, BaseModel):
        return any(is_present(getattr(value, name)) for name in type(value).model_fields)
    return True


# =============================================================================
# API Status
# =============================================================================


class ApiStatus(BaseModel):
    """Observed state reported by the backend."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    api_id: str | None = Field(None, alias="apiID")
    api_endpoint: str | None = Field(None, alias="apiEndpoint")
    api_gateway_managed: bool | None = Field(None, alias="apiGatewayManaged")
    created_date: datetime | None = Field(None, alias="createdDate")
    import_info: list[str] | None = Field(None, alias="importInfo")
    warnings: list[str] | None = None
    # Generation of the spec last reconciled to completion
    observed_generation: int | None = Field(None, alias="observedGeneration")
    conditions: list[Condition] = Field(default_factory=list)

    def get_condition(self, condition_type: ConditionType) -> Condition | None:
        """Return the condition of the given type, if recorded."""
        for condition in self.conditions:
            if condition.type == condition_type:
                return condition
        return None


# =============================================================================
# Resource
# =============================================================================


class ResourceMetadata(BaseModel):
    """Identity of the custom resource object."""

    model_config = {"extra": "ignore"}

    name: Annotated[str, Field(min_length=1, max_length=253)]
    namespace: str = "default"
    generation: int = 1


class ApiResource(BaseModel):
    """An API custom resource: metadata, desired spec, observed status."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    api_version: str = Field("apigatewayv2.services.k8s.aws/v1alpha1", alias="apiVersion")
    kind: str = "API"
    metadata: ResourceMetadata
    spec: ApiSpec = Field(default_factory=ApiSpec)
    status: ApiStatus = Field(default_factory=ApiStatus)

    @field_validator("kind")
    @classmethod
    def validate_kind(cls, v: str) -> str:
        if v != "API":
            raise ValueError(f"kind must be 'API', got '{v}'")
        return v

    @property
    def identity(self) -> str:
        """Namespaced name used in logs and audit records."""
        return f"{self.metadata.namespace}/{self.metadata.name}"

    def deep_copy(self) -> ApiResource:
        """Return an independent copy of this resource."""
        return self.model_copy(deep=True)

    def to_manifest(self) -> dict[str, Any]:
        """Serialize back to the camelCase manifest layout."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

"""Backend client contract.

The engine talks to the backend only through this protocol. Every verb
is a blocking call that takes a request mapping and returns a response
mapping, raising on failure. Errors should be ``azure.core.exceptions``
errors (HttpResponseError carrying ``status_code``, ResourceNotFoundError,
ServiceRequestError for transport failures) or the engine's own
TerminalBackendError / RetryableBackendError.
"""

from __future__ import annotations

from typing import Any, Protocol


class BackendClient(Protocol):
    """Verbs the engine needs from the API backend."""

    def create_api(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def get_api(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def update_api(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def delete_api(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def import_api(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def reimport_api(self, request: dict[str, Any]) -> dict[str, Any]: ...

    def tag_resource(self, resource_arn: str, tags: dict[str, str]) -> None: ...

    def untag_resource(self, resource_arn: str, tag_keys: list[str]) -> None: ...

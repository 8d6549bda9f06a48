"""Operation selection and field co-occurrence validation.

An API can be built two ways:
- create-class: from individual fields (name, protocolType, ...)
- import-class: from a bulk OpenAPI document in ``body``

Which one applies is decided by field presence alone. If any import
field is set the resource is import-class, and then ``body`` is mandatory
and nothing else may be set besides the other import fields and tags.
Tags are always allowed because default tags are injected automatically.

Selection never contacts the backend. Its errors are ValidationError and
short-circuit the reconcile.
"""

from __future__ import annotations

import logging
from enum import Enum

from .errors import MissingIdentifierError, ValidationError
from .models import ApiResource, ApiSpec, ApiStatus

logger = logging.getLogger(__name__)

IMPORT_DOCUMENT_FIELD = "body"

# Reported in this order when they appear without the document
SECONDARY_IMPORT_FIELDS = ("fail_on_warnings", "basepath")

IMPORT_FIELDS = (IMPORT_DOCUMENT_FIELD, *SECONDARY_IMPORT_FIELDS)

# Fields allowed next to the document besides the import fields
IMPORT_COMPATIBLE_FIELDS = frozenset({*IMPORT_FIELDS, "tags"})

CREATE_REQUIRED_FIELDS = ("name", "protocol_type")


class Operation(str, Enum):
    """Imperative operation chosen for a desired state."""

    CREATE = "Create"
    IMPORT = "Import"
    UPDATE = "Update"
    REIMPORT = "Reimport"

    @property
    def verb(self) -> str:
        """Backend verb name, as recorded in metrics."""
        return f"{self.value}Api"

    @property
    def op_type(self) -> str:
        """Metric operation class: first creation or later update."""
        if self in (Operation.CREATE, Operation.IMPORT):
            return "CREATE"
        return "UPDATE"

    @property
    def is_import_class(self) -> bool:
        return self in (Operation.IMPORT, Operation.REIMPORT)


def field_label(name: str) -> str:
    """Manifest (camelCase) name of a spec field, for error messages."""
    info = ApiSpec.model_fields[name]
    return info.alias or name


def import_fields_present(spec: ApiSpec) -> bool:
    """Check whether any import-indicating field is set."""
    present = set(spec.present_fields())
    return any(name in present for name in IMPORT_FIELDS)


def validate_import_fields(spec: ApiSpec) -> None:
    """Validate an import-class spec.

    Raises:
        ValidationError: If ``body`` is missing, or fields other than the
            import fields and tags are set next to it.
    """
    present = spec.present_fields()

    if IMPORT_DOCUMENT_FIELD not in present:
        supplied = [name for name in SECONDARY_IMPORT_FIELDS if name in present]
        labels = " and ".join(f"'{field_label(name)}'" for name in supplied)
        raise ValidationError(
            f"{labels} field(s) can only be used with '{field_label(IMPORT_DOCUMENT_FIELD)}' "
            "field for import operations"
        )

    conflicting = [name for name in present if name not in IMPORT_COMPATIBLE_FIELDS]
    if conflicting:
        labels = ", ".join(f"'{field_label(name)}'" for name in conflicting)
        raise ValidationError(
            "only 'failOnWarnings' and 'basepath' fields can be used with 'body' field, "
            f"found {labels}"
        )


def validate_create_fields(spec: ApiSpec) -> None:
    """Validate a create-class spec.

    Raises:
        ValidationError: If name or protocolType is missing.
    """
    present = set(spec.present_fields())
    missing = [name for name in CREATE_REQUIRED_FIELDS if name not in present]
    if missing:
        labels = " and ".join(f"'{field_label(name)}'" for name in missing)
        raise ValidationError(
            "'name' and 'protocolType' are required properties if 'body' field is not present; "
            f"missing {labels}"
        )


def select_operation(desired: ApiResource, observed: ApiStatus | None = None) -> Operation:
    """Choose and validate the operation implied by a desired state.

    Args:
        desired: The desired resource.
        observed: Status from the latest read. ``None`` means the resource
            does not exist on the backend yet (first creation).

    Returns:
        The operation to execute.

    Raises:
        ValidationError: If field co-occurrence rules are violated.
        MissingIdentifierError: If reimport is needed but ``observed`` has
            no backend identifier.
    """
    spec = desired.spec

    if import_fields_present(spec):
        validate_import_fields(spec)
        if observed is None:
            operation = Operation.IMPORT
        elif observed.api_id:
            operation = Operation.REIMPORT
        else:
            raise MissingIdentifierError(
                "'apiID' is required for reimport; the API must be created or imported first"
            )
    else:
        validate_create_fields(spec)
        operation = Operation.CREATE if observed is None else Operation.UPDATE

    logger.debug(
        "Operation selected",
        extra={"resource": desired.identity, "operation": operation.value},
    )
    return operation

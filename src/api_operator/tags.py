"""Order-preserving tag reconciliation.

Tags come from three places:
- the user, in the resource spec
- the controller, which injects default tags (controller version, namespace)
- the backend, which injects reserved-prefix tags out of band

All functions here are pure: they return new OrderedTags and never touch
their inputs. Key order is first-seen order, because reordering keys shows
up as a spurious diff when the spec is written back.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum

from .config import CONTROLLER_SERVICE, ControllerConfig

logger = logging.getLogger(__name__)


class TagProvenance(str, Enum):
    """Which actor introduced a tag."""

    USER = "user"
    CONTROLLER_DEFAULT = "controller-default"
    BACKEND_SYSTEM = "backend-system"


@dataclass(frozen=True)
class Tag:
    """A single key/value pair with its provenance."""

    key: str
    value: str
    provenance: TagProvenance = TagProvenance.USER


class OrderedTags:
    """Tag set keyed by tag key, iterating in insertion order.

    Keeps an explicit key sequence next to the value mapping, so order
    never depends on the mapping type.
    """

    def __init__(self, tags: Iterable[Tag] = ()) -> None:
        self._keys: list[str] = []
        self._values: dict[str, Tag] = {}
        for tag in tags:
            self.set(tag)

    @classmethod
    def from_mapping(
        cls,
        tags: Mapping[str, str] | None,
        provenance: TagProvenance = TagProvenance.USER,
    ) -> OrderedTags:
        """Build from a plain mapping, keeping its iteration order."""
        if not tags:
            return cls()
        return cls(Tag(key, value, provenance) for key, value in tags.items())

    def set(self, tag: Tag) -> None:
        """Insert or override a tag; an override keeps the key's position."""
        if tag.key not in self._values:
            self._keys.append(tag.key)
        self._values[tag.key] = tag

    def get(self, key: str) -> Tag | None:
        return self._values.get(key)

    def keys(self) -> list[str]:
        return list(self._keys)

    def to_dict(self) -> dict[str, str]:
        """Plain mapping in key order, for writing back into a spec."""
        return {key: self._values[key].value for key in self._keys}

    def copy(self) -> OrderedTags:
        return OrderedTags(self)

    def __iter__(self) -> Iterator[Tag]:
        return (self._values[key] for key in self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._keys)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, OrderedTags):
            return NotImplemented
        return self._keys == other._keys and self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"OrderedTags({self.to_dict()!r})"


@dataclass
class TagChanges:
    """Tags to add (or overwrite) and keys to remove on the backend."""

    to_add: dict[str, str] = field(default_factory=dict)
    to_remove: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.to_add and not self.to_remove


def ensure_tags(desired: OrderedTags, defaults: OrderedTags) -> OrderedTags:
    """Merge controller default tags in without overriding user keys.

    New keys are appended in the order ``defaults`` supplies them.
    """
    result = desired.copy()
    for tag in defaults:
        if tag.key not in result:
            result.set(Tag(tag.key, tag.value, TagProvenance.CONTROLLER_DEFAULT))
    return result


def is_system_tag(key: str, prefix: str) -> bool:
    return key.startswith(prefix)


def filter_system_tags(tags: OrderedTags, prefix: str) -> OrderedTags:
    """Drop every tag whose key carries the reserved backend prefix."""
    return OrderedTags(tag for tag in tags if not is_system_tag(tag.key, prefix))


def mirror_tags(desired: OrderedTags, observed: OrderedTags) -> OrderedTags:
    """Copy tags the backend has but desired lacks into desired.

    Only adds: an existing desired value always wins. Added keys follow
    ``observed`` order, after desired's own keys.
    """
    result = desired.copy()
    for tag in observed:
        if tag.key not in result:
            result.set(Tag(tag.key, tag.value, TagProvenance.BACKEND_SYSTEM))
    return result


def compute_tag_changes(desired: OrderedTags, latest: OrderedTags, prefix: str) -> TagChanges:
    """Work out which tags to set and remove so latest matches desired.

    Reserved-prefix tags are never removed: the controller does not own them.
    """
    changes = TagChanges()
    for tag in desired:
        if is_system_tag(tag.key, prefix):
            continue
        current = latest.get(tag.key)
        if current is None or current.value != tag.value:
            changes.to_add[tag.key] = tag.value
    for tag in latest:
        if tag.key not in desired and not is_system_tag(tag.key, prefix):
            changes.to_remove.append(tag.key)
    return changes


def expand_default_tags(config: ControllerConfig, namespace: str, name: str) -> OrderedTags:
    """Expand the configured default tag templates for one resource."""
    replacements = {
        "%CONTROLLER_SERVICE%": CONTROLLER_SERVICE,
        "%CONTROLLER_VERSION%": config.controller_version,
        "%K8S_NAMESPACE%": namespace,
        "%K8S_RESOURCE_NAME%": name,
    }
    defaults = OrderedTags()
    for key, template in config.resource_tags.items():
        value = template
        for placeholder, replacement in replacements.items():
            value = value.replace(placeholder, replacement)
        defaults.set(Tag(key, value, TagProvenance.CONTROLLER_DEFAULT))
    return defaults

"""Generic representation for objects whose schema is not modelled statically.

Certificates and Istio virtual services are handled as plain JSON-like
mappings. Fields are addressed with dotted paths such as ``spec.secretName``;
every intermediate segment must be a mapping, anything else is reported as a
``NestedFieldError`` instead of being silently overwritten.
"""

import copy
from typing import Any

from notebook_controller.errors import NestedFieldError

_SCALARS = (str, bool, int, float, type(None))


def _split(path: str) -> list[str]:
    fields = path.split(".")
    if not all(fields):
        raise NestedFieldError(path, "empty path segment")
    return fields


def _check_value(path: str, value: Any) -> None:
    """Reject values that cannot be serialized as JSON."""
    if isinstance(value, _SCALARS):
        return
    if isinstance(value, list):
        for item in value:
            _check_value(path, item)
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise NestedFieldError(path, f"map key {key!r} is not a string")
            _check_value(path, item)
        return
    raise NestedFieldError(path, f"unsupported value type {type(value).__name__}")


def nested_field(obj: dict[str, Any], path: str) -> tuple[Any, bool]:
    """Return a deep copy of the value at ``path`` and whether it was found."""
    current: Any = obj
    walked: list[str] = []
    for field in _split(path):
        if not isinstance(current, dict):
            raise NestedFieldError(".".join(walked), f"accessor error: {current!r} is of type {type(current).__name__}")
        if field not in current:
            return None, False
        current = current[field]
        walked.append(field)
    return copy.deepcopy(current), True


def nested_map(obj: dict[str, Any], path: str) -> tuple[dict[str, Any], bool]:
    """Like ``nested_field`` but the value must be a mapping."""
    value, found = nested_field(obj, path)
    if not found:
        return {}, False
    if not isinstance(value, dict):
        raise NestedFieldError(path, f"accessor error: {value!r} is of type {type(value).__name__}, expected map")
    return value, True


def set_nested_field(obj: dict[str, Any], path: str, value: Any) -> None:
    """Set ``value`` at ``path``, creating intermediate mappings when missing."""
    _check_value(path, value)
    fields = _split(path)
    current = obj
    for index, field in enumerate(fields[:-1]):
        child = current.get(field)
        if child is None:
            child = current[field] = {}
        elif not isinstance(child, dict):
            walked = ".".join(fields[: index + 1])
            raise NestedFieldError(walked, f"value cannot be set because {child!r} is not a map")
        current = child
    current[fields[-1]] = copy.deepcopy(value)


class Unstructured:
    """A Kubernetes object kept as a nested mapping."""

    def __init__(self, obj: dict[str, Any] | None = None) -> None:
        self.object: dict[str, Any] = copy.deepcopy(obj) if obj else {}

    def get(self, path: str) -> tuple[Any, bool]:
        return nested_field(self.object, path)

    def set(self, path: str, value: Any) -> None:
        set_nested_field(self.object, path, value)

    def _get_str(self, path: str) -> str:
        value, found = nested_field(self.object, path)
        return value if found and isinstance(value, str) else ""

    @property
    def api_version(self) -> str:
        return self._get_str("apiVersion")

    @api_version.setter
    def api_version(self, value: str) -> None:
        self.set("apiVersion", value)

    @property
    def kind(self) -> str:
        return self._get_str("kind")

    @kind.setter
    def kind(self, value: str) -> None:
        self.set("kind", value)

    @property
    def name(self) -> str:
        return self._get_str("metadata.name")

    @name.setter
    def name(self, value: str) -> None:
        self.set("metadata.name", value)

    @property
    def namespace(self) -> str:
        return self._get_str("metadata.namespace")

    @namespace.setter
    def namespace(self, value: str) -> None:
        self.set("metadata.namespace", value)

    @property
    def owner_references(self) -> list[dict[str, Any]]:
        value, found = nested_field(self.object, "metadata.ownerReferences")
        return value if found and isinstance(value, list) else []

    @owner_references.setter
    def owner_references(self, value: list[dict[str, Any]]) -> None:
        self.set("metadata.ownerReferences", value)

    def to_dict(self) -> dict[str, Any]:
        return copy.deepcopy(self.object)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Unstructured):
            return NotImplemented
        return self.object == other.object

    def __repr__(self) -> str:
        return f"Unstructured({self.api_version}/{self.kind} {self.namespace}/{self.name})"

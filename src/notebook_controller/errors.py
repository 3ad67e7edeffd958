"""Exceptions raised by the notebook controller."""

from typing import Any


class NotebookControllerError(Exception):
    """Base exception for notebook controller operations."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message}: {self.details}"
        return self.message


class NotFoundError(NotebookControllerError):
    """Object does not exist in the store."""

    def __init__(self, resource_type: str, name: str, namespace: str | None = None) -> None:
        location = f" in namespace '{namespace}'" if namespace else ""
        super().__init__(
            f"{resource_type} '{name}' not found{location}",
            {"resource_type": resource_type, "name": name, "namespace": namespace},
        )
        self.resource_type = resource_type
        self.name = name
        self.namespace = namespace


class UnrelatedObjectError(NotebookControllerError):
    """Object cannot be traced back to a Notebook."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f"{kind} '{name}' isn't related to a Notebook", {"kind": kind, "name": name})


class NestedFieldError(NotebookControllerError):
    """A nested field of an unstructured object cannot be read or written."""

    def __init__(self, path: str, message: str) -> None:
        super().__init__(f".{path}: {message}", {"path": path})
        self.path = path

"""In-memory stand-ins for the Kubernetes API used across the tests."""

import copy
from typing import Any

from notebook_controller.errors import NotFoundError
from notebook_controller.models import Notebook
from notebook_controller.store import object_key


def make_notebook(
    name: str = "nb1",
    namespace: str = "team-a",
    size: str = "10Gi",
    storage_class: str | None = None,
    labels: dict[str, str] | None = None,
    annotations: dict[str, str] | None = None,
    containers: list[dict[str, Any]] | None = None,
    **pod_spec: Any,
) -> Notebook:
    """Build a valid Notebook with a single jupyter container."""
    claim = {"name": f"{name}-volume", "size": size}
    if storage_class is not None:
        claim["storageClass"] = storage_class
    return Notebook.model_validate(
        {
            "apiVersion": "kubeflow.org/v1",
            "kind": "Notebook",
            "metadata": {
                "name": name,
                "namespace": namespace,
                "uid": f"uid-{namespace}-{name}",
                "resourceVersion": "1",
                "labels": labels or {},
                "annotations": annotations or {},
            },
            "spec": {
                "template": {
                    "spec": {
                        "containers": containers or [{"name": name, "image": "jupyter/minimal-notebook:latest"}],
                        **pod_spec,
                    }
                },
                "volumeClaim": [claim],
            },
        }
    )


class FakeStore:
    """Keeps objects in dictionaries and records every write.

    Objects are copied on the way in and out, as a real API server would, so
    a caller mutating what it got back never changes the stored state.
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[str, str, str], Any] = {}
        self.notebooks: dict[tuple[str, str], Notebook] = {}
        self.created: list[tuple[str, str]] = []
        self.updated: list[tuple[str, str]] = []
        self.notebook_updates: list[Notebook] = []
        self.status_updates: list[Notebook] = []
        self.events: list[tuple[str, str, str, str]] = []
        # (verb, kind) -> exception raised instead of performing the call
        self.failures: dict[tuple[str, str], Exception] = {}

    def _maybe_fail(self, verb: str, kind: str) -> None:
        if (verb, kind) in self.failures:
            raise self.failures[(verb, kind)]

    def add(self, obj: Any) -> None:
        name, namespace = object_key(obj)
        self.objects[(obj.kind, namespace, name)] = copy.deepcopy(obj)

    def add_notebook(self, notebook: Notebook) -> None:
        self.notebooks[(notebook.namespace, notebook.name)] = notebook.model_copy(deep=True)

    def stored(self, kind: str, name: str, namespace: str) -> Any:
        return self.objects[(kind, namespace, name)]

    def get(self, kind: str, name: str, namespace: str) -> Any:
        self._maybe_fail("get", kind)
        try:
            return copy.deepcopy(self.objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(kind, name, namespace) from None

    def create(self, obj: Any) -> Any:
        self._maybe_fail("create", obj.kind)
        name, namespace = object_key(obj)
        self.objects[(obj.kind, namespace, name)] = copy.deepcopy(obj)
        self.created.append((obj.kind, name))
        return copy.deepcopy(obj)

    def update(self, obj: Any) -> Any:
        self._maybe_fail("update", obj.kind)
        name, namespace = object_key(obj)
        self.objects[(obj.kind, namespace, name)] = copy.deepcopy(obj)
        self.updated.append((obj.kind, name))
        return copy.deepcopy(obj)

    def get_notebook(self, name: str, namespace: str) -> Notebook:
        self._maybe_fail("get", "Notebook")
        try:
            return self.notebooks[(namespace, name)].model_copy(deep=True)
        except KeyError:
            raise NotFoundError("Notebook", name, namespace) from None

    def update_notebook(self, notebook: Notebook) -> Notebook:
        self._maybe_fail("update", "Notebook")
        self.add_notebook(notebook)
        self.notebook_updates.append(notebook.model_copy(deep=True))
        return notebook.model_copy(deep=True)

    def update_notebook_status(self, notebook: Notebook) -> Notebook:
        self._maybe_fail("update_status", "Notebook")
        self.add_notebook(notebook)
        self.status_updates.append(notebook.model_copy(deep=True))
        return notebook.model_copy(deep=True)

    def record_event(self, notebook: Notebook, event_type: str, reason: str, message: str) -> None:
        self.events.append((notebook.name, event_type, reason, message))

"""Correlation of child-object events with their owning Notebook.

Events about the notebook StatefulSet or its pod are re-emitted on the
Notebook so that users see them next to the resource they created. Pods are
linked to their Notebook by the ``notebook-name`` label only; removing the
label silently detaches the pod.
"""

import logging
from typing import Any

from kubernetes.client.rest import ApiException  # type: ignore
from pydantic import ValidationError

from notebook_controller.errors import NotebookControllerError, NotFoundError, UnrelatedObjectError
from notebook_controller.models import NOTEBOOK_KIND, NOTEBOOK_NAME_LABEL, ClusterEvent, ObjectReference
from notebook_controller.store import POD, STATEFUL_SET

logger = logging.getLogger("notebook-controller")

DELETED = "DELETED"


def is_stateful_set_or_pod_event(event: ClusterEvent) -> bool:
    return event.involvedObject.kind in (POD, STATEFUL_SET)


def notebook_name_from_involved_object(store: Any, reference: ObjectReference, namespace: str = "") -> str:
    """Resolve the name of the Notebook an event subject belongs to."""
    if reference.kind == STATEFUL_SET:
        return reference.name
    if reference.kind == POD:
        pod = store.get(POD, reference.name, reference.namespace or namespace)
        notebook_name = (pod.metadata.labels or {}).get(NOTEBOOK_NAME_LABEL)
        if notebook_name:
            return notebook_name
    raise UnrelatedObjectError(reference.kind, reference.name)


def notebook_exists(store: Any, name: str, namespace: str) -> bool:
    try:
        store.get_notebook(name, namespace)
    except NotFoundError:
        return False
    except ApiException as e:
        # Only a confirmed NotFound drops the event
        logger.warning(f"Unable to look up Notebook {namespace}/{name}, keeping event: {e}")
        return True
    except ValidationError as e:
        logger.warning(f"Notebook {namespace}/{name} is invalid, keeping event: {e}")
        return True
    return True


def should_reconcile_event(store: Any, event: ClusterEvent, change_type: str | None) -> bool:
    """Filter for events coming from a notebook pod or StatefulSet of a known Notebook."""
    if change_type == DELETED:
        return False
    if not is_stateful_set_or_pod_event(event):
        return False
    namespace = event.involvedObject.namespace or event.metadata.get("namespace", "")
    try:
        notebook_name = notebook_name_from_involved_object(store, event.involvedObject, namespace)
    except (NotebookControllerError, ApiException) as e:
        logger.debug(f"Ignoring event about {event.involvedObject.kind} {event.involvedObject.name}: {e}")
        return False
    return notebook_exists(store, notebook_name, namespace)


def reemit_event(store: Any, event: ClusterEvent) -> bool:
    """Record a copy of the event on the owning Notebook, returns False when there is none."""
    reference = event.involvedObject
    namespace = reference.namespace or event.metadata.get("namespace", "")
    notebook_name = notebook_name_from_involved_object(store, reference, namespace)
    try:
        notebook = store.get_notebook(notebook_name, namespace)
    except NotFoundError:
        logger.info(f"Notebook {namespace}/{notebook_name} for event is gone, dropping it")
        return False

    logger.info(f"Re-emitting {reference.kind} event {event.reason} on Notebook {namespace}/{notebook_name}")
    store.record_event(
        notebook,
        event.type,
        event.reason,
        f"Reissued from {reference.kind.lower()}/{reference.name}: {event.message}",
    )
    return True


def pod_is_labeled(labels: dict[str, str] | None) -> bool:
    return NOTEBOOK_NAME_LABEL in (labels or {})


def owner_notebook_name(owner_references: list[dict[str, Any]] | None) -> str | None:
    """Name of the Notebook controlling an object, from its owner references."""
    for reference in owner_references or []:
        if reference.get("kind") == NOTEBOOK_KIND and reference.get("controller"):
            return reference.get("name")
    return None

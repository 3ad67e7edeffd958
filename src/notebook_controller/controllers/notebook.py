"""Notebook controller handlers for the kopf operator."""

import functools
import logging
import threading
import weakref
from typing import Any

import kopf
from kubernetes.client.rest import ApiException  # type: ignore
from pydantic import ValidationError

from notebook_controller.config import ControllerConfig
from notebook_controller.controllers.events import (
    owner_notebook_name,
    pod_is_labeled,
    reemit_event,
    should_reconcile_event,
)
from notebook_controller.controllers.reconciler import NotebookReconciler, ReconcileResult
from notebook_controller.errors import NestedFieldError, NotebookControllerError
from notebook_controller.metrics import metrics
from notebook_controller.models import (
    NOTEBOOK_GROUP,
    NOTEBOOK_NAME_LABEL,
    NOTEBOOK_PLURAL,
    NOTEBOOK_VERSION,
    ClusterEvent,
)
from notebook_controller.store import CERTIFICATE, VIRTUAL_SERVICE, KubernetesStore

# Set up logger
logger = logging.getLogger("notebook-controller")

# Loaded once at import, handlers are registered from this module
config = ControllerConfig.from_env()

RETRY_DELAY = 10

# At most one pass per Notebook at a time, handlers and daemons share these.
# An entry lives only while some pass holds or waits on its lock.
_key_locks: "weakref.WeakValueDictionary[tuple[str, str], threading.Lock]" = weakref.WeakValueDictionary()
_key_locks_guard = threading.Lock()


def _lock_for(namespace: str, name: str) -> threading.Lock:
    with _key_locks_guard:
        lock = _key_locks.get((namespace, name))
        if lock is None:
            lock = threading.Lock()
            _key_locks[(namespace, name)] = lock
        return lock


@functools.lru_cache(maxsize=1)
def get_reconciler() -> NotebookReconciler:
    """Create the reconciler once the Kubernetes client configuration is loaded."""
    return NotebookReconciler(KubernetesStore(), config, metrics)


def handle_reconcile(name: str, namespace: str) -> ReconcileResult:
    """Run one reconciliation pass for a Notebook key."""
    with _lock_for(namespace, name):
        try:
            return get_reconciler().reconcile(name, namespace)
        except ValidationError as e:
            logger.error(f"Invalid Notebook {namespace}/{name}: {e}")
            raise kopf.PermanentError(f"Invalid Notebook {namespace}/{name}") from e
        except (ApiException, NestedFieldError) as e:
            logger.error(f"Failed to reconcile Notebook {namespace}/{name}: {e}")
            raise kopf.TemporaryError(f"Failed to reconcile Notebook {namespace}/{name}", delay=RETRY_DELAY) from e


def handle_child_event(raw_event: dict[str, Any]) -> bool:
    """Re-emit an event about a notebook pod or StatefulSet on the Notebook."""
    event = ClusterEvent.model_validate(raw_event)
    try:
        return reemit_event(get_reconciler().store, event)
    except NotebookControllerError as e:
        # The subject went away or lost its label since the event was filtered
        logger.debug(f"Dropping event {event.metadata.get('name')}: {e}")
        return False
    except ApiException as e:
        logger.warning(f"Failed to re-emit event {event.metadata.get('name')}: {e}")
        return False
    except ValidationError as e:
        logger.warning(f"Not re-emitting event {event.metadata.get('name')}, its Notebook is invalid: {e}")
        return False


def is_notebook_child_event(event: dict[str, Any], type: str | None, **_: Any) -> bool:
    """Kopf filter for core events worth re-emitting."""
    return should_reconcile_event(get_reconciler().store, ClusterEvent.model_validate(event["object"]), type)


def is_labeled_notebook_pod(labels: dict[str, str], **_: Any) -> bool:
    return pod_is_labeled(labels)


def is_owned_by_notebook(meta: dict[str, Any], **_: Any) -> bool:
    return owner_notebook_name(meta.get("ownerReferences")) is not None


@kopf.on.resume(NOTEBOOK_GROUP, NOTEBOOK_VERSION, NOTEBOOK_PLURAL)
@kopf.on.create(NOTEBOOK_GROUP, NOTEBOOK_VERSION, NOTEBOOK_PLURAL)
@kopf.on.update(NOTEBOOK_GROUP, NOTEBOOK_VERSION, NOTEBOOK_PLURAL)
def reconcile_notebook(name, namespace, **kwargs):
    """Kopf handler reconciling a Notebook after it changed."""
    handle_reconcile(name, namespace)


@kopf.daemon(NOTEBOOK_GROUP, NOTEBOOK_VERSION, NOTEBOOK_PLURAL, cancellation_timeout=5.0)
def requeue_notebook(stopped, name, namespace, **kwargs):
    """Kopf daemon running the passes a previous pass asked for."""
    delay = config.requeue_seconds
    while not stopped:
        stopped.wait(delay)
        if stopped:
            break
        try:
            result = handle_reconcile(name, namespace)
        except kopf.TemporaryError as e:
            delay = e.delay or RETRY_DELAY
        except kopf.PermanentError:
            delay = config.resync_seconds
        else:
            delay = result.requeue_after or config.resync_seconds


@kopf.on.event("", "v1", "pods", when=is_labeled_notebook_pod)
def reconcile_notebook_pod(labels, namespace, **kwargs):
    """Kopf handler reconciling the Notebook of a pod that changed."""
    handle_reconcile(labels[NOTEBOOK_NAME_LABEL], namespace)


@kopf.on.event("apps", "v1", "statefulsets", when=is_owned_by_notebook)
@kopf.on.event("", "v1", "services", when=is_owned_by_notebook)
@kopf.on.event("networking.k8s.io", "v1", "ingresses", when=is_owned_by_notebook)
@kopf.on.event(CERTIFICATE.group, CERTIFICATE.version, CERTIFICATE.plural, when=is_owned_by_notebook)
def reconcile_notebook_child(meta, namespace, **kwargs):
    """Kopf handler reconciling the Notebook owning a child that changed."""
    handle_reconcile(owner_notebook_name(meta.get("ownerReferences")), namespace)


if config.use_istio:
    kopf.on.event(VIRTUAL_SERVICE.group, VIRTUAL_SERVICE.version, VIRTUAL_SERVICE.plural, when=is_owned_by_notebook)(
        reconcile_notebook_child
    )


@kopf.on.event("", "v1", "events", when=is_notebook_child_event)
def reemit_notebook_event(event, **kwargs):
    """Kopf handler copying pod and StatefulSet events onto their Notebook."""
    handle_child_event(event["object"])

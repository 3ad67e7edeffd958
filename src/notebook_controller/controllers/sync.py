"""Create-or-update of child resources.

Each kind has a ``copy_*_fields(desired, found)`` function that copies only
the fields this controller owns from the desired object into the stored one
and reports whether anything changed. The stored object is written back only
in that case, so repeated passes over an unchanged Notebook issue no writes
and fields set by other actors (a Service's cluster IP for instance) are
never touched.
"""

import logging
from collections.abc import Callable
from typing import Any

from kubernetes import client  # type: ignore
from kubernetes.utils import parse_quantity  # type: ignore

from notebook_controller.errors import NestedFieldError, NotFoundError
from notebook_controller.metrics import Metrics
from notebook_controller.store import object_key
from notebook_controller.unstructured import Unstructured, nested_map

logger = logging.getLogger("notebook-controller")


def _copy_metadata(desired: Any, found: Any) -> bool:
    """Copy labels and annotations."""
    require_update = False
    if (found.metadata.labels or {}) != (desired.metadata.labels or {}):
        require_update = True
    found.metadata.labels = desired.metadata.labels

    if (found.metadata.annotations or {}) != (desired.metadata.annotations or {}):
        require_update = True
    found.metadata.annotations = desired.metadata.annotations
    return require_update


def same_requests(desired: Any, found: Any) -> bool:
    """Compare resource requests by quantity, the API server stores them in canonical form."""
    desired_requests = (desired.requests if desired else None) or {}
    found_requests = (found.requests if found else None) or {}
    if desired_requests.keys() != found_requests.keys():
        return False
    try:
        return all(
            parse_quantity(found_requests[key]) == parse_quantity(value) for key, value in desired_requests.items()
        )
    except ValueError:
        return False


def copy_persistent_volume_claim_fields(
    desired: client.V1PersistentVolumeClaim, found: client.V1PersistentVolumeClaim
) -> bool:
    # Access modes and storage class are immutable once the claim is bound
    require_update = False
    if (found.metadata.labels or {}) != (desired.metadata.labels or {}):
        require_update = True
    found.metadata.labels = desired.metadata.labels

    if not same_requests(desired.spec.resources, found.spec.resources):
        found.spec.resources = desired.spec.resources
        require_update = True
    return require_update


def copy_stateful_set_fields(desired: client.V1StatefulSet, found: client.V1StatefulSet) -> bool:
    require_update = _copy_metadata(desired, found)

    if found.spec.replicas != desired.spec.replicas:
        found.spec.replicas = desired.spec.replicas
        require_update = True

    if found.spec.template.spec != desired.spec.template.spec:
        require_update = True
    found.spec.template.spec = desired.spec.template.spec
    return require_update


def copy_service_fields(desired: client.V1Service, found: client.V1Service) -> bool:
    require_update = _copy_metadata(desired, found)

    # Don't copy the entire spec, the cluster IP must not be overwritten
    if found.spec.selector != desired.spec.selector:
        require_update = True
    found.spec.selector = desired.spec.selector

    if found.spec.ports != desired.spec.ports:
        require_update = True
    found.spec.ports = desired.spec.ports
    return require_update


def copy_ingress_fields(desired: client.V1Ingress, found: client.V1Ingress) -> bool:
    require_update = False
    if found.spec.tls != desired.spec.tls:
        require_update = True
    found.spec.tls = desired.spec.tls

    if found.spec.rules != desired.spec.rules:
        require_update = True
    found.spec.rules = desired.spec.rules
    return require_update


def copy_unstructured_spec(desired: Unstructured, found: Unstructured) -> bool:
    """Copy the whole ``spec`` of an object without a typed model."""
    desired_spec, has_spec = nested_map(desired.object, "spec")
    if not has_spec:
        return False

    try:
        found_spec, found_has_spec = nested_map(found.object, "spec")
    except NestedFieldError:
        found_spec, found_has_spec = {}, False
    if not found_has_spec:
        found.set("spec", desired_spec)
        return True

    if found_spec == desired_spec:
        return False
    found.set("spec", desired_spec)
    return True


def sync_object(
    store: Any, desired: Any, copy_fields: Callable[[Any, Any], bool], metrics: Metrics | None = None
) -> Any:
    """Create ``desired`` if missing, otherwise update the stored object when it drifted.

    Returns the object as last seen in the store.
    """
    kind = desired.kind
    name, namespace = object_key(desired)
    try:
        found = store.get(kind, name, namespace)
    except NotFoundError:
        logger.info(f"Creating {kind} {namespace}/{name}")
        if metrics is not None:
            metrics.record_creation(namespace)
        try:
            return store.create(desired)
        except Exception:
            if metrics is not None:
                metrics.record_failed_creation(namespace)
            raise

    if copy_fields(desired, found):
        logger.info(f"Updating {kind} {namespace}/{name}")
        return store.update(found)
    return found


def sync_persistent_volume_claim(store: Any, pvc: client.V1PersistentVolumeClaim) -> Any:
    return sync_object(store, pvc, copy_persistent_volume_claim_fields)


def sync_stateful_set(store: Any, stateful_set: client.V1StatefulSet, metrics: Metrics | None = None) -> Any:
    """StatefulSet creations are what the notebook creation counters track."""
    return sync_object(store, stateful_set, copy_stateful_set_fields, metrics)


def sync_service(store: Any, service: client.V1Service) -> Any:
    return sync_object(store, service, copy_service_fields)


def sync_ingress(store: Any, ingress: client.V1Ingress) -> Any:
    return sync_object(store, ingress, copy_ingress_fields)


def sync_certificate(store: Any, certificate: Unstructured) -> Any:
    return sync_object(store, certificate, copy_unstructured_spec)


def sync_virtual_service(store: Any, virtual_service: Unstructured) -> Any:
    return sync_object(store, virtual_service, copy_unstructured_spec)

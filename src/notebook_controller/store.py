"""Access to the Kubernetes API server for the objects the controller manages."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from kubernetes import client  # type: ignore
from kubernetes.client.rest import ApiException  # type: ignore

from notebook_controller.errors import NotFoundError
from notebook_controller.models import NOTEBOOK_GROUP, NOTEBOOK_KIND, NOTEBOOK_PLURAL, NOTEBOOK_VERSION, Notebook
from notebook_controller.unstructured import Unstructured

logger = logging.getLogger("notebook-controller")

EVENT_SOURCE = "notebook-controller"

# Kinds with typed client models
POD = "Pod"
PERSISTENT_VOLUME_CLAIM = "PersistentVolumeClaim"
SERVICE = "Service"
STATEFUL_SET = "StatefulSet"
INGRESS = "Ingress"


@dataclass(frozen=True)
class CustomResource:
    """Group, version and plural of a resource without a typed client model."""

    group: str
    version: str
    plural: str
    kind: str

    @property
    def api_version(self) -> str:
        return f"{self.group}/{self.version}"


CERTIFICATE = CustomResource(group="cert-manager.io", version="v1", plural="certificates", kind="Certificate")
VIRTUAL_SERVICE = CustomResource(
    group="networking.istio.io", version="v1alpha3", plural="virtualservices", kind="VirtualService"
)
NOTEBOOK = CustomResource(group=NOTEBOOK_GROUP, version=NOTEBOOK_VERSION, plural=NOTEBOOK_PLURAL, kind=NOTEBOOK_KIND)

# kind -> (client attribute, resource suffix of the generated client methods)
_TYPED_KINDS: dict[str, tuple[str, str]] = {
    POD: ("core_v1", "pod"),
    PERSISTENT_VOLUME_CLAIM: ("core_v1", "persistent_volume_claim"),
    SERVICE: ("core_v1", "service"),
    STATEFUL_SET: ("apps_v1", "stateful_set"),
    INGRESS: ("networking_v1", "ingress"),
}

_CUSTOM_KINDS: dict[str, CustomResource] = {
    CERTIFICATE.kind: CERTIFICATE,
    VIRTUAL_SERVICE.kind: VIRTUAL_SERVICE,
}


def set_controller_reference(owner: Notebook, child: Any) -> None:
    """Mark ``owner`` as the controller of ``child``.

    The reference only identifies the owner; the API server garbage collector
    deletes the child once the Notebook is gone.
    """
    reference = {
        "apiVersion": owner.apiVersion,
        "kind": owner.kind,
        "name": owner.name,
        "uid": owner.metadata.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }
    if isinstance(child, Unstructured):
        others = [ref for ref in child.owner_references if ref.get("uid") != owner.metadata.uid]
        child.owner_references = others + [reference]
        return

    others = [ref for ref in child.metadata.owner_references or [] if ref.uid != owner.metadata.uid]
    child.metadata.owner_references = others + [
        client.V1OwnerReference(
            api_version=reference["apiVersion"],
            kind=reference["kind"],
            name=reference["name"],
            uid=reference["uid"],
            controller=True,
            block_owner_deletion=True,
        )
    ]


def object_key(obj: Any) -> tuple[str, str]:
    """Name and namespace of a typed or unstructured object."""
    if isinstance(obj, Unstructured):
        return obj.name, obj.namespace
    return obj.metadata.name, obj.metadata.namespace


class KubernetesStore:
    """Get, create and update objects through the Kubernetes API.

    A missing object is reported as ``NotFoundError``; every other API error
    propagates unchanged so the caller can retry the whole pass.
    """

    def __init__(self, api_client: client.ApiClient | None = None) -> None:
        self.core_v1 = client.CoreV1Api(api_client)
        self.apps_v1 = client.AppsV1Api(api_client)
        self.networking_v1 = client.NetworkingV1Api(api_client)
        self.custom_objects = client.CustomObjectsApi(api_client)

    def _typed_call(self, kind: str, verb: str) -> Any:
        api_name, resource = _TYPED_KINDS[kind]
        return getattr(getattr(self, api_name), f"{verb}_namespaced_{resource}")

    def get(self, kind: str, name: str, namespace: str) -> Any:
        """Fetch an object by kind, name and namespace."""
        try:
            if kind in _CUSTOM_KINDS:
                crd = _CUSTOM_KINDS[kind]
                body = self.custom_objects.get_namespaced_custom_object(
                    crd.group, crd.version, namespace, crd.plural, name
                )
                return Unstructured(body)
            return self._typed_call(kind, "read")(name=name, namespace=namespace)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(kind, name, namespace) from e
            logger.error(f"Error getting {kind} {namespace}/{name}: {e.reason}")
            raise

    def create(self, obj: Any) -> Any:
        kind = obj.kind
        name, namespace = object_key(obj)
        try:
            if kind in _CUSTOM_KINDS:
                crd = _CUSTOM_KINDS[kind]
                body = self.custom_objects.create_namespaced_custom_object(
                    crd.group, crd.version, namespace, crd.plural, obj.to_dict()
                )
                return Unstructured(body)
            return self._typed_call(kind, "create")(namespace=namespace, body=obj)
        except ApiException as e:
            logger.error(f"Unable to create {kind} {namespace}/{name}: {e.reason}")
            raise

    def update(self, obj: Any) -> Any:
        kind = obj.kind
        name, namespace = object_key(obj)
        try:
            if kind in _CUSTOM_KINDS:
                crd = _CUSTOM_KINDS[kind]
                body = self.custom_objects.replace_namespaced_custom_object(
                    crd.group, crd.version, namespace, crd.plural, name, obj.to_dict()
                )
                return Unstructured(body)
            return self._typed_call(kind, "replace")(name=name, namespace=namespace, body=obj)
        except ApiException as e:
            logger.error(f"Unable to update {kind} {namespace}/{name}: {e.reason}")
            raise

    def get_notebook(self, name: str, namespace: str) -> Notebook:
        try:
            body = self.custom_objects.get_namespaced_custom_object(
                NOTEBOOK.group, NOTEBOOK.version, namespace, NOTEBOOK.plural, name
            )
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(NOTEBOOK.kind, name, namespace) from e
            raise
        return Notebook.model_validate(body)

    def update_notebook(self, notebook: Notebook) -> Notebook:
        """Write the Notebook metadata and spec."""
        body = self.custom_objects.replace_namespaced_custom_object(
            NOTEBOOK.group, NOTEBOOK.version, notebook.namespace, NOTEBOOK.plural, notebook.name, notebook.to_dict()
        )
        return Notebook.model_validate(body)

    def update_notebook_status(self, notebook: Notebook) -> Notebook:
        """Write the Notebook status subresource."""
        body = self.custom_objects.replace_namespaced_custom_object_status(
            NOTEBOOK.group, NOTEBOOK.version, notebook.namespace, NOTEBOOK.plural, notebook.name, notebook.to_dict()
        )
        return Notebook.model_validate(body)

    def record_event(self, notebook: Notebook, event_type: str, reason: str, message: str) -> None:
        """Create a core Event attached to the Notebook."""
        now = datetime.now(timezone.utc)
        event = client.CoreV1Event(
            metadata=client.V1ObjectMeta(generate_name=f"{notebook.name}.", namespace=notebook.namespace),
            involved_object=client.V1ObjectReference(
                api_version=notebook.apiVersion,
                kind=notebook.kind,
                name=notebook.name,
                namespace=notebook.namespace,
                uid=notebook.metadata.uid,
                resource_version=notebook.metadata.resourceVersion,
            ),
            type=event_type,
            reason=reason,
            message=message,
            first_timestamp=now,
            last_timestamp=now,
            count=1,
            source=client.V1EventSource(component=EVENT_SOURCE),
        )
        self.core_v1.create_namespaced_event(namespace=notebook.namespace, body=event)

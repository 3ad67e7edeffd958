"""One reconciliation pass over a Notebook.

Child resources are synced in a fixed order: volume claim, StatefulSet,
Service, Ingress, Certificate and, when Istio is enabled, VirtualService.
Then the status is brought up to date and the culling policy decides whether
to stop the notebook or look at it again later. Any error aborts the pass;
the caller retries it from the start, which is safe because every child is
regenerated from scratch.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from kubernetes import client  # type: ignore

from notebook_controller.config import ControllerConfig
from notebook_controller.controllers import culler, generators, status, sync
from notebook_controller.errors import NotFoundError
from notebook_controller.metrics import Metrics
from notebook_controller.models import Notebook
from notebook_controller.store import POD, set_controller_reference

logger = logging.getLogger("notebook-controller")


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a pass, ``requeue_after`` asks for another pass after that many seconds."""

    requeue_after: float | None = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotebookReconciler:
    """Drives the children and status of a Notebook toward its declared state."""

    def __init__(
        self,
        store: Any,
        config: ControllerConfig,
        metrics: Metrics | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.config = config
        self.metrics = metrics or Metrics()
        self.clock = clock

    def reconcile(self, name: str, namespace: str) -> ReconcileResult:
        try:
            notebook = self.store.get_notebook(name, namespace)
        except NotFoundError:
            # Deleted, the API server garbage collects the children
            logger.info(f"Notebook {namespace}/{name} not found, skipping")
            return ReconcileResult()

        stateful_set = self.sync_children(notebook)

        notebook = self.update_ready_replicas(notebook, stateful_set)

        pod = self.get_primary_pod(notebook)
        if pod is None:
            self.forget_last_activity(notebook)
            return ReconcileResult()

        notebook = self.update_container_state(notebook, pod)
        return self.cull(notebook)

    def sync_children(self, notebook: Notebook) -> client.V1StatefulSet:
        """Sync every child resource, returns the stored StatefulSet."""
        pvc = generators.generate_persistent_volume_claim(notebook)
        set_controller_reference(notebook, pvc)
        sync.sync_persistent_volume_claim(self.store, pvc)

        stateful_set = generators.generate_stateful_set(notebook, self.config)
        set_controller_reference(notebook, stateful_set)
        found_stateful_set = sync.sync_stateful_set(self.store, stateful_set, self.metrics)

        service = generators.generate_service(notebook)
        set_controller_reference(notebook, service)
        sync.sync_service(self.store, service)

        ingress = generators.generate_ingress(notebook, self.config)
        set_controller_reference(notebook, ingress)
        sync.sync_ingress(self.store, ingress)

        certificate = generators.generate_certificate(notebook)
        set_controller_reference(notebook, certificate)
        sync.sync_certificate(self.store, certificate)

        if self.config.use_istio:
            virtual_service = generators.generate_virtual_service(notebook, self.config)
            set_controller_reference(notebook, virtual_service)
            sync.sync_virtual_service(self.store, virtual_service)

        return found_stateful_set

    def update_ready_replicas(self, notebook: Notebook, stateful_set: client.V1StatefulSet) -> Notebook:
        ready_replicas = (stateful_set.status.ready_replicas if stateful_set.status else None) or 0
        if ready_replicas == notebook.status.readyReplicas:
            return notebook

        logger.info(f"Updating status of {notebook.namespace}/{notebook.name}: readyReplicas={ready_replicas}")
        notebook.status.readyReplicas = ready_replicas
        return self.store.update_notebook_status(notebook)

    def get_primary_pod(self, notebook: Notebook) -> client.V1Pod | None:
        try:
            return self.store.get(POD, f"{notebook.name}-0", notebook.namespace)
        except NotFoundError:
            # The StatefulSet controller will create it
            logger.info(f"Pod of {notebook.namespace}/{notebook.name} not found")
            return None

    def update_container_state(self, notebook: Notebook, pod: client.V1Pod) -> Notebook:
        state = status.primary_container_state(pod)
        if state is None or state == notebook.status.containerState:
            return notebook

        logger.info(f"Updating container state of {notebook.namespace}/{notebook.name}")
        status.apply_container_state(notebook, state, self.clock())
        return self.store.update_notebook_status(notebook)

    def forget_last_activity(self, notebook: Notebook) -> None:
        """A Notebook without a pod cannot accumulate idle time."""
        if not culler.remove_last_activity_annotation(notebook):
            return
        logger.info(f"Notebook {notebook.namespace}/{notebook.name} has no pod, removed last-activity annotation")
        self.store.update_notebook(notebook)

    def cull(self, notebook: Notebook) -> ReconcileResult:
        now = self.clock()
        if culler.notebook_needs_culling(notebook, self.config, now):
            logger.info(f"Notebook {notebook.namespace}/{notebook.name} needs culling. Setting annotations")
            culler.set_stop_annotation(notebook, now, self.metrics)
            self.metrics.record_culling(notebook.namespace, notebook.name)
            self.store.update_notebook(notebook)
            return ReconcileResult()

        if not culler.stop_annotation_is_set(notebook):
            # Keep checking periodically whether it went idle
            return ReconcileResult(requeue_after=self.config.requeue_seconds)
        return ReconcileResult()

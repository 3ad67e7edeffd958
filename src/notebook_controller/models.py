"""Data models for the notebook controller."""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

NOTEBOOK_GROUP = "kubeflow.org"
NOTEBOOK_VERSION = "v1"
NOTEBOOK_PLURAL = "notebooks"
NOTEBOOK_KIND = "Notebook"

# Annotations on the Notebook
ANNOTATION_PREFIX = "notebooks.kubeflow.org"
LAST_ACTIVITY_ANNOTATION = f"{ANNOTATION_PREFIX}/last-activity"
STOP_ANNOTATION = f"{ANNOTATION_PREFIX}/kubeflow-resource-stopped"
REWRITE_URI_ANNOTATION = f"{ANNOTATION_PREFIX}/http-rewrite-uri"
HEADERS_REQUEST_SET_ANNOTATION = f"{ANNOTATION_PREFIX}/http-headers-request-set"

# Soft link from a pod back to its Notebook, removing it breaks the mapping
NOTEBOOK_NAME_LABEL = "notebook-name"
STATEFULSET_LABEL = "statefulset"


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata the controller reads and writes."""

    model_config = ConfigDict(extra="allow")

    name: str
    namespace: str = "default"
    uid: str | None = None
    resourceVersion: str | None = None
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)


class VolumeClaim(BaseModel):
    """Persistent volume claim request of a Notebook."""

    name: str = Field(..., description="Name of the claim")
    size: str = Field(..., description="Requested storage, e.g. 10Gi")
    storageClass: str | None = Field(None, description="Storage class, cluster default when empty")


class PodTemplate(BaseModel):
    """Pod template embedded in the Notebook spec."""

    model_config = ConfigDict(extra="allow")

    spec: dict[str, Any]

    @field_validator("spec")
    @classmethod
    def has_primary_container(cls, spec: dict[str, Any]) -> dict[str, Any]:
        containers = spec.get("containers")
        if not isinstance(containers, list) or not containers:
            raise ValueError("template.spec.containers must declare at least one container")
        return spec


class NotebookSpec(BaseModel):
    """Notebook spec model."""

    model_config = ConfigDict(extra="allow")

    template: PodTemplate
    volumeClaim: list[VolumeClaim] = Field(..., min_length=1)


class NotebookCondition(BaseModel):
    """One entry of the Notebook condition history."""

    type: str
    reason: str = ""
    message: str = ""
    lastProbeTime: str | None = None


class NotebookStatus(BaseModel):
    """Observed state of a Notebook."""

    model_config = ConfigDict(extra="allow")

    readyReplicas: int = 0
    containerState: dict[str, Any] | None = None
    conditions: list[NotebookCondition] = Field(default_factory=list)


class Notebook(BaseModel):
    """The Notebook custom resource."""

    model_config = ConfigDict(extra="allow")

    apiVersion: str = f"{NOTEBOOK_GROUP}/{NOTEBOOK_VERSION}"
    kind: str = NOTEBOOK_KIND
    metadata: ObjectMeta
    spec: NotebookSpec
    status: NotebookStatus = Field(default_factory=NotebookStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the API server representation."""
        return self.model_dump(exclude_none=True)


class ObjectReference(BaseModel):
    """Reference to the object an event is about."""

    model_config = ConfigDict(extra="allow")

    kind: str = ""
    name: str = ""
    namespace: str | None = None


class ClusterEvent(BaseModel):
    """Core v1 Event as seen by the event correlation layer."""

    model_config = ConfigDict(extra="allow")

    metadata: dict[str, Any] = Field(default_factory=dict)
    involvedObject: ObjectReference = Field(default_factory=ObjectReference)
    type: str = "Normal"
    reason: str = ""
    message: str = ""

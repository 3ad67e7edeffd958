"""Notebook status derived from the primary container of its pod."""

import logging
from datetime import datetime, timezone
from typing import Any

from kubernetes import client  # type: ignore

from notebook_controller.models import Notebook, NotebookCondition

logger = logging.getLogger("notebook-controller")

RUNNING = "Running"
WAITING = "Waiting"
TERMINATED = "Terminated"

_serializer = client.ApiClient()


def rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _normalize_times(value: Any) -> Any:
    # The API server reports UTC times with a Z suffix, the client serializes them as +00:00
    if isinstance(value, dict):
        return {k: _normalize_times(v) for k, v in value.items()}
    if isinstance(value, str) and value.endswith("+00:00"):
        return value[: -len("+00:00")] + "Z"
    return value


def container_state_to_dict(state: client.V1ContainerState) -> dict[str, Any]:
    """Serialize a container state the way the API server stores it."""
    return _normalize_times(_serializer.sanitize_for_serialization(state))


def primary_container_state(pod: client.V1Pod) -> dict[str, Any] | None:
    """State of the first container of the pod, None before it is reported."""
    statuses = pod.status.container_statuses if pod.status else None
    if not statuses or statuses[0].state is None:
        return None
    return container_state_to_dict(statuses[0].state)


def next_condition(state: dict[str, Any], now: datetime | None = None) -> NotebookCondition:
    """Condition describing a container state; Running carries no reason or message."""
    probe_time = rfc3339(now or datetime.now(timezone.utc))
    if state.get("running") is not None:
        return NotebookCondition(type=RUNNING, lastProbeTime=probe_time)
    if state.get("waiting") is not None:
        waiting = state["waiting"]
        return NotebookCondition(
            type=WAITING,
            reason=waiting.get("reason") or "",
            message=waiting.get("message") or "",
            lastProbeTime=probe_time,
        )
    terminated = state.get("terminated") or {}
    return NotebookCondition(
        type=TERMINATED,
        reason=terminated.get("reason") or "",
        message=terminated.get("message") or "",
        lastProbeTime=probe_time,
    )


def same_condition(a: NotebookCondition, b: NotebookCondition) -> bool:
    return (a.type, a.reason, a.message) == (b.type, b.reason, b.message)


def apply_container_state(notebook: Notebook, state: dict[str, Any], now: datetime | None = None) -> bool:
    """Record a new container state on the Notebook status.

    The derived condition is prepended to the history unless the current head
    already has the same type, reason and message. Returns True when the
    history grew.
    """
    notebook.status.containerState = state
    condition = next_condition(state, now)
    conditions = notebook.status.conditions
    if conditions and same_condition(conditions[0], condition):
        return False

    logger.info(
        f"Appending to conditions of {notebook.namespace}/{notebook.name}: "
        f"type={condition.type} reason={condition.reason} message={condition.message}"
    )
    notebook.status.conditions = [condition] + conditions
    return True

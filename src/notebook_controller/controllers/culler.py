"""Idle culling of notebooks.

The last-activity annotation is maintained by an external traffic monitor.
When a notebook has been idle for longer than the configured idle time the
stop annotation is set, which scales its StatefulSet to zero on the next
pass. Clearing the stop annotation is left to the user.
"""

import logging
from datetime import datetime, timedelta, timezone

from notebook_controller.config import ControllerConfig
from notebook_controller.controllers.status import rfc3339
from notebook_controller.metrics import Metrics
from notebook_controller.models import LAST_ACTIVITY_ANNOTATION, STOP_ANNOTATION, Notebook

logger = logging.getLogger("notebook-controller")


def stop_annotation_is_set(notebook: Notebook) -> bool:
    return STOP_ANNOTATION in notebook.metadata.annotations


def parse_rfc3339(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        raise ValueError(f"timestamp {value!r} has no timezone")
    return parsed


def notebook_is_idle(notebook: Notebook, config: ControllerConfig, now: datetime | None = None) -> bool:
    """Whether the last recorded activity is older than the idle time."""
    last_activity = notebook.metadata.annotations.get(LAST_ACTIVITY_ANNOTATION)
    if not last_activity:
        return False
    try:
        last_activity_time = parse_rfc3339(last_activity)
    except ValueError:
        logger.error(f"Error parsing last-activity time {last_activity!r} of {notebook.namespace}/{notebook.name}")
        return False

    time_cap = last_activity_time + timedelta(minutes=config.cull_idle_time)
    return (now or datetime.now(timezone.utc)) > time_cap


def notebook_needs_culling(notebook: Notebook, config: ControllerConfig, now: datetime | None = None) -> bool:
    if not config.enable_culling:
        return False
    if stop_annotation_is_set(notebook):
        logger.info(f"Notebook {notebook.namespace}/{notebook.name} is already stopping")
        return False
    return notebook_is_idle(notebook, config, now)


def set_stop_annotation(notebook: Notebook, now: datetime | None = None, metrics: Metrics | None = None) -> None:
    """Mark the notebook as stopped and drop its last-activity annotation."""
    now = now or datetime.now(timezone.utc)
    notebook.metadata.annotations[STOP_ANNOTATION] = rfc3339(now)
    if metrics is not None:
        metrics.set_culling_timestamp(notebook.namespace, notebook.name, now.timestamp())
    notebook.metadata.annotations.pop(LAST_ACTIVITY_ANNOTATION, None)


def remove_last_activity_annotation(notebook: Notebook) -> bool:
    """Drop the last-activity annotation, returns False when there was none."""
    if LAST_ACTIVITY_ANNOTATION not in notebook.metadata.annotations:
        return False
    del notebook.metadata.annotations[LAST_ACTIVITY_ANNOTATION]
    return True

"""Prometheus metrics for notebook lifecycle operations."""

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, generate_latest

CONTENT_TYPE = CONTENT_TYPE_LATEST


class Metrics:
    """Metrics recorded by the reconciler and exposed through the HTTP API.

    Every instance owns its registry so independent instances never clash on
    metric names.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.notebook_creation = Counter(
            "notebook_create",
            "Total times of creating notebooks",
            ["namespace"],
            registry=self.registry,
        )
        self.notebook_fail_creation = Counter(
            "notebook_create_failed",
            "Total failure times of creating notebooks",
            ["namespace"],
            registry=self.registry,
        )
        self.notebook_culling_count = Counter(
            "notebook_culling",
            "Total times of culling notebooks",
            ["namespace", "name"],
            registry=self.registry,
        )
        self.notebook_culling_timestamp = Gauge(
            "last_notebook_culling_timestamp_seconds",
            "Timestamp of the last notebook culling in seconds",
            ["namespace", "name"],
            registry=self.registry,
        )

    def record_creation(self, namespace: str) -> None:
        self.notebook_creation.labels(namespace=namespace).inc()

    def record_failed_creation(self, namespace: str) -> None:
        self.notebook_fail_creation.labels(namespace=namespace).inc()

    def record_culling(self, namespace: str, name: str) -> None:
        self.notebook_culling_count.labels(namespace=namespace, name=name).inc()

    def set_culling_timestamp(self, namespace: str, name: str, timestamp: float) -> None:
        self.notebook_culling_timestamp.labels(namespace=namespace, name=name).set(timestamp)

    def sample(self, name: str, /, **labels: str) -> float | None:
        """Current value of one sample, None when it was never recorded."""
        return self.registry.get_sample_value(name, labels)

    def render(self) -> bytes:
        """Serialize every metric in the Prometheus text exposition format."""
        return generate_latest(self.registry)


# Shared by the kopf handlers and the HTTP API
metrics = Metrics()

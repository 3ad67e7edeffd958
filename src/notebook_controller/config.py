"""Configuration for the notebook controller.

The configuration is read from the environment once at process start and then
passed explicitly into the generators, the culler and the reconciler.
"""

import logging
import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger("notebook-controller")

DEFAULT_CULL_IDLE_TIME = 1440  # One day
DEFAULT_IDLENESS_CHECK_PERIOD = 1
DEFAULT_RESYNC_PERIOD = 10
DEFAULT_MAX_WORKERS = 16


def _flag(environ: Mapping[str, str], key: str) -> bool:
    return environ.get(key, "") == "true"


def _positive_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning(f"Invalid value {raw!r} for {key}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"{key} must be positive, got {value}, using default {default}")
        return default
    return value


class ControllerConfig(BaseModel):
    """Immutable controller settings."""

    model_config = ConfigDict(frozen=True)

    custom_domain: str = Field(default="", description="Base domain for notebook ingress hosts")
    cluster_domain: str = Field(default="cluster.local", description="Cluster DNS suffix")
    client_secret: str = Field(default="", description="OIDC client secret for the gatekeeper side-car")
    discovery_url: str = Field(default="", description="OIDC discovery URL for the gatekeeper side-car")
    gatekeeper_version: str = Field(default="latest", description="Gatekeeper image tag")
    gatekeeper_log_level: str = Field(default="info", description="Gatekeeper log level")
    encryption_key: str = Field(default="", description="Gatekeeper cookie encryption key")
    is_closed: bool = Field(default=False, description="Pull the gatekeeper image from the private registry")
    registry_name: str = Field(default="", description="Private registry prefix used when is_closed is set")
    use_istio: bool = Field(default=False, description="Manage an Istio VirtualService per notebook")
    istio_gateway: str = Field(default="kubeflow/kubeflow-gateway", description="Gateway bound by virtual services")
    add_fsgroup: bool = Field(default=True, description="Add the default fsGroup to notebook pods")
    enable_culling: bool = Field(default=False, description="Stop notebooks that stayed idle too long")
    cull_idle_time: int = Field(default=DEFAULT_CULL_IDLE_TIME, gt=0, description="Idle minutes before culling")
    idleness_check_period: int = Field(
        default=DEFAULT_IDLENESS_CHECK_PERIOD, gt=0, description="Minutes between culling checks"
    )
    resync_period: int = Field(default=DEFAULT_RESYNC_PERIOD, gt=0, description="Minutes between full resyncs")
    max_workers: int = Field(default=DEFAULT_MAX_WORKERS, gt=0, description="Concurrent reconciliation workers")

    @property
    def requeue_seconds(self) -> float:
        """Delay before the next culling check."""
        return float(self.idleness_check_period * 60)

    @property
    def resync_seconds(self) -> float:
        return float(self.resync_period * 60)

    @property
    def gatekeeper_image(self) -> str:
        image = f"docker.io/tmaxcloudck/gatekeeper:{self.gatekeeper_version}"
        if self.is_closed:
            return self.registry_name + image
        return image

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ControllerConfig":
        """Build the configuration from environment variables."""
        env = os.environ if environ is None else environ
        return cls(
            custom_domain=env.get("CUSTOM_DOMAIN", ""),
            cluster_domain=env.get("CLUSTER_DOMAIN") or "cluster.local",
            client_secret=env.get("CLIENT_SECRET", ""),
            discovery_url=env.get("DISCOVERY_URL", ""),
            gatekeeper_version=env.get("GATEKEEPER_VERSION") or "latest",
            gatekeeper_log_level=env.get("LOG_LEVEL") or "info",
            encryption_key=env.get("ENCRYPTION_KEY", ""),
            is_closed=_flag(env, "IS_CLOSED"),
            registry_name=env.get("REGISTRY_NAME", ""),
            use_istio=_flag(env, "USE_ISTIO"),
            istio_gateway=env.get("ISTIO_GATEWAY") or "kubeflow/kubeflow-gateway",
            # Platforms such as OpenShift reject a fixed fsGroup, they opt out with ADD_FSGROUP=false
            add_fsgroup=env.get("ADD_FSGROUP", "true") == "true",
            enable_culling=_flag(env, "ENABLE_CULLING"),
            cull_idle_time=_positive_int(env, "CULL_IDLE_TIME", DEFAULT_CULL_IDLE_TIME),
            idleness_check_period=_positive_int(env, "IDLENESS_CHECK_PERIOD", DEFAULT_IDLENESS_CHECK_PERIOD),
            resync_period=_positive_int(env, "RESYNC_PERIOD", DEFAULT_RESYNC_PERIOD),
            max_workers=_positive_int(env, "MAX_WORKERS", DEFAULT_MAX_WORKERS),
        )

"""Desired state of every child resource of a Notebook.

All functions here are pure: the same Notebook and configuration always
produce the same objects, and nothing talks to the API server.
"""

import copy
import json
import logging
from typing import Any

from kubernetes import client  # type: ignore

from notebook_controller.config import ControllerConfig
from notebook_controller.models import (
    HEADERS_REQUEST_SET_ANNOTATION,
    NOTEBOOK_NAME_LABEL,
    REWRITE_URI_ANNOTATION,
    STATEFULSET_LABEL,
    STOP_ANNOTATION,
    Notebook,
)
from notebook_controller.store import CERTIFICATE, VIRTUAL_SERVICE
from notebook_controller.unstructured import Unstructured

logger = logging.getLogger("notebook-controller")

DEFAULT_CONTAINER_PORT = 8888
DEFAULT_SERVING_PORT = 80
HTTPS_SERVING_PORT = 443
GATEKEEPER_PORT = 3000
DEFAULT_WORKING_DIR = "/home/jovyan"
DEFAULT_FS_GROUP = 100
PREFIX_ENV_VAR = "NB_PREFIX"
URL_SCOPE = "notebook"
SECRET_VOLUME = "secret"
INGRESS_CLASS = "tmax-cloud"
CLUSTER_ISSUER = "tmaxcloud-issuer"
CERTIFICATE_DNS_NAMES = ["tmax-cloud"]
CERTIFICATE_USAGES = ["digital signature", "key encipherment", "server auth", "client auth"]

DEFAULT_NOTEBOOK_ARGS = [
    "sh",
    "-c",
    "update-ca-certificates && jupyter lab --notebook-dir=/home/${NB_USER} --ip=0.0.0.0 --no-browser "
    "--allow-root --port=8888 --NotebookApp.token='' --NotebookApp.password='' "
    "--NotebookApp.allow_origin='*' --NotebookApp.base_url=${NB_PREFIX}",
]


class _JSONBody:
    """Response-shaped wrapper so the API client can build typed models from plain data."""

    def __init__(self, data: Any) -> None:
        self.data = json.dumps(data)


_api_client = client.ApiClient()


def url_prefix(notebook: Notebook) -> str:
    """External URL prefix the notebook server is published under."""
    return f"/{URL_SCOPE}/{notebook.namespace}/{notebook.name}"


def secret_name(notebook: Notebook) -> str:
    return f"{notebook.name}-secret"


def ingress_name(name: str, namespace: str) -> str:
    return f"{name}-{namespace}"


def ingress_host(notebook: Notebook, config: ControllerConfig) -> str:
    return f"{ingress_name(notebook.name, notebook.namespace)}.{config.custom_domain}"


def certificate_name(name: str, namespace: str) -> str:
    return f"cert-{namespace}-{name}"


def virtual_service_name(name: str, namespace: str) -> str:
    return f"notebook-{namespace}-{name}"


def generate_persistent_volume_claim(notebook: Notebook) -> client.V1PersistentVolumeClaim:
    """Create the volume claim for the first declared claim of the Notebook."""
    claim = notebook.spec.volumeClaim[0]
    spec = client.V1PersistentVolumeClaimSpec(
        access_modes=["ReadWriteMany"],
        resources=client.V1VolumeResourceRequirements(requests={"storage": claim.size}),
    )
    # No storage class means the cluster default class
    if claim.storageClass:
        spec.storage_class_name = claim.storageClass

    return client.V1PersistentVolumeClaim(
        api_version="v1",
        kind="PersistentVolumeClaim",
        metadata=client.V1ObjectMeta(
            name=claim.name,
            namespace=notebook.namespace,
            labels={"notebook": notebook.name},
        ),
        spec=spec,
    )


def set_prefix_env_var(notebook: Notebook, container: client.V1Container) -> None:
    """Inject NB_PREFIX into the container, updating an existing entry in place."""
    prefix = url_prefix(notebook)
    for env_var in container.env or []:
        if env_var.name == PREFIX_ENV_VAR:
            env_var.value = prefix
            return
    container.env = (container.env or []) + [client.V1EnvVar(name=PREFIX_ENV_VAR, value=prefix)]


def generate_gatekeeper_container(config: ControllerConfig) -> client.V1Container:
    """OIDC proxy side-car in front of the notebook server."""
    args = [
        "--client-id=notebook-gatekeeper",
        f"--client-secret={config.client_secret}",
        f"--listen=:{GATEKEEPER_PORT}",
        f"--upstream-url=http://127.0.0.1:{DEFAULT_CONTAINER_PORT}",
        f"--discovery-url={config.discovery_url}",
        "--secure-cookie=false",
        "--upstream-keepalives=false",
        "--skip-openid-provider-tls-verify=true",
        "--skip-upstream-tls-verify=true",
        "--tls-cert=/etc/secrets/tls.crt",
        "--tls-private-key=/etc/secrets/tls.key",
        "--tls-ca-certificate=/etc/secrets/ca.crt",
        "--enable-self-signed-tls=false",
        "--enable-refresh-tokens=true",
        "--enable-default-deny=true",
        "--enable-metrics=true",
        "--resources=uri=/*|roles=notebook-gatekeeper:notebook-gatekeeper-manager",
        f"--log-level={config.gatekeeper_log_level}",
    ]
    if config.encryption_key:
        args.append(f"--encryption-key={config.encryption_key}")

    return client.V1Container(
        name="gatekeeper",
        image=config.gatekeeper_image,
        args=args,
        ports=[client.V1ContainerPort(name="service", container_port=GATEKEEPER_PORT)],
        volume_mounts=[client.V1VolumeMount(name=SECRET_VOLUME, mount_path="/etc/secrets")],
    )


def generate_pod_spec(notebook: Notebook, config: ControllerConfig) -> client.V1PodSpec:
    """Build the pod spec from the Notebook template and the controller defaults."""
    pod_spec = _api_client.deserialize(_JSONBody(copy.deepcopy(notebook.spec.template.spec)), "V1PodSpec")

    container = pod_spec.containers[0]
    if not container.working_dir:
        container.working_dir = DEFAULT_WORKING_DIR
    if container.ports is None:
        container.ports = [
            client.V1ContainerPort(container_port=DEFAULT_CONTAINER_PORT, name="notebook-port", protocol="TCP")
        ]
    container.volume_mounts = (container.volume_mounts or []) + [
        client.V1VolumeMount(name=SECRET_VOLUME, mount_path="/usr/local/share/ca-certificates")
    ]
    if container.args is None:
        container.args = list(DEFAULT_NOTEBOOK_ARGS)

    pod_spec.containers.append(generate_gatekeeper_container(config))
    pod_spec.volumes = (pod_spec.volumes or []) + [
        client.V1Volume(
            name=SECRET_VOLUME,
            secret=client.V1SecretVolumeSource(secret_name=secret_name(notebook), default_mode=0o777),
        )
    ]

    set_prefix_env_var(notebook, container)

    if config.add_fsgroup and pod_spec.security_context is None:
        pod_spec.security_context = client.V1PodSecurityContext(fs_group=DEFAULT_FS_GROUP)

    return pod_spec


def generate_stateful_set(notebook: Notebook, config: ControllerConfig) -> client.V1StatefulSet:
    """Create the single-replica StatefulSet running the notebook pod."""
    replicas = 0 if STOP_ANNOTATION in notebook.metadata.annotations else 1

    # Copy all of the Notebook labels to the pod
    pod_labels = {STATEFULSET_LABEL: notebook.name, NOTEBOOK_NAME_LABEL: notebook.name}
    pod_labels.update(notebook.metadata.labels)

    template = client.V1PodTemplateSpec(
        metadata=client.V1ObjectMeta(
            annotations={"sidecar.istio.io/inject": "false"},
            labels=pod_labels,
        ),
        spec=generate_pod_spec(notebook, config),
    )

    return client.V1StatefulSet(
        api_version="apps/v1",
        kind="StatefulSet",
        metadata=client.V1ObjectMeta(name=notebook.name, namespace=notebook.namespace),
        spec=client.V1StatefulSetSpec(
            replicas=replicas,
            selector=client.V1LabelSelector(match_labels={STATEFULSET_LABEL: notebook.name}),
            service_name=notebook.name,
            template=template,
        ),
    )


def generate_service(notebook: Notebook) -> client.V1Service:
    """Create the Service in front of the gatekeeper side-car."""
    return client.V1Service(
        api_version="v1",
        kind="Service",
        metadata=client.V1ObjectMeta(
            name=notebook.name,
            namespace=notebook.namespace,
            annotations={"traefik.ingress.kubernetes.io/service.serverstransport": "insecure@file"},
        ),
        spec=client.V1ServiceSpec(
            type="ClusterIP",
            selector={STATEFULSET_LABEL: notebook.name},
            ports=[
                client.V1ServicePort(
                    # Istio style port name so it can be managed by istio rbac
                    name=f"https-{notebook.name}",
                    port=HTTPS_SERVING_PORT,
                    target_port=GATEKEEPER_PORT,
                    protocol="TCP",
                )
            ],
        ),
    )


def generate_ingress(notebook: Notebook, config: ControllerConfig) -> client.V1Ingress:
    """Create the Ingress publishing the notebook on its own host."""
    name = ingress_name(notebook.name, notebook.namespace)
    host = ingress_host(notebook, config)

    return client.V1Ingress(
        api_version="networking.k8s.io/v1",
        kind="Ingress",
        metadata=client.V1ObjectMeta(
            name=name,
            namespace=notebook.namespace,
            annotations={
                "traefik.ingress.kubernetes.io/router.entrypoints": "websecure",
                "cert-manager.io/cluster-issuer": CLUSTER_ISSUER,
            },
            labels={"ingress.tmaxcloud.org/name": name},
        ),
        spec=client.V1IngressSpec(
            ingress_class_name=INGRESS_CLASS,
            tls=[client.V1IngressTLS(hosts=[host])],
            rules=[
                client.V1IngressRule(
                    host=host,
                    http=client.V1HTTPIngressRuleValue(
                        paths=[
                            client.V1HTTPIngressPath(
                                path="/",
                                path_type="Prefix",
                                backend=client.V1IngressBackend(
                                    service=client.V1IngressServiceBackend(
                                        name=notebook.name,
                                        port=client.V1ServiceBackendPort(number=HTTPS_SERVING_PORT),
                                    )
                                ),
                            )
                        ]
                    ),
                )
            ],
        ),
    )


def generate_certificate(notebook: Notebook) -> Unstructured:
    """Create the cert-manager Certificate backing the notebook secret."""
    cert = Unstructured()
    cert.api_version = CERTIFICATE.api_version
    cert.kind = CERTIFICATE.kind
    cert.name = certificate_name(notebook.name, notebook.namespace)
    cert.namespace = notebook.namespace

    cert.set("spec.secretName", secret_name(notebook))
    cert.set("spec.isCA", False)
    cert.set("spec.dnsNames", CERTIFICATE_DNS_NAMES)
    cert.set("spec.usages", CERTIFICATE_USAGES)
    cert.set("spec.issuerRef", {"group": "cert-manager.io", "kind": "ClusterIssuer", "name": CLUSTER_ISSUER})
    return cert


def request_headers(annotations: dict[str, str]) -> dict[str, str]:
    """Headers injected by the virtual service, an unparsable annotation yields none."""
    raw = annotations.get(HEADERS_REQUEST_SET_ANNOTATION, "")
    if not raw:
        return {}
    try:
        headers = json.loads(raw)
    except ValueError:
        logger.debug(f"Ignoring malformed {HEADERS_REQUEST_SET_ANNOTATION} annotation: {raw!r}")
        return {}
    if not isinstance(headers, dict) or not all(isinstance(v, str) for v in headers.values()):
        logger.debug(f"Ignoring {HEADERS_REQUEST_SET_ANNOTATION} annotation, expected a map of strings")
        return {}
    return headers


def generate_virtual_service(notebook: Notebook, config: ControllerConfig) -> Unstructured:
    """Create the Istio VirtualService routing the URL prefix to the notebook."""
    name = notebook.name
    namespace = notebook.namespace
    annotations = notebook.metadata.annotations
    prefix = f"{url_prefix(notebook)}/"

    rewrite = annotations.get(REWRITE_URI_ANNOTATION) or prefix
    service = f"{name}.{namespace}.svc.{config.cluster_domain}"

    vsvc = Unstructured()
    vsvc.api_version = VIRTUAL_SERVICE.api_version
    vsvc.kind = VIRTUAL_SERVICE.kind
    vsvc.name = virtual_service_name(name, namespace)
    vsvc.namespace = namespace

    vsvc.set("spec.hosts", ["*"])
    vsvc.set("spec.gateways", [config.istio_gateway])
    vsvc.set(
        "spec.http",
        [
            {
                "headers": {"request": {"set": request_headers(annotations)}},
                "match": [{"uri": {"prefix": prefix}}],
                "rewrite": {"uri": rewrite},
                "route": [
                    {
                        "destination": {
                            "host": service,
                            "port": {"number": DEFAULT_SERVING_PORT},
                        }
                    }
                ],
            }
        ],
    )
    return vsvc

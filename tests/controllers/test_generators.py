"""Tests for the child resource generators."""

import json
import unittest

from notebook_controller.config import ControllerConfig
from notebook_controller.controllers.generators import (
    DEFAULT_FS_GROUP,
    DEFAULT_WORKING_DIR,
    GATEKEEPER_PORT,
    generate_certificate,
    generate_ingress,
    generate_persistent_volume_claim,
    generate_pod_spec,
    generate_service,
    generate_stateful_set,
    generate_virtual_service,
    request_headers,
)
from notebook_controller.models import HEADERS_REQUEST_SET_ANNOTATION, REWRITE_URI_ANNOTATION, STOP_ANNOTATION
from tests.fakes import make_notebook


class TestGenerateStatefulSet(unittest.TestCase):
    """Test cases for the StatefulSet and its pod spec."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.config = ControllerConfig(custom_domain="example.com")
        self.notebook = make_notebook(labels={"team": "a"})

    def test_running_notebook_has_one_replica(self):
        # Act
        stateful_set = generate_stateful_set(self.notebook, self.config)

        # Assert
        self.assertEqual(stateful_set.metadata.name, "nb1")
        self.assertEqual(stateful_set.metadata.namespace, "team-a")
        self.assertEqual(stateful_set.spec.replicas, 1)
        self.assertEqual(stateful_set.spec.selector.match_labels, {"statefulset": "nb1"})
        self.assertEqual(
            stateful_set.spec.template.metadata.labels,
            {"statefulset": "nb1", "notebook-name": "nb1", "team": "a"},
        )
        self.assertEqual(stateful_set.spec.template.metadata.annotations, {"sidecar.istio.io/inject": "false"})

    def test_stop_annotation_scales_to_zero(self):
        notebook = make_notebook(annotations={STOP_ANNOTATION: "2024-01-01T00:00:00Z"})

        stateful_set = generate_stateful_set(notebook, self.config)

        self.assertEqual(stateful_set.spec.replicas, 0)

    def test_pod_spec_defaults(self):
        # Act
        pod_spec = generate_pod_spec(self.notebook, self.config)

        # Assert
        notebook_container = pod_spec.containers[0]
        self.assertEqual(notebook_container.working_dir, DEFAULT_WORKING_DIR)
        self.assertEqual(notebook_container.ports[0].container_port, 8888)
        self.assertEqual(notebook_container.args[0], "sh")
        self.assertEqual(
            [(e.name, e.value) for e in notebook_container.env],
            [("NB_PREFIX", "/notebook/team-a/nb1")],
        )
        self.assertEqual(pod_spec.security_context.fs_group, DEFAULT_FS_GROUP)

        # Gatekeeper side-car and the secret it reads
        self.assertEqual([c.name for c in pod_spec.containers], ["nb1", "gatekeeper"])
        self.assertEqual(pod_spec.containers[1].ports[0].container_port, GATEKEEPER_PORT)
        self.assertEqual(pod_spec.volumes[-1].secret.secret_name, "nb1-secret")

    def test_pod_spec_keeps_user_values(self):
        notebook = make_notebook(
            containers=[
                {
                    "name": "nb1",
                    "image": "custom:1",
                    "workingDir": "/work",
                    "ports": [{"containerPort": 9999}],
                    "args": ["start.sh"],
                    "env": [{"name": "NB_PREFIX", "value": "stale"}, {"name": "FOO", "value": "bar"}],
                }
            ],
            securityContext={"runAsUser": 1000},
        )

        pod_spec = generate_pod_spec(notebook, self.config)

        container = pod_spec.containers[0]
        self.assertEqual(container.working_dir, "/work")
        self.assertEqual(container.ports[0].container_port, 9999)
        self.assertEqual(container.args, ["start.sh"])
        self.assertEqual(
            [(e.name, e.value) for e in container.env],
            [("NB_PREFIX", "/notebook/team-a/nb1"), ("FOO", "bar")],
        )
        self.assertIsNone(pod_spec.security_context.fs_group)
        self.assertEqual(pod_spec.security_context.run_as_user, 1000)

    def test_fsgroup_can_be_disabled(self):
        pod_spec = generate_pod_spec(self.notebook, ControllerConfig(add_fsgroup=False))

        self.assertIsNone(pod_spec.security_context)

    def test_gatekeeper_image_and_encryption_key(self):
        config = ControllerConfig(
            is_closed=True, registry_name="registry.local/", gatekeeper_version="v1.2", encryption_key="secret"
        )

        gatekeeper = generate_pod_spec(self.notebook, config).containers[1]

        self.assertEqual(gatekeeper.image, "registry.local/docker.io/tmaxcloudck/gatekeeper:v1.2")
        self.assertIn("--encryption-key=secret", gatekeeper.args)

    def test_gatekeeper_without_encryption_key(self):
        gatekeeper = generate_pod_spec(self.notebook, self.config).containers[1]

        self.assertEqual(gatekeeper.image, "docker.io/tmaxcloudck/gatekeeper:latest")
        self.assertFalse(any(arg.startswith("--encryption-key") for arg in gatekeeper.args))

    def test_generation_is_deterministic(self):
        first = generate_stateful_set(self.notebook, self.config)
        second = generate_stateful_set(self.notebook, self.config)

        self.assertEqual(first, second)

    def test_template_is_not_mutated(self):
        before = json.dumps(self.notebook.spec.template.spec, sort_keys=True)

        generate_stateful_set(self.notebook, self.config)

        self.assertEqual(json.dumps(self.notebook.spec.template.spec, sort_keys=True), before)


class TestGenerateOtherChildren(unittest.TestCase):
    """Test cases for the volume claim, service, ingress and certificate."""

    def setUp(self) -> None:
        """Set up test fixtures."""
        self.config = ControllerConfig(custom_domain="example.com", use_istio=True)
        self.notebook = make_notebook()

    def test_persistent_volume_claim(self):
        pvc = generate_persistent_volume_claim(self.notebook)

        self.assertEqual(pvc.metadata.name, "nb1-volume")
        self.assertEqual(pvc.spec.access_modes, ["ReadWriteMany"])
        self.assertEqual(pvc.spec.resources.requests, {"storage": "10Gi"})
        self.assertIsNone(pvc.spec.storage_class_name)

    def test_persistent_volume_claim_storage_class(self):
        pvc = generate_persistent_volume_claim(make_notebook(storage_class="fast"))

        self.assertEqual(pvc.spec.storage_class_name, "fast")

    def test_service(self):
        service = generate_service(self.notebook)

        self.assertEqual(service.spec.type, "ClusterIP")
        self.assertEqual(service.spec.selector, {"statefulset": "nb1"})
        self.assertEqual(service.spec.ports[0].name, "https-nb1")
        self.assertEqual(service.spec.ports[0].port, 443)
        self.assertEqual(service.spec.ports[0].target_port, GATEKEEPER_PORT)

    def test_ingress(self):
        ingress = generate_ingress(self.notebook, self.config)

        self.assertEqual(ingress.metadata.name, "nb1-team-a")
        self.assertEqual(ingress.spec.rules[0].host, "nb1-team-a.example.com")
        self.assertEqual(ingress.spec.tls[0].hosts, ["nb1-team-a.example.com"])
        backend = ingress.spec.rules[0].http.paths[0].backend.service
        self.assertEqual((backend.name, backend.port.number), ("nb1", 443))

    def test_certificate(self):
        cert = generate_certificate(self.notebook)

        self.assertEqual(cert.name, "cert-team-a-nb1")
        self.assertEqual(cert.namespace, "team-a")
        self.assertEqual(cert.get("spec.secretName"), ("nb1-secret", True))
        self.assertEqual(cert.get("spec.issuerRef.kind"), ("ClusterIssuer", True))

    def test_virtual_service_defaults(self):
        vsvc = generate_virtual_service(self.notebook, self.config)

        self.assertEqual(vsvc.name, "notebook-team-a-nb1")
        http, _ = vsvc.get("spec.http")
        self.assertEqual(http[0]["match"], [{"uri": {"prefix": "/notebook/team-a/nb1/"}}])
        self.assertEqual(http[0]["rewrite"], {"uri": "/notebook/team-a/nb1/"})
        self.assertEqual(http[0]["headers"], {"request": {"set": {}}})
        self.assertEqual(http[0]["route"][0]["destination"]["host"], "nb1.team-a.svc.cluster.local")
        self.assertEqual(vsvc.get("spec.gateways"), (["kubeflow/kubeflow-gateway"], True))

    def test_virtual_service_annotations(self):
        notebook = make_notebook(
            annotations={
                REWRITE_URI_ANNOTATION: "/",
                HEADERS_REQUEST_SET_ANNOTATION: '{"X-RStudio-Root-Path": "/notebook/team-a/nb1/"}',
            }
        )

        http, _ = generate_virtual_service(notebook, self.config).get("spec.http")

        self.assertEqual(http[0]["rewrite"], {"uri": "/"})
        self.assertEqual(http[0]["headers"]["request"]["set"], {"X-RStudio-Root-Path": "/notebook/team-a/nb1/"})


class TestRequestHeaders(unittest.TestCase):
    def test_malformed_annotation_yields_no_headers(self):
        self.assertEqual(request_headers({HEADERS_REQUEST_SET_ANNOTATION: "{not json"}), {})

    def test_non_string_values_yield_no_headers(self):
        self.assertEqual(request_headers({HEADERS_REQUEST_SET_ANNOTATION: '{"a": 1}'}), {})
        self.assertEqual(request_headers({HEADERS_REQUEST_SET_ANNOTATION: '["a"]'}), {})

    def test_missing_annotation(self):
        self.assertEqual(request_headers({}), {})


if __name__ == "__main__":
    unittest.main()

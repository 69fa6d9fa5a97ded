"""In-memory stand-ins for the Docker and Kubernetes clients."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from kubernetes import client
from kubernetes.client.rest import ApiException

from cedeploy.common.models import FileArchive
from cedeploy.core.config import CEConfiguration
from cedeploy.runtime.kubernetes import KubernetesClient

SUCCESS_BUILD = [
    {"stream": "Step 1/2 : FROM registry.access.redhat.com/jboss-eap-6/eap-openshift:6.4\n"},
    {"stream": "Step 2/2 : ADD app.war /opt/eap/standalone/deployments/\n"},
    {"stream": "Successfully built abc123\n"},
]

SUCCESS_PUSH = [
    {"status": "The push refers to repository [10.0.0.5:5000/cetestimage]"},
    {"status": "latest: digest: sha256:0123 size: 1234"},
]


class FakeDockerAPI:
    """Records build/tag/push calls and replays canned streams."""

    def __init__(self) -> None:
        self.build_chunks: List[Any] = list(SUCCESS_BUILD)
        self.push_events: List[Any] = list(SUCCESS_PUSH)
        self.build_exception: Optional[Exception] = None
        self.push_exceptions: List[Exception] = []
        self.builds: List[Dict[str, Any]] = []
        self.tags: List[Dict[str, Any]] = []
        self.pushes: List[Dict[str, Any]] = []
        self.closed = 0

    def build(self, **kwargs: Any):
        self.builds.append({**kwargs, "files": sorted(p.name for p in Path(kwargs["path"]).iterdir())})
        if self.build_exception is not None:
            raise self.build_exception
        return iter(self.build_chunks)

    def tag(self, image: str, repository: str, tag: Optional[str] = None) -> bool:
        self.tags.append({"image": image, "repository": repository, "tag": tag})
        return True

    def push(self, repository: str, **kwargs: Any):
        self.pushes.append({"repository": repository, **kwargs})
        if self.push_exceptions:
            raise self.push_exceptions.pop(0)
        return iter(self.push_events)

    def close(self) -> None:
        self.closed += 1


class FakeCoreApi:
    """Minimal CoreV1Api keeping resources in dicts."""

    def __init__(self, namespace: str = "default") -> None:
        self.namespace = namespace
        self.services: Dict[str, Any] = {
            "docker-registry": client.V1Service(
                metadata=client.V1ObjectMeta(name="docker-registry"),
                spec=client.V1ServiceSpec(cluster_ip="10.0.0.5", ports=[client.V1ServicePort(port=5000)]),
            )
        }
        self.replication_controllers: Dict[str, Dict[str, Any]] = {}
        self.pods: List[str] = []
        self.fail_create_rc = False
        self.fail_list_pods = False
        self.fail_deletes: Dict[str, int] = {}
        self.calls: List[str] = []

    def read_namespaced_service(self, name: str, namespace: str):
        self.calls.append(f"read_service:{name}")
        if name not in self.services:
            raise ApiException(status=404, reason="Not Found")
        return self.services[name]

    def create_namespaced_service(self, namespace: str, body: Dict[str, Any]):
        name = body["metadata"]["name"]
        self.calls.append(f"create_service:{name}")
        self.services[name] = body
        return client.V1Service(metadata=client.V1ObjectMeta(name=name))

    def delete_namespaced_service(self, name: str, namespace: str):
        return self._delete("service", name, self.services)

    def create_namespaced_replication_controller(self, namespace: str, body: Dict[str, Any]):
        name = body["metadata"]["name"]
        self.calls.append(f"create_rc:{name}")
        if self.fail_create_rc:
            raise ApiException(status=500, reason="Internal Server Error")
        self.replication_controllers[name] = body
        return client.V1ReplicationController(metadata=client.V1ObjectMeta(name=name))

    def delete_namespaced_replication_controller(self, name: str, namespace: str):
        return self._delete("rc", name, self.replication_controllers)

    def list_namespaced_pod(self, namespace: str):
        self.calls.append("list_pods")
        if self.fail_list_pods:
            raise ApiException(status=503, reason="Service Unavailable")
        return client.V1PodList(items=[client.V1Pod(metadata=client.V1ObjectMeta(name=name)) for name in self.pods])

    def delete_namespaced_pod(self, name: str, namespace: str):
        self.calls.append(f"delete_pod:{name}")
        if self.fail_deletes.get(name):
            raise ApiException(status=500, reason="Internal Server Error")
        if name not in self.pods:
            raise ApiException(status=404, reason="Not Found")
        self.pods.remove(name)
        return client.V1Status(status="Success")

    def _delete(self, kind: str, name: str, store: Dict[str, Any]):
        self.calls.append(f"delete_{kind}:{name}")
        if self.fail_deletes.get(name):
            raise ApiException(status=500, reason="Internal Server Error")
        if name not in store:
            raise ApiException(status=404, reason="Not Found")
        del store[name]
        return client.V1Status(status="Success")


@pytest.fixture
def configuration(tmp_path: Path) -> CEConfiguration:
    build_root = tmp_path / "builds"
    build_root.mkdir()
    return CEConfiguration(
        kubernetes_master="https://master.example.com:8443",
        docker_host="tcp://docker.example.com:2375",
        kubeconfig=None,
        namespace="default",
        username="tester",
        password="secret",
        email="tester@example.com",
        server_address="10.0.0.5:5000",
        image_name="cetestimage",
        tmp_dir_base=str(build_root),
        properties={},
    )


@pytest.fixture
def docker_api() -> FakeDockerAPI:
    return FakeDockerAPI()


@pytest.fixture
def core_api() -> FakeCoreApi:
    return FakeCoreApi()


@pytest.fixture
def ce_client(configuration: CEConfiguration, core_api: FakeCoreApi, docker_api: FakeDockerAPI):
    with KubernetesClient(configuration, core_api=core_api, docker_api=docker_api) as ce_client:
        yield ce_client


@pytest.fixture
def archive(tmp_path: Path) -> FileArchive:
    war = tmp_path / "app.war"
    war.write_bytes(b"PK\x03\x04fake-war")
    return FileArchive.of(war)

"""Unit tests for image build output parsing, registry lookup and push."""

from __future__ import annotations

import pytest
import requests
from docker.errors import DockerException

from cedeploy.common.errors import BuildError, PushError, ResourceError
from cedeploy.runtime.docker import compose_image_reference, parse_build_output

TEMPLATE = b"FROM ${from.name}\nADD ${deployment.name} ${deployment.dir}\n"
PROPS = {"from.name": "eap:6.4", "deployment.dir": "/opt/eap/standalone/deployments/"}


class FakeResponse:
    def __init__(self, status_code: int, payload: dict) -> None:
        self.status_code = status_code
        self._payload = payload

    def json(self) -> dict:
        return self._payload


def test_parse_build_output_extracts_image_id() -> None:
    assert parse_build_output("Step 1/1 : FROM x\nSuccessfully built abc123\n") == "abc123"


def test_parse_build_output_without_marker_fails() -> None:
    with pytest.raises(BuildError) as excinfo:
        parse_build_output("Step 1/1 : FROM x\n")

    assert "Step 1/1" in excinfo.value.output


def test_compose_image_reference() -> None:
    assert compose_image_reference("10.0.0.5", 5000, "myimage") == "10.0.0.5:5000/myimage"


def test_push_image_renders_builds_and_pushes(ce_client, docker_api, archive) -> None:
    reference = ce_client.push_image(TEMPLATE, archive, PROPS)

    assert reference == "10.0.0.5:5000/cetestimage"
    dockerfile = (ce_client.build_context.path / "Dockerfile").read_text()
    assert dockerfile == "FROM eap:6.4\nADD app.war /opt/eap/standalone/deployments/\n"
    assert (ce_client.build_context.path / "app.war").read_bytes() == archive.source.read_bytes()

    assert docker_api.builds[0]["tag"] == "cetestimage"
    assert docker_api.builds[0]["files"] == ["Dockerfile", "app.war"]
    assert docker_api.tags == [{"image": "abc123", "repository": reference, "tag": None}]
    push = docker_api.pushes[0]
    assert push["repository"] == reference
    assert push["auth_config"]["username"] == "tester"


def test_registry_service_can_be_overridden(ce_client, core_api, archive) -> None:
    core_api.services["my-registry"] = core_api.services["docker-registry"]

    ce_client.push_image(TEMPLATE, archive, {**PROPS, "docker.service.id": "my-registry"})

    assert "read_service:my-registry" in core_api.calls


def test_repeated_builds_reuse_the_build_context(ce_client, docker_api, archive) -> None:
    ce_client.push_image(TEMPLATE, archive, PROPS)
    ce_client.push_image(TEMPLATE, archive, PROPS)

    assert docker_api.builds[0]["path"] == docker_api.builds[1]["path"]


def test_missing_success_marker_is_build_error(ce_client, docker_api, archive) -> None:
    docker_api.build_chunks = [{"stream": "Step 1/2 : FROM x\n"}]

    with pytest.raises(BuildError):
        ce_client.push_image(TEMPLATE, archive, PROPS)
    assert docker_api.pushes == []


def test_error_chunk_is_build_error(ce_client, docker_api, archive) -> None:
    docker_api.build_chunks = [{"stream": "Step 1/2\n"}, {"error": "manifest unknown"}]

    with pytest.raises(BuildError, match="manifest unknown"):
        ce_client.push_image(TEMPLATE, archive, PROPS)


def test_docker_client_failure_is_build_error(ce_client, docker_api, archive) -> None:
    docker_api.build_exception = DockerException("daemon unreachable")

    with pytest.raises(BuildError, match="daemon unreachable"):
        ce_client.push_image(TEMPLATE, archive, PROPS)


def test_missing_registry_service_is_resource_error(ce_client, core_api, archive) -> None:
    del core_api.services["docker-registry"]

    with pytest.raises(ResourceError):
        ce_client.push_image(TEMPLATE, archive, PROPS)


def test_push_without_events_fails(ce_client, docker_api, archive) -> None:
    docker_api.push_events = []

    with pytest.raises(PushError, match="no status events"):
        ce_client.push_image(TEMPLATE, archive, PROPS)


def test_push_error_event_fails(ce_client, docker_api, archive) -> None:
    docker_api.push_events = [{"status": "Preparing"}, {"error": "denied: requested access is denied"}]

    with pytest.raises(PushError, match="denied"):
        ce_client.push_image(TEMPLATE, archive, PROPS)


def test_retryable_push_failure_is_retried(configuration, core_api, docker_api, archive, monkeypatch) -> None:
    from cedeploy.runtime.kubernetes import KubernetesClient

    monkeypatch.setattr("cedeploy.runtime.docker.time.sleep", lambda seconds: None)
    docker_api.push_exceptions = [DockerException("connection refused")]
    config = configuration.model_copy(update={"push_attempts": 2})

    with KubernetesClient(config, core_api=core_api, docker_api=docker_api) as ce_client:
        reference = ce_client.push_image(TEMPLATE, archive, PROPS)

    assert reference == "10.0.0.5:5000/cetestimage"
    assert len(docker_api.pushes) == 2


def test_non_retryable_push_failure_is_not_retried(configuration, core_api, docker_api, archive) -> None:
    from cedeploy.runtime.kubernetes import KubernetesClient

    docker_api.push_exceptions = [DockerException("unauthorized")]
    config = configuration.model_copy(update={"push_attempts": 3})

    with KubernetesClient(config, core_api=core_api, docker_api=docker_api) as ce_client:
        with pytest.raises(PushError):
            ce_client.push_image(TEMPLATE, archive, PROPS)

    assert len(docker_api.pushes) == 1


def test_registry_verification(ce_client, monkeypatch) -> None:
    urls = []

    def fake_get(url, timeout):
        urls.append(url)
        return FakeResponse(200, {"tags": ["latest"]})

    monkeypatch.setattr(requests, "get", fake_get)

    ce_client.image_builder.verify_in_registry("10.0.0.5:5000/cetestimage")

    assert urls == ["http://10.0.0.5:5000/v2/cetestimage/tags/list"]


def test_registry_verification_missing_tag(ce_client, monkeypatch) -> None:
    monkeypatch.setattr(requests, "get", lambda url, timeout: FakeResponse(200, {"tags": ["other"]}))

    with pytest.raises(PushError, match="not found"):
        ce_client.image_builder.verify_in_registry("10.0.0.5:5000/cetestimage")


def test_builds_only_send_the_current_archive(ce_client, docker_api, archive, tmp_path) -> None:
    from cedeploy.common.models import FileArchive

    other = tmp_path / "other.war"
    other.write_bytes(b"PK\x03\x04other")
    ce_client.push_image(TEMPLATE, archive, PROPS)
    ce_client.build_context.write_file("k8s.yaml", "kind: ReplicationController\n")

    ce_client.push_image(TEMPLATE, FileArchive.of(other), PROPS)

    assert docker_api.builds[0]["files"] == ["Dockerfile", "app.war"]
    assert docker_api.builds[1]["files"] == ["Dockerfile", "other.war"]


def test_push_image_is_build_image_then_push_built(ce_client, docker_api, archive) -> None:
    builder = ce_client.image_builder
    props = builder.prepare_properties(archive, PROPS)

    built = builder.build_image(TEMPLATE, archive, props)

    assert built.image_id == "abc123"
    assert docker_api.pushes == []

    reference = builder.push_built(built, props)

    assert reference == ce_client.push_image(TEMPLATE, archive, PROPS)
    assert [push["repository"] for push in docker_api.pushes] == [reference, reference]

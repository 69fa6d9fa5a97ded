"""Kubernetes resource descriptors and the pure constructors that build them.

Descriptors are frozen dataclasses; ``to_dict()`` renders the v1 API body
submitted through the Kubernetes client.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import yaml

PRE_STOP_HOOK_TYPES = ("http", "exec")


def _check_port(value: int, label: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{label} must be an int, got {value!r}")
    if not 0 < value < 65536:
        raise ValueError(f"{label} out of range: {value}")
    return value


def _check_name(value: str, label: str) -> str:
    if not value or not isinstance(value, str):
        raise ValueError(f"{label} must be a non-empty string")
    return value


@dataclass(frozen=True)
class EnvVar:
    name: str
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class ContainerPort:
    name: str
    container_port: int
    protocol: str = "TCP"

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "containerPort": self.container_port, "protocol": self.protocol}


@dataclass(frozen=True)
class VolumeMount:
    name: str
    mount_path: str
    read_only: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "mountPath": self.mount_path, "readOnly": self.read_only}


@dataclass(frozen=True)
class PreStopHook:
    """Lifecycle hook run by the kubelet before the container is stopped."""

    hook_type: str
    path: str
    port: Union[int, str] = "http"

    def to_dict(self) -> Dict[str, Any]:
        if self.hook_type == "exec":
            return {"exec": {"command": [self.path]}}
        return {"httpGet": {"path": self.path, "port": self.port}}


@dataclass(frozen=True)
class Container:
    image: str
    name: str
    env: Tuple[EnvVar, ...] = ()
    ports: Tuple[ContainerPort, ...] = ()
    volume_mounts: Tuple[VolumeMount, ...] = ()
    pre_stop: Optional[PreStopHook] = None

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "name": self.name,
            "image": self.image,
            "env": [env.to_dict() for env in self.env],
            "ports": [port.to_dict() for port in self.ports],
            "volumeMounts": [volume.to_dict() for volume in self.volume_mounts],
        }
        if self.pre_stop is not None:
            body["lifecycle"] = {"preStop": self.pre_stop.to_dict()}
        return body


@dataclass(frozen=True)
class ContainerManifest:
    id: str
    version: str
    containers: Tuple[Container, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"containers": [container.to_dict() for container in self.containers]}


@dataclass(frozen=True)
class PodState:
    manifest: ContainerManifest

    def to_dict(self) -> Dict[str, Any]:
        return self.manifest.to_dict()


@dataclass(frozen=True)
class PodTemplate:
    labels: Mapping[str, str]
    desired_state: PodState

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": {"name": self.desired_state.manifest.id, "labels": dict(self.labels)},
            "spec": self.desired_state.to_dict(),
        }


@dataclass(frozen=True)
class ReplicationControllerState:
    replicas: int
    replica_selector: Mapping[str, str]
    pod_template: PodTemplate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "replicas": self.replicas,
            "selector": dict(self.replica_selector),
            "template": self.pod_template.to_dict(),
        }


@dataclass(frozen=True)
class ReplicationController:
    id: str
    api_version: str
    labels: Mapping[str, str]
    desired_state: ReplicationControllerState
    kind: str = field(default="ReplicationController", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": {"name": self.id, "labels": dict(self.labels)},
            "spec": self.desired_state.to_dict(),
        }


@dataclass(frozen=True)
class Service:
    id: str
    api_version: str
    port: int
    container_port: int
    selector: Mapping[str, str]
    kind: str = field(default="Service", init=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": {"name": self.id},
            "spec": {
                "ports": [{"port": self.port, "targetPort": self.container_port}],
                "selector": dict(self.selector),
            },
        }


def create_pre_stop_hook(hook_type: str, path: str) -> PreStopHook:
    if hook_type not in PRE_STOP_HOOK_TYPES:
        raise ValueError(f"Unknown pre-stop hook type: {hook_type} (expected one of {PRE_STOP_HOOK_TYPES})")
    return PreStopHook(hook_type=hook_type, path=_check_name(path, "Pre-stop path"))


def create_container(
    image: str,
    name: str,
    env_vars: Sequence[EnvVar] = (),
    ports: Sequence[ContainerPort] = (),
    volumes: Sequence[VolumeMount] = (),
    pre_stop: Optional[PreStopHook] = None,
) -> Container:
    for port in ports:
        _check_port(port.container_port, f"Container port {port.name}")
    return Container(
        image=_check_name(image, "Image"),
        name=_check_name(name, "Container name"),
        env=tuple(env_vars),
        ports=tuple(ports),
        volume_mounts=tuple(volumes),
        pre_stop=pre_stop,
    )


def create_container_manifest(id: str, api_version: str, containers: Sequence[Container]) -> ContainerManifest:
    if not containers:
        raise ValueError("A container manifest needs at least one container")
    return ContainerManifest(id=_check_name(id, "Manifest id"), version=api_version, containers=tuple(containers))


def create_pod_state(manifest: ContainerManifest) -> PodState:
    return PodState(manifest=manifest)


def create_pod_template(labels: Mapping[str, str], pod_state: PodState) -> PodTemplate:
    return PodTemplate(labels=dict(labels), desired_state=pod_state)


def create_replication_controller_state(
    replicas: int,
    selector: Mapping[str, str],
    pod_template: PodTemplate,
) -> ReplicationControllerState:
    if isinstance(replicas, bool) or not isinstance(replicas, int) or replicas <= 0:
        raise ValueError(f"Non-positive replicas size: {replicas}")
    if not selector:
        raise ValueError("Replica selector must not be empty")
    return ReplicationControllerState(replicas=replicas, replica_selector=dict(selector), pod_template=pod_template)


def create_replication_controller(
    id: str,
    api_version: str,
    labels: Mapping[str, str],
    desired_state: ReplicationControllerState,
) -> ReplicationController:
    return ReplicationController(
        id=_check_name(id, "Replication controller id"),
        api_version=api_version,
        labels=dict(labels),
        desired_state=desired_state,
    )


def create_service(
    id: str,
    api_version: str,
    port: int,
    container_port: int,
    selector: Mapping[str, str],
) -> Service:
    return Service(
        id=_check_name(id, "Service id"),
        api_version=api_version,
        port=_check_port(port, "Service port"),
        container_port=_check_port(container_port, "Container port"),
        selector=dict(selector),
    )


def dump_resources(resources: Sequence[Union[ReplicationController, Service]]) -> str:
    """Render descriptors as a multi-document YAML manifest."""
    docs: List[Dict[str, Any]] = [resource.to_dict() for resource in resources]
    return yaml.safe_dump_all(docs, sort_keys=False)

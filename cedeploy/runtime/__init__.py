"""Runtime helpers for building images and deploying to Kubernetes."""

from .docker import ImageBuilder, compose_image_reference, parse_build_output
from .kubernetes import KubernetesClient
from .cleanup import CleanupManager, CleanupOutcome, CleanupReport
from .resources import (
    Container,
    ContainerManifest,
    ContainerPort,
    EnvVar,
    PodState,
    PodTemplate,
    PreStopHook,
    ReplicationController,
    ReplicationControllerState,
    Service,
    VolumeMount,
)

__all__ = [
    "ImageBuilder",
    "compose_image_reference",
    "parse_build_output",
    "KubernetesClient",
    "CleanupManager",
    "CleanupOutcome",
    "CleanupReport",
    "Container",
    "ContainerManifest",
    "ContainerPort",
    "EnvVar",
    "PodState",
    "PodTemplate",
    "PreStopHook",
    "ReplicationController",
    "ReplicationControllerState",
    "Service",
    "VolumeMount",
]

"""Test-host facing containers and their deployment lifecycle."""

from .base import AbstractCEContainer, DeployableContainer
from .lifecycle import DeploymentLifecycle, DeploymentState
from .metadata import TestClassMetadata, parse_target_index, resolve_replicas
from .protocol import HTTPContext, ProtocolDescription, ProtocolMetaData
from .wildfly import WildFlyCEContainer

__all__ = [
    "AbstractCEContainer",
    "DeployableContainer",
    "DeploymentLifecycle",
    "DeploymentState",
    "TestClassMetadata",
    "parse_target_index",
    "resolve_replicas",
    "HTTPContext",
    "ProtocolDescription",
    "ProtocolMetaData",
    "WildFlyCEContainer",
]

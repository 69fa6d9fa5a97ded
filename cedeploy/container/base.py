"""Container contract consumed by the test host and its shared CE implementation."""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from importlib import resources
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, runtime_checkable
from urllib.parse import urlparse

from ..common.errors import ConfigurationError
from ..common.models import Archive
from ..core.config import CEConfiguration
from ..runtime.cleanup import CleanupManager, CleanupReport
from ..runtime.kubernetes import KubernetesClient, create_core_api
from ..runtime.resources import (
    ContainerPort,
    EnvVar,
    create_container,
    create_container_manifest,
    create_pod_state,
    create_pod_template,
    create_pre_stop_hook,
    create_replication_controller,
    create_replication_controller_state,
    dump_resources,
)
from .lifecycle import DeploymentLifecycle, DeploymentState
from .metadata import TestClassMetadata, resolve_replicas
from .protocol import HTTPContext, ProtocolDescription, ProtocolMetaData

ClientFactory = Callable[[CEConfiguration], KubernetesClient]
CoreApiFactory = Callable[[CEConfiguration], Any]


def load_default_template() -> bytes:
    """Dockerfile template shipped with the package."""
    return resources.files("cedeploy.templates").joinpath("Dockerfile").read_bytes()


@runtime_checkable
class DeployableContainer(Protocol):
    """Capabilities the test host invokes on a container."""

    def get_default_protocol(self) -> ProtocolDescription:
        ...

    def deploy(self, archive: Archive) -> ProtocolMetaData:
        ...

    def undeploy(self, archive: Archive) -> None:
        ...


class AbstractCEContainer(ABC):
    """
    Deploys an archive as a replication controller built from a fresh image.

    Subclasses name the base image, the deployment directory, the exposed
    ports and the resource prefix; this class runs the lifecycle:

        build image -> push -> clean previous resources -> create RC -> metadata
    """

    #: Prefix of the replication controller and its pods.
    resource_prefix: str = "cerc"
    #: Value of the `name` label selecting the pods.
    pod_label: str = "ce"
    #: Port the test client talks HTTP to.
    http_port: int = 8080

    def __init__(
        self,
        configuration: Optional[CEConfiguration] = None,
        *,
        metadata: Optional[TestClassMetadata] = None,
        client_factory: Optional[ClientFactory] = None,
        core_api_factory: Optional[CoreApiFactory] = None,
        template: Optional[bytes] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.configuration = configuration
        self.metadata = metadata or TestClassMetadata()
        self.client_factory = client_factory or KubernetesClient
        self.core_api_factory = core_api_factory or create_core_api
        self.template = template
        self.logger = logger or logging.getLogger(__name__)
        self.lifecycle = DeploymentLifecycle(logger=self.logger)
        self._client: Optional[KubernetesClient] = None

    # Host lifecycle

    def setup(self, configuration: CEConfiguration) -> None:
        configuration.validate_endpoints()
        self.configuration = configuration

    def start(self) -> None:
        self.logger.info("Starting %s", type(self).__name__)

    def stop(self) -> None:
        self.close_client()

    def set_test_metadata(self, metadata: TestClassMetadata) -> None:
        self.metadata = metadata

    @property
    def client(self) -> KubernetesClient:
        if self._client is None or self._client.closed:
            if self.configuration is None:
                raise ConfigurationError("Container used before setup(): no configuration")
            self._client = self.client_factory(self.configuration)
        return self._client

    def close_client(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    # Deployment

    @abstractmethod
    def get_default_protocol(self) -> ProtocolDescription:
        ...

    @abstractmethod
    def get_from_image(self) -> str:
        ...

    @abstractmethod
    def get_deployment_dir(self) -> str:
        ...

    @abstractmethod
    def get_ports(self) -> List[ContainerPort]:
        ...

    def deploy(self, archive: Archive) -> ProtocolMetaData:
        """
        Deploy the archive and describe how to reach it.

        Raises:
            DeploymentError: Naming the stage (configuration, build, push or
                resources) that failed; the build context is removed first
        """
        self.lifecycle = DeploymentLifecycle(logger=self.logger)
        try:
            with self.lifecycle.stage("configuration"):
                if self.configuration is None:
                    raise ConfigurationError("Container used before setup(): no configuration")
                self.configuration.validate_endpoints()
                replicas = resolve_replicas(self.metadata.replicas, self.metadata.target_indices)

            image_name = self.build_image(archive, self.get_from_image(), self.get_deployment_dir())

            with self.lifecycle.stage("cleanup", DeploymentState.RESOURCES_CLEANED):
                report = self.cleanup()
                if not report.success:
                    self.logger.warning(
                        "Pre-deployment cleanup left %d resource(s): %s",
                        len(report.failures),
                        ", ".join(failure.name for failure in report.failures),
                    )

            with self.lifecycle.stage("resources", DeploymentState.RESOURCES_CREATED):
                rc = self.deploy_replication_controller(image_name, self.get_ports(), replicas)
                self.logger.info("Deployed replication controller [%s]: %s", replicas, rc)

            with self.lifecycle.stage("protocol", DeploymentState.DEPLOYED):
                return self.get_protocol_meta_data(archive)
        except Exception:
            self.close_client()
            raise

    def build_image(self, archive: Archive, from_image: str, deployment_dir: str) -> str:
        """Render, build and push the image; returns the pushed reference."""
        props: Dict[str, str] = {"from.name": from_image, "deployment.dir": deployment_dir}

        with self.lifecycle.stage("build", DeploymentState.IMAGE_BUILT):
            builder = self.client.image_builder
            props = builder.prepare_properties(archive, props)
            built = builder.build_image(self.template or load_default_template(), archive, props)

        with self.lifecycle.stage("push", DeploymentState.IMAGE_PUSHED):
            return builder.push_built(built, props)

    def deploy_replication_controller(self, image_name: str, ports: Sequence[ContainerPort], replicas: int) -> str:
        configuration = self.configuration
        labels = {"name": self.pod_label}

        pre_stop = None
        if configuration.pre_stop_path and not configuration.ignore_pre_stop:
            pre_stop = create_pre_stop_hook(configuration.pre_stop_hook_type, configuration.pre_stop_path)

        env_vars = [EnvVar(name=key, value=value) for key, value in sorted(configuration.env_vars.items())]
        container = create_container(
            image_name,
            f"{self.pod_label}-container",
            env_vars,
            ports,
            [],
            pre_stop=pre_stop,
        )
        manifest = create_container_manifest(f"{self.pod_label}-pod", configuration.api_version, [container])
        pod_template = create_pod_template(labels, create_pod_state(manifest))
        rc_state = create_replication_controller_state(replicas, labels, pod_template)
        rc = create_replication_controller(self.resource_prefix, configuration.api_version, labels, rc_state)

        self.client.build_context.write_file("k8s.yaml", dump_resources([rc]))
        return self.client.deploy_replication_controller(rc)

    def cleanup(self) -> CleanupReport:
        """Remove the resources of a previous deployment; deletion errors are only recorded."""
        manager = self._cleanup_manager()
        report = manager.clean_replication_controllers(self.resource_prefix)
        return report.extend(manager.clean_pods(self.resource_prefix))

    def _cleanup_manager(self) -> CleanupManager:
        # An open client is reused; otherwise only the Kubernetes API is needed.
        if self._client is not None and not self._client.closed:
            return self._client.cleanup_manager
        if self.configuration is None:
            raise ConfigurationError("Container used before setup(): no configuration")
        core_api = self.core_api_factory(self.configuration)
        return CleanupManager(core_api, self.configuration.namespace, logger=self.logger)

    def undeploy(self, archive: Archive) -> None:
        """Best-effort teardown: failures are logged, never raised."""
        self.logger.info("Undeploying %s", archive.name)
        try:
            report = self.cleanup()
        except Exception as exc:
            self.logger.warning("Undeploy of %s could not reach the cluster: %s", archive.name, exc)
        else:
            if not report.success:
                self.logger.warning("Undeploy left %d resource(s) behind", len(report.failures))
        finally:
            self.close_client()

    def get_protocol_meta_data(self, archive: Archive) -> ProtocolMetaData:
        master = urlparse(self.configuration.kubernetes_master or "")
        host = master.hostname or self.configuration.kubernetes_master
        context_root = "/" + archive.name.rsplit(".", 1)[0]
        context = HTTPContext(name=self.resource_prefix, host=host, port=self.http_port, context_root=context_root)
        return ProtocolMetaData(protocol=self.get_default_protocol(), contexts=(context,))

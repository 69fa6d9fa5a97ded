"""Kubernetes client wrapper owning the build context and the Docker handle."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Union

import docker
from kubernetes import client, config as kube_config
from kubernetes.client.rest import ApiException

from cedeploy.common.errors import ResourceError
from cedeploy.common.models import Archive
from cedeploy.core.build_context import BuildContext
from cedeploy.core.config import CEConfiguration

from .cleanup import CleanupManager, CleanupReport
from .docker import ImageBuilder
from .resources import ReplicationController, Service, create_service


def create_core_api(configuration: CEConfiguration) -> client.CoreV1Api:
    """
    Build a CoreV1Api for the configured master.

    A kubeconfig, when set, supplies credentials; the master URL always wins
    as the API host.
    """
    kube_configuration = client.Configuration()
    if configuration.kubeconfig:
        kube_config.load_kube_config(
            config_file=configuration.kubeconfig,
            client_configuration=kube_configuration,
        )
    if configuration.kubernetes_master:
        kube_configuration.host = configuration.kubernetes_master
    return client.CoreV1Api(client.ApiClient(kube_configuration))


def create_docker_api(configuration: CEConfiguration) -> docker.APIClient:
    return docker.APIClient(base_url=configuration.docker_host)


class KubernetesClient:
    """
    Deployment-scoped access to Kubernetes and Docker.

    One instance owns exactly one build context directory, created here and
    removed by close(). Use it as a context manager:

        with KubernetesClient(configuration) as ce_client:
            image = ce_client.push_image(template, archive, {})
    """

    def __init__(
        self,
        configuration: CEConfiguration,
        *,
        core_api: Optional[Any] = None,
        docker_api: Optional[Any] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        configuration.validate_endpoints()
        self.configuration = configuration
        self.namespace = configuration.namespace
        self.logger = logger or logging.getLogger(__name__)
        self.core_api = core_api if core_api is not None else create_core_api(configuration)
        self.docker_api = docker_api if docker_api is not None else create_docker_api(configuration)
        self.build_context = BuildContext(configuration.tmp_dir_base, logger=self.logger)
        self.cleanup_manager = CleanupManager(self.core_api, self.namespace, logger=self.logger)
        self.image_builder = ImageBuilder(
            docker_api=self.docker_api,
            build_context=self.build_context,
            config=configuration,
            service_reader=self.get_service,
            logger=self.logger,
        )

    def __enter__(self) -> "KubernetesClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def closed(self) -> bool:
        return self.build_context.closed

    def push_image(
        self,
        template: Union[bytes, str],
        archive: Archive,
        properties: Optional[Mapping[str, str]] = None,
    ) -> str:
        return self.image_builder.push_image(template, archive, properties)

    def get_service(self, service_id: str):
        return self.core_api.read_namespaced_service(name=service_id, namespace=self.namespace)

    def deploy_service(
        self,
        service_id: str,
        port: int,
        container_port: int,
        selector: Dict[str, str],
        api_version: Optional[str] = None,
    ) -> str:
        service = create_service(
            service_id,
            api_version or self.configuration.api_version,
            port,
            container_port,
            selector,
        )
        return self.submit_service(service)

    def submit_service(self, service: Service) -> str:
        try:
            created = self.core_api.create_namespaced_service(namespace=self.namespace, body=service.to_dict())
        except ApiException as exc:
            raise ResourceError(f"Cannot create service [{service.id}]: {exc.reason or exc}") from exc
        self.logger.info("Created service [%s] in namespace %s", service.id, self.namespace)
        return self._created_name(created, service.id)

    def deploy_replication_controller(self, rc: ReplicationController) -> str:
        try:
            created = self.core_api.create_namespaced_replication_controller(
                namespace=self.namespace,
                body=rc.to_dict(),
            )
        except ApiException as exc:
            raise ResourceError(f"Cannot create replication controller [{rc.id}]: {exc.reason or exc}") from exc
        self.logger.info("Created replication controller [%s] in namespace %s", rc.id, self.namespace)
        return self._created_name(created, rc.id)

    def clean_services(self, *ids: str) -> CleanupReport:
        return self.cleanup_manager.clean_services(*ids)

    def clean_replication_controllers(self, *ids: str) -> CleanupReport:
        return self.cleanup_manager.clean_replication_controllers(*ids)

    def clean_pods(self, *prefixes: str) -> CleanupReport:
        return self.cleanup_manager.clean_pods(*prefixes)

    def close(self) -> None:
        """Remove the build context; safe to call more than once."""
        self.build_context.close()
        close_docker = getattr(self.docker_api, "close", None)
        if callable(close_docker):
            close_docker()

    @staticmethod
    def _created_name(created: Any, default: str) -> str:
        metadata = getattr(created, "metadata", None)
        return getattr(metadata, "name", None) or default

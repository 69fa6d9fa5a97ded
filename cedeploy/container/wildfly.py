"""WildFly / JBoss EAP container for the CE environment."""
from typing import List

from ..runtime.resources import ContainerPort
from .base import AbstractCEContainer
from .protocol import CE_SERVLET_PROTOCOL, ProtocolDescription

EAP_IMAGE = "registry.access.redhat.com/jboss-eap-6/eap-openshift:6.4"
EAP_DEPLOYMENTS_DIR = "/opt/eap/standalone/deployments/"


class WildFlyCEContainer(AbstractCEContainer):
    """Deploys archives into the EAP OpenShift image."""

    resource_prefix = "eaprc"
    pod_label = "eap"
    http_port = 8080
    https_port = 8443

    def get_default_protocol(self) -> ProtocolDescription:
        return ProtocolDescription(CE_SERVLET_PROTOCOL)

    def get_from_image(self) -> str:
        return self.configuration.from_image or EAP_IMAGE

    def get_deployment_dir(self) -> str:
        return self.configuration.deployment_dir or EAP_DEPLOYMENTS_DIR

    def get_ports(self) -> List[ContainerPort]:
        return [
            ContainerPort(name="http", container_port=self.http_port),
            ContainerPort(name="https", container_port=self.https_port),
            # DMR / management
            ContainerPort(name="mgmt", container_port=self.configuration.mgmt_port),
        ]

import os
import tempfile
from typing import Optional, Dict, Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from ..common.errors import ConfigurationError


def _parse_properties(raw: Optional[str]) -> Dict[str, str]:
    """Parse `k=v,k2=v2` into a dict; blank entries are skipped."""
    properties: Dict[str, str] = {}
    if not raw:
        return properties
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if "=" not in entry:
            raise ConfigurationError(f"Invalid property entry (expected key=value): {entry}")
        key, value = entry.split("=", 1)
        properties[key.strip()] = value.strip()
    return properties


class CEConfiguration(BaseModel):
    """Connection and container settings for a CE deployment."""

    model_config = ConfigDict(frozen=True)

    # Endpoints
    kubernetes_master: Optional[str] = Field(default_factory=lambda: os.environ.get('KUBERNETES_MASTER'))
    docker_host: Optional[str] = Field(default_factory=lambda: os.environ.get('DOCKER_HOST'))
    kubeconfig: Optional[str] = Field(default_factory=lambda: os.environ.get('KUBECONFIG'))
    namespace: str = Field(default_factory=lambda: os.environ.get('KUBERNETES_NAMESPACE', 'default'))

    # Registry credentials
    username: Optional[str] = Field(default_factory=lambda: os.environ.get('DOCKER_REGISTRY_USERNAME'))
    password: Optional[str] = Field(default_factory=lambda: os.environ.get('DOCKER_REGISTRY_PASSWORD'))
    email: Optional[str] = Field(default_factory=lambda: os.environ.get('DOCKER_REGISTRY_EMAIL'))
    server_address: Optional[str] = Field(default_factory=lambda: os.environ.get('DOCKER_REGISTRY_SERVER'))

    # Image settings
    image_name: str = Field(default_factory=lambda: os.environ.get('CE_IMAGE_NAME', 'cetestimage'))
    api_version: str = "v1"
    from_image: Optional[str] = Field(default=None, description="Base image; containers supply their own default.")
    deployment_dir: Optional[str] = Field(default=None, description="Directory inside the image the archive is added to.")
    verify_push: bool = Field(default=False, description="Check the registry tag list after pushing.")
    push_attempts: int = Field(default=1, ge=1, description="Total push attempts, including the first.")

    # Container settings
    mgmt_port: int = Field(default=9990, gt=0, lt=65536)
    pre_stop_hook_type: str = Field(default="http", description="'http' or 'exec'.")
    pre_stop_path: Optional[str] = None
    ignore_pre_stop: bool = False
    env_vars: Dict[str, str] = Field(default_factory=dict)

    # Directory settings
    tmp_dir_base: str = Field(default_factory=lambda: os.environ.get('CE_TMP_DIR', tempfile.gettempdir()))

    # Extra template properties
    properties: Dict[str, str] = Field(default_factory=lambda: _parse_properties(os.environ.get('CE_PROPERTIES')))

    @classmethod
    def from_env(cls, **overrides: Any) -> "CEConfiguration":
        """Load `.env` into the environment, then build the configuration."""
        load_dotenv()
        return cls(**overrides)

    def validate_endpoints(self) -> None:
        """
        Fail fast when an endpoint required for deployment is missing.

        Raises:
            ConfigurationError: If the Kubernetes master or Docker host is unset
        """
        if not self.kubernetes_master:
            raise ConfigurationError("Null Kubernetes master!")
        if not self.docker_host:
            raise ConfigurationError("Null Docker host!")

    def get_auth_config(self) -> Optional[Dict[str, str]]:
        """Registry credentials in the shape expected by the Docker SDK, or None."""
        auth = {
            "username": self.username,
            "password": self.password,
            "email": self.email,
            "serveraddress": self.server_address,
        }
        auth = {key: value for key, value in auth.items() if value}
        return auth or None

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return self.model_dump()

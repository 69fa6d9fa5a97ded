"""Exception hierarchy shared by the build, push, resource and lifecycle layers."""
from __future__ import annotations

from typing import Optional


class CEDeployError(Exception):
    """Base class for every error raised by cedeploy."""


class ConfigurationError(CEDeployError):
    """Required configuration is missing or inconsistent."""


class TemplateResolutionError(ConfigurationError):
    """A `${...}` expression in a build template could not be resolved."""

    def __init__(self, expression: str) -> None:
        super().__init__(f"Cannot resolve expression: ${{{expression}}}")
        self.expression = expression


class ReplicaConfigurationError(ConfigurationError):
    """Replica count or target container indices are invalid."""


class BuildError(CEDeployError):
    """The image build did not report a successfully built image."""

    def __init__(self, message: str, output: str = "") -> None:
        super().__init__(message)
        self.output = output


class PushError(CEDeployError):
    """Pushing the image to the registry failed."""


class ResourceError(CEDeployError):
    """A Kubernetes API call creating or reading a resource failed."""


class IllegalStateError(CEDeployError):
    """A lifecycle transition was requested from the wrong state."""


class DeploymentError(CEDeployError):
    """Single failure signal for a deployment, naming the failed stage."""

    def __init__(self, stage: str, cause: Optional[BaseException] = None) -> None:
        message = f"Cannot deploy in CE env: {stage} stage failed"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)
        self.stage = stage
        self.cause = cause

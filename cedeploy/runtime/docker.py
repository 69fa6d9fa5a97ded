"""Docker build and push helpers used by the deployment lifecycle."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import requests
from docker.errors import DockerException

from cedeploy.common.errors import BuildError, PushError, ResourceError
from cedeploy.common.models import Archive, BuiltImage
from cedeploy.core.build_context import BuildContext
from cedeploy.core.config import CEConfiguration
from cedeploy.core.template import resolve_template

DEFAULT_REGISTRY_SERVICE = "docker-registry"
REGISTRY_SERVICE_PROPERTY = "docker.service.id"
DEPLOYMENT_NAME_PROPERTY = "deployment.name"

_BUILT_MARKER = re.compile(r"Successfully built (\S+)")
_RETRYABLE_KEYWORDS = ("timeout", "i/o timeout", "connection", "network", "temporary failure", "proxyconnect")


def parse_build_output(output: str) -> str:
    """
    Extract the image id from raw build output.

    Raises:
        BuildError: If the output lacks the `Successfully built <id>` marker
    """
    match = _BUILT_MARKER.search(output)
    if match is None:
        raise BuildError(f"Error building image: {output.strip() or 'no build output'}", output=output)
    return match.group(1)


def compose_image_reference(host: str, port: Union[int, str], image_name: str) -> str:
    """Image reference in `host:port/imageName` form."""
    return f"{host}:{port}/{image_name}"


class ImageBuilder:
    """Render the Dockerfile, build the image and push it to the cluster registry."""

    def __init__(
        self,
        *,
        docker_api,
        build_context: BuildContext,
        config: CEConfiguration,
        service_reader: Callable[[str], Any],
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.docker_api = docker_api
        self.build_context = build_context
        self.config = config
        self.service_reader = service_reader
        self.logger = logger or logging.getLogger(__name__)

    def push_image(
        self,
        template: Union[bytes, str],
        archive: Archive,
        properties: Optional[Mapping[str, str]] = None,
    ) -> str:
        """
        Build an image from the template and archive and push it to the registry.

        Args:
            template: Dockerfile template with `${...}` expressions
            archive: Archive copied into the build context
            properties: Template properties, merged over the configured ones

        Returns:
            The pushed image reference (`host:port/imageName`)

        Raises:
            TemplateResolutionError: If the template cannot be rendered
            BuildError: If the build fails
            ResourceError: If the registry service cannot be read
            PushError: If the push fails
        """
        props = self.prepare_properties(archive, properties)
        built = self.build_image(template, archive, props)
        return self.push_built(built, props)

    def build_image(self, template: Union[bytes, str], archive: Archive, properties: Mapping[str, str]) -> BuiltImage:
        """
        Render the Dockerfile, export the archive and build.

        Entries left by earlier builds are removed first so only the current
        Dockerfile and archive reach the daemon.
        """
        self.build_context.clear()
        self.render_dockerfile(template, properties)
        self.export_archive(archive)
        return self.build()

    def push_built(self, built: BuiltImage, properties: Mapping[str, str]) -> str:
        """Tag and push a built image to the cluster registry; returns the reference."""
        host, port = self.resolve_registry(properties)
        reference = compose_image_reference(host, port, self.config.image_name)
        self.push(built.image_id, reference)
        if self.config.verify_push:
            self.verify_in_registry(reference)
        return reference

    def prepare_properties(self, archive: Archive, properties: Optional[Mapping[str, str]]) -> Dict[str, str]:
        props: Dict[str, str] = dict(self.config.properties)
        props.update(properties or {})
        props[DEPLOYMENT_NAME_PROPERTY] = archive.name
        if self.config.from_image:
            props.setdefault("from.name", self.config.from_image)
        if self.config.deployment_dir:
            props.setdefault("deployment.dir", self.config.deployment_dir)
        return props

    def render_dockerfile(self, template: Union[bytes, str], properties: Mapping[str, str]) -> Path:
        dockerfile = resolve_template(template, properties)
        self.logger.debug("Rendered Dockerfile:\n%s", dockerfile)
        return self.build_context.write_file("Dockerfile", dockerfile)

    def export_archive(self, archive: Archive) -> Path:
        target = self.build_context.get_full_path(archive.name)
        self.logger.info("Exporting archive %s to %s", archive.name, target)
        return archive.export_to(target)

    def build(self) -> BuiltImage:
        tag = self.config.image_name
        self.logger.info("Building Docker image %s from %s", tag, self.build_context.path)
        start = time.time()
        try:
            chunks = self.docker_api.build(
                path=str(self.build_context.path),
                tag=tag,
                rm=True,
                forcerm=True,
                decode=True,
            )
            output = self._collect_build_output(chunks)
        except DockerException as exc:
            self.logger.error("Docker build failed for %s: %s", tag, exc)
            raise BuildError(f"Error building image: {exc}") from exc

        image_id = parse_build_output(output)
        built = BuiltImage(image_id=image_id, tag=tag, build_time=time.time() - start, output=output)
        self.logger.info("Built image: %s (%.1fs)", image_id, built.build_time)
        return built

    def resolve_registry(self, properties: Mapping[str, str]) -> Tuple[str, int]:
        service_id = properties.get(REGISTRY_SERVICE_PROPERTY) or DEFAULT_REGISTRY_SERVICE
        try:
            service = self.service_reader(service_id)
        except Exception as exc:
            raise ResourceError(f"Cannot read registry service [{service_id}]: {exc}") from exc

        spec = getattr(service, "spec", None)
        ports = getattr(spec, "ports", None) or []
        host = getattr(spec, "cluster_ip", None)
        if not host or not ports:
            raise ResourceError(f"Registry service [{service_id}] has no cluster IP or port")
        self.logger.debug("Registry service [%s] at %s:%s", service_id, host, ports[0].port)
        return host, ports[0].port

    def push(self, image_id: str, reference: str) -> str:
        """
        Tag the built image as `reference` and push it.

        Returns:
            Status of the first push event
        """
        try:
            self.docker_api.tag(image_id, repository=reference)
        except DockerException as exc:
            raise PushError(f"Cannot tag image {image_id} as {reference}: {exc}") from exc

        attempts = self.config.push_attempts
        for attempt in range(attempts):
            if attempt > 0:
                self.logger.info("Retrying docker push (attempt %d/%d)...", attempt + 1, attempts)
                time.sleep(2 ** attempt)
            try:
                return self._push_once(reference)
            except PushError as exc:
                retryable = any(keyword in str(exc).lower() for keyword in _RETRYABLE_KEYWORDS)
                if not retryable or attempt + 1 >= attempts:
                    self.logger.error("Docker push failed for %s: %s", reference, exc)
                    raise
                self.logger.warning(
                    "Docker push failed with retryable error on attempt %d/%d: %s",
                    attempt + 1,
                    attempts,
                    str(exc)[:200],
                )
        raise PushError(f"Docker push failed: no result after {attempts} attempts")

    def verify_in_registry(self, reference: str) -> None:
        registry, image_path = reference.split("/", 1)
        if ":" in image_path:
            image_repo, image_tag = image_path.rsplit(":", 1)
        else:
            image_repo, image_tag = image_path, "latest"

        verify_url = f"http://{registry}/v2/{image_repo}/tags/list"
        self.logger.info("Verifying image in registry: %s", reference)
        try:
            response = requests.get(verify_url, timeout=10)
        except requests.RequestException as exc:
            raise PushError(f"Registry verification failed (URL: {verify_url}): {exc}") from exc

        if response.status_code != 200:
            raise PushError(f"Registry verification failed (URL: {verify_url}): status {response.status_code}")
        tags = response.json().get("tags") or []
        if image_tag not in tags:
            raise PushError(f"Image pushed but tag '{image_tag}' not found in tags list: {tags}")
        self.logger.info("Successfully verified image in registry: %s", reference)

    def _push_once(self, reference: str) -> str:
        try:
            events = list(
                self.docker_api.push(
                    reference,
                    stream=True,
                    decode=True,
                    auth_config=self.config.get_auth_config(),
                )
            )
        except DockerException as exc:
            raise PushError(f"Docker push failed: {exc}") from exc

        if not events:
            raise PushError(f"Docker push of {reference} returned no status events")
        for event in events:
            if isinstance(event, dict) and event.get("error"):
                raise PushError(f"Docker push failed: {event['error']}")

        first = events[0]
        status = first.get("status", "") if isinstance(first, dict) else str(first)
        self.logger.info("Push image [%s] status: %s", reference, status)
        return status

    def _collect_build_output(self, chunks: Iterable[Any]) -> str:
        lines: List[str] = []
        for chunk in chunks:
            if not isinstance(chunk, dict):
                lines.append(str(chunk))
                continue
            if chunk.get("error"):
                output = "".join(lines)
                raise BuildError(f"Error building image: {chunk['error']}", output=output)
            text = chunk.get("stream")
            if text:
                self.logger.debug("build: %s", text.rstrip())
                lines.append(text)
        return "".join(lines)

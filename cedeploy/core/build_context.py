"""Context-managed, per-client Docker build directory."""
import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional, Union


class BuildContext:
    """
    Ephemeral directory submitted to the Docker daemon as build context.

    Each instance:
    - Allocates a unique `ce_<uuid>` directory under the given root on construction
    - Is reused by every build of the owning client
    - Is removed exactly once by close(); later calls are no-ops

    Usage:
        with BuildContext(tmp_root) as context:
            context.write_file("Dockerfile", rendered)
            archive.export_to(context.get_full_path(archive.name))
    """

    def __init__(self, root: Union[str, Path], logger: Optional[logging.Logger] = None):
        """
        Create the build directory.

        Args:
            root: Parent directory for the build context

        Raises:
            OSError: If the directory cannot be created
        """
        self.logger = logger or logging.getLogger(__name__)
        self._path = Path(root).resolve() / f"ce_{uuid.uuid4()}"
        self._path.mkdir(parents=True, exist_ok=False)
        self._closed = False
        self.logger.debug("Created build context: %s", self._path)

    def __enter__(self) -> "BuildContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def path(self) -> Path:
        """Absolute path of the build directory."""
        return self._path

    @property
    def closed(self) -> bool:
        return self._closed

    def get_full_path(self, relative_path: str) -> Path:
        """
        Absolute path for a file inside the build directory.

        Raises:
            ValueError: If the context was already closed or the path escapes it
        """
        if self._closed:
            raise ValueError(f"Build context already closed: {self._path}")
        full_path = (self._path / relative_path).resolve()
        if self._path not in full_path.parents:
            raise ValueError(f"Path {relative_path} escapes the build context")
        return full_path

    def write_file(self, relative_path: str, content: str) -> Path:
        """Write text into the build directory, replacing any previous file."""
        full_path = self.get_full_path(relative_path)
        full_path.parent.mkdir(parents=True, exist_ok=True)
        self.logger.debug("Writing file: %s", full_path)
        full_path.write_text(content, encoding="utf-8")
        return full_path

    def clear(self) -> None:
        """Remove everything inside the directory, keeping the directory itself."""
        if self._closed:
            raise ValueError(f"Build context already closed: {self._path}")
        for entry in self._path.iterdir():
            if entry.is_dir() and not entry.is_symlink():
                shutil.rmtree(entry)
            else:
                entry.unlink()
        self.logger.debug("Cleared build context: %s", self._path)

    def close(self) -> None:
        """Delete the directory and everything in it."""
        if self._closed:
            return
        self._closed = True
        shutil.rmtree(self._path, ignore_errors=True)
        self.logger.debug("Removed build context: %s", self._path)

"""Shared data models used by the runtime and container layers."""
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable


@runtime_checkable
class Archive(Protocol):
    """A deployable archive supplied by the test host."""

    @property
    def name(self) -> str:
        ...

    def export_to(self, target: Path) -> Path:
        ...


@dataclass(frozen=True)
class FileArchive:
    """
    Archive backed by a packaged file (`app.war`) or an exploded directory.

    Exploded directories are zipped on export, so the target is always a
    single archive file.
    """

    source: Path
    archive_name: Optional[str] = None

    @classmethod
    def of(cls, source: Union[str, Path], archive_name: Optional[str] = None) -> "FileArchive":
        return cls(source=Path(source), archive_name=archive_name)

    @property
    def name(self) -> str:
        return self.archive_name or self.source.name

    def export_to(self, target: Path) -> Path:
        if not self.source.exists():
            raise FileNotFoundError(f"Archive source not found: {self.source}")

        target.parent.mkdir(parents=True, exist_ok=True)
        if self.source.is_dir():
            with zipfile.ZipFile(target, "w", zipfile.ZIP_DEFLATED) as zf:
                for path in sorted(self.source.rglob("*")):
                    if path.is_file():
                        zf.write(path, path.relative_to(self.source).as_posix())
        else:
            shutil.copyfile(self.source, target)
        return target


@dataclass
class BuiltImage:
    """Outcome of a successful image build."""

    image_id: str
    tag: str
    build_time: float  # seconds
    output: str = ""

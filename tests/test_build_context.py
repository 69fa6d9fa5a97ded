"""Unit tests for the per-client build directory."""

from __future__ import annotations

from pathlib import Path

import pytest

from cedeploy.core.build_context import BuildContext


def test_each_context_gets_a_unique_directory(tmp_path: Path) -> None:
    first = BuildContext(tmp_path)
    second = BuildContext(tmp_path)

    assert first.path != second.path
    assert first.path.name.startswith("ce_")
    assert first.path.is_dir() and second.path.is_dir()


def test_write_file_replaces_previous_content(tmp_path: Path) -> None:
    context = BuildContext(tmp_path)

    context.write_file("Dockerfile", "FROM a")
    path = context.write_file("Dockerfile", "FROM b")

    assert path.read_text() == "FROM b"


def test_close_is_idempotent_and_removes_partial_contents(tmp_path: Path) -> None:
    context = BuildContext(tmp_path)
    context.write_file("nested/file.txt", "data")

    context.close()
    context.close()

    assert context.closed
    assert not context.path.exists()


def test_context_manager_closes(tmp_path: Path) -> None:
    with BuildContext(tmp_path) as context:
        path = context.path

    assert not path.exists()


def test_paths_outside_context_are_rejected(tmp_path: Path) -> None:
    context = BuildContext(tmp_path)

    with pytest.raises(ValueError):
        context.get_full_path("../escape.txt")

    context.close()
    with pytest.raises(ValueError):
        context.get_full_path("Dockerfile")


def test_clear_empties_directory_but_keeps_it(tmp_path: Path) -> None:
    context = BuildContext(tmp_path)
    context.write_file("Dockerfile", "FROM a")
    context.write_file("nested/old.war", "data")

    context.clear()

    assert context.path.is_dir()
    assert list(context.path.iterdir()) == []

    context.close()
    with pytest.raises(ValueError):
        context.clear()

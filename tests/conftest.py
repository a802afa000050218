from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Optional

import pytest

from mcp_local_artifact_resolver import server as server_module
from mcp_local_artifact_resolver.fragments import FragmentLoader


@pytest.fixture(autouse=True)
def _reset_server_state(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    # Ensure isolation across tests: fresh process resolver and fragment maps
    monkeypatch.setattr(server_module, "_resolver", None)
    monkeypatch.setattr(server_module, "_loader", FragmentLoader())
    yield


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[..., Path]:
    """Write ``contents`` to ``tmp_path / rel`` (creating parents) and return the path."""

    def _f(rel: str, contents: str = "") -> Path:
        path = tmp_path / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(contents, encoding="utf-8")
        return path

    return _f


def _metadata_xml(*artifacts: str) -> str:
    return "<metadata><artifacts>" + "".join(artifacts) + "</artifacts></metadata>"


def _artifact_xml(
    group_id: str,
    artifact_id: str,
    path: str,
    *,
    extension: Optional[str] = None,
    classifier: Optional[str] = None,
    compat: tuple[str, ...] = (),
    namespace: Optional[str] = None,
    aliases: tuple[tuple[str, str], ...] = (),
) -> str:
    parts = [f"<groupId>{group_id}</groupId>", f"<artifactId>{artifact_id}</artifactId>"]
    if extension:
        parts.append(f"<extension>{extension}</extension>")
    if classifier:
        parts.append(f"<classifier>{classifier}</classifier>")
    parts.append(f"<path>{path}</path>")
    if namespace:
        parts.append(f"<namespace>{namespace}</namespace>")
    if compat:
        parts.append("<compatVersions>" + "".join(f"<version>{v}</version>" for v in compat) + "</compatVersions>")
    if aliases:
        parts.append(
            "<aliases>"
            + "".join(f"<alias><groupId>{g}</groupId><artifactId>{a}</artifactId></alias>" for g, a in aliases)
            + "</aliases>"
        )
    return "<artifact>" + "".join(parts) + "</artifact>"


def _mapping_xml(maven: str, *jpp: str) -> str:
    def block(tag: str, coord: str) -> str:
        g, a = coord.split(":")
        return f"<{tag}><groupId>{g}</groupId><artifactId>{a}</artifactId></{tag}>"

    return "<dependency>" + block("maven", maven) + "".join(block("jpp", j) for j in jpp) + "</dependency>"


@pytest.fixture
def metadata_xml() -> Callable[..., str]:
    """Wrap ``<artifact>`` snippets into a metadata document."""
    return _metadata_xml


@pytest.fixture
def artifact_xml() -> Callable[..., str]:
    """Build one metadata ``<artifact>`` record."""
    return _artifact_xml


@pytest.fixture
def mapping_xml() -> Callable[..., str]:
    """Build a fragment ``<dependency>`` record from ``g:a`` strings."""
    return _mapping_xml

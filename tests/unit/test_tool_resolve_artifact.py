from pathlib import Path
from xml.etree.ElementTree import fromstring

import pytest

from mcp_local_artifact_resolver import server as server_module
from mcp_local_artifact_resolver.config import Settings
from mcp_local_artifact_resolver.server import (
    get_resolver,
    lookup_mapping_core,
    resolve_artifact_core,
    resolve_artifacts_core,
)


@pytest.fixture
def system_root(tmp_path: Path, write_file, mapping_xml, metadata_xml, artifact_xml, monkeypatch) -> Path:
    write_file("etc/maven/fragments/commons", mapping_xml("org.apache:commons-io", "JPP:commons-io"))
    write_file("usr/share/java/commons-io.jar")
    write_file(
        "usr/share/maven-metadata/guava.xml",
        metadata_xml(artifact_xml("com.google", "guava", "/usr/share/java/guava/guava.jar", compat=("31.1",))),
    )
    monkeypatch.setattr(server_module, "_settings", Settings(RESOLVER_ROOT=str(tmp_path)))
    return tmp_path


def test_resolve_artifact_core_through_depmap(system_root: Path) -> None:
    result = resolve_artifact_core(coordinate="org.apache:commons-io:2.11")
    assert result.found
    assert result.artifact_path == str(system_root / "usr/share/java/commons-io.jar")
    assert result.compat_version == "SYSTEM"


def test_resolve_artifact_core_metadata_exact(system_root: Path) -> None:
    result = resolve_artifact_core(coordinate="com.google:guava:31.1")
    assert result.artifact_path == "/usr/share/java/guava/guava.jar"
    assert result.compat_version == "31.1"


def test_resolve_artifact_core_not_found_is_not_an_error(system_root: Path) -> None:
    result = resolve_artifact_core(coordinate="com.google:guava:30.0")
    assert not result.found
    assert result.artifact_path is None


def test_resolve_artifact_core_bad_coordinate(system_root: Path) -> None:
    with pytest.raises(ValueError):
        resolve_artifact_core(coordinate="just-one-part")


def test_resolver_is_built_once(system_root: Path) -> None:
    assert get_resolver() is get_resolver()


def test_lookup_mapping_core(system_root: Path) -> None:
    resp = lookup_mapping_core(coordinate="org.apache:commons-io")
    assert [(t.group_id, t.artifact_id) for t in resp.targets] == [("JPP", "commons-io")]
    assert lookup_mapping_core(coordinate="org.other:x:1").targets == []


@pytest.mark.asyncio
async def test_resolve_artifacts_core_keeps_order(system_root: Path) -> None:
    results = await resolve_artifacts_core(
        ["com.google:guava:31.1", "org.none:none:1", "org.apache:commons-io:2.11"]
    )
    assert [r.coordinate.artifact_id for r in results] == ["guava", "none", "commons-io"]
    assert [r.found for r in results] == [True, False, True]


@pytest.mark.asyncio
async def test_generate_build_dependencies_document(system_root: Path) -> None:
    from mcp_local_artifact_resolver.serialization import render_resolved_dependencies

    results = await resolve_artifacts_core(["com.google:guava:31.1", "org.none:none:1"])
    root = fromstring(render_resolved_dependencies(results).encode("ascii"))
    assert [d.findtext("version") for d in root.findall("dependency")] == ["31.1", "SYSTEM"]

from xml.etree.ElementTree import fromstring

from mcp_local_artifact_resolver.depmap import DependencyMap
from mcp_local_artifact_resolver.fragments import apply_records, parse_fragment
from mcp_local_artifact_resolver.models import ArtifactCoordinate, ResolutionResult
from mcp_local_artifact_resolver.serialization import render_depmap, render_resolved_dependencies


def C(text: str) -> ArtifactCoordinate:
    return ArtifactCoordinate.parse(text)


def _sample_map() -> DependencyMap:
    dm = DependencyMap()
    dm.add_mapping(C("org.b:b:1"), C("JPP:b:1"))
    dm.add_mapping(C("org.a:a:1"), C("JPP/a:a:1"))
    dm.add_runtime_dependency(C("org.z:rt:1"))
    dm.add_build_dependency(C("org.y:bt:1"))
    dm.add_version_floor(False, "1.8")
    dm.add_version_floor(True, "11")
    return dm.freeze()


def test_render_depmap_is_deterministic_and_sorted():
    text = render_depmap(_sample_map())
    assert text.startswith('<?xml version="1.0" encoding="US-ASCII"?>')
    assert text == render_depmap(_sample_map())

    root = fromstring(text.encode("ascii"))
    assert root.tag == "dependencyMap"
    assert [e.tag for e in root] == ["requiresJava", "dependency", "dependency", "autoRequires"]
    assert root.find("requiresJava").text == "1.8"
    assert [d.findtext("maven/groupId") for d in root.findall("dependency")] == ["org.a", "org.b"]
    # Build-time entries are only written on request
    assert root.find("requiresJavaDevel") is None
    assert [e.findtext("artifactId") for e in root.findall("autoRequires")] == ["rt"]


def test_render_depmap_options():
    root = fromstring(render_depmap(_sample_map(), write_build=True, skip_provides=True).encode("ascii"))
    assert root[0].tag == "skipProvides"
    assert root.findtext("requiresJavaDevel") == "11"
    assert [e.findtext("artifactId") for e in root.findall("autoRequires")] == ["bt", "rt"]

    root = fromstring(render_depmap(_sample_map(), skip_requires=True).encode("ascii"))
    assert root.find("requiresJava") is None
    assert root.find("autoRequires") is None
    assert len(root.findall("dependency")) == 2


def test_rendered_depmap_parses_back():
    source_map = _sample_map()
    restored = DependencyMap()
    apply_records(restored, parse_fragment(render_depmap(source_map)))
    assert list(restored.mappings()) == list(source_map.mappings())
    assert restored.runtime_dependencies() == source_map.runtime_dependencies()
    assert restored.runtime_version_floor == source_map.runtime_version_floor


def test_non_default_fields_and_non_ascii_are_written():
    dm = DependencyMap()
    dm.add_runtime_dependency(C("g:café:pom:tests:1"))
    text = render_depmap(dm)
    text.encode("ascii")
    assert "caf&#233;" in text
    entry = fromstring(text.encode("ascii")).find("autoRequires")
    assert entry.findtext("artifactId") == "café"
    assert entry.findtext("extension") == "pom"
    assert entry.findtext("classifier") == "tests"
    assert entry.find("version") is None


def test_render_resolved_dependencies():
    found = ResolutionResult(coordinate=C("g:a:2.0"), artifact_path="/a.jar", compat_version="2.0")
    compat = ResolutionResult(coordinate=C("g:b:5"), artifact_path="/b.jar", compat_version="SYSTEM")
    missing = ResolutionResult(coordinate=C("g:c:1"))

    root = fromstring(render_resolved_dependencies([found, compat, missing, found]).encode("ascii"))

    assert root.tag == "dependencies"
    rows = [(d.findtext("artifactId"), d.findtext("version")) for d in root.findall("dependency")]
    assert rows == [("a", "2.0"), ("b", "SYSTEM"), ("c", "SYSTEM")]

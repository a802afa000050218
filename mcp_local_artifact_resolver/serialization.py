"""Deterministic XML sinks for downstream packaging tools.

Output is ASCII (non-ASCII characters become character references),
two-space indented, with children in sorted order. defusedxml only covers
parsing, so documents are built with the standard library tree API.
"""

from __future__ import annotations

from typing import Iterable
from xml.etree.ElementTree import Element, SubElement, indent, tostring

from .depmap import DependencyMap
from .models import DEFAULT_EXTENSION, DEFAULT_VERSION, ArtifactCoordinate, ResolutionResult


def _artifact(parent: Element, tag: str, coord: ArtifactCoordinate) -> Element:
    elem = SubElement(parent, tag)
    SubElement(elem, "groupId").text = coord.group_id
    SubElement(elem, "artifactId").text = coord.artifact_id
    if coord.extension != DEFAULT_EXTENSION:
        SubElement(elem, "extension").text = coord.extension
    if coord.classifier:
        SubElement(elem, "classifier").text = coord.classifier
    if coord.version:
        SubElement(elem, "version").text = coord.version
    return elem


def _document(root: Element, comment: str) -> str:
    indent(root, space="  ")
    body = tostring(root, encoding="unicode")
    text = f'<?xml version="1.0" encoding="US-ASCII"?>\n<!-- {comment} -->\n{body}\n'
    return text.encode("ascii", "xmlcharrefreplace").decode("ascii")


def render_depmap(
    depmap: DependencyMap,
    *,
    write_build: bool = False,
    skip_requires: bool = False,
    skip_provides: bool = False,
) -> str:
    """Render a merged map as a ``<dependencyMap>`` fragment document.

    The result parses back with :func:`fragments.parse_fragment`.
    """
    root = Element("dependencyMap")

    if skip_provides:
        SubElement(root, "skipProvides")

    if not skip_requires:
        if depmap.runtime_version_floor is not None:
            SubElement(root, "requiresJava").text = str(depmap.runtime_version_floor)
        if write_build and depmap.build_version_floor is not None:
            SubElement(root, "requiresJavaDevel").text = str(depmap.build_version_floor)

    for source, target in depmap.mappings():
        dependency = SubElement(root, "dependency")
        _artifact(dependency, "maven", source)
        _artifact(dependency, "jpp", target)

    if not skip_requires:
        combined = set(depmap.runtime_dependencies())
        if write_build:
            combined.update(depmap.build_dependencies())
        for coord in sorted(combined, key=ArtifactCoordinate.sort_key):
            _artifact(root, "autoRequires", coord)

    return _document(root, "This depmap file was generated by mcp-local-artifact-resolver")


def render_resolved_dependencies(results: Iterable[ResolutionResult]) -> str:
    """Render resolution results as a ``<dependencies>`` document.

    Each record carries the resolved compat version, or DEFAULT_VERSION when
    the artifact was not found. Input order is kept; duplicates are dropped.
    """
    root = Element("dependencies")
    seen: set[ArtifactCoordinate] = set()
    for result in results:
        version = result.compat_version if result.found and result.compat_version else DEFAULT_VERSION
        coord = result.coordinate.with_version(version)
        if coord in seen:
            continue
        seen.add(coord)
        _artifact(root, "dependency", coord)
    return _document(root, "Build dependencies generated by mcp-local-artifact-resolver")


__all__ = ["render_depmap", "render_resolved_dependencies"]

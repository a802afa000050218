"""Discovery, parsing and merging of depmap fragments.

A fragment is a small XML file shipped by a distro package. It is either a
complete document (starts with an ``<?xml`` prologue) or a bare sequence of
records that gets an implicit ``<dependencies>`` root before parsing::

    <dependency>
      <maven><groupId>org.example</groupId><artifactId>core</artifactId></maven>
      <jpp><groupId>JPP/example</groupId><artifactId>core</artifactId></jpp>
    </dependency>
    <autoRequires><groupId>org.slf4j</groupId><artifactId>slf4j-api</artifactId></autoRequires>
    <requiresJava>1.8</requiresJava>

Security:
    Uses defusedxml; fragments are treated as untrusted input.

Behavior:
    - Configured paths are visited in order; directories are listed and their
      entries loaded in sorted name order, so merges are deterministic.
    - A fragment is parsed completely before anything is merged; a malformed
      fragment is logged and skipped and loading continues.
    - The merged map for a root is built at most once per cache and then
      shared, frozen, between all callers.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET  # type: ignore[import-untyped]

from .cache import OnceCache
from .depmap import DependencyMap, parse_version_floor
from .errors import InvalidVersionFormat, MalformedFragment
from .models import ArtifactCoordinate

_logger = logging.getLogger(__name__)

_WRAPPER_TAG = "dependencies"


@dataclass(frozen=True)
class MappingRecord:
    source: ArtifactCoordinate
    targets: tuple[ArtifactCoordinate, ...]


@dataclass(frozen=True)
class DependencyRecord:
    coordinate: ArtifactCoordinate


@dataclass(frozen=True)
class VersionFloorRecord:
    version: str
    build_time: bool


FragmentRecord = Union[MappingRecord, DependencyRecord, VersionFloorRecord]


def _local_name(tag: Any) -> str:
    tag = str(tag)
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _children(elem: Any, name: str) -> list[Any]:
    return [child for child in elem if _local_name(child.tag) == name]


def _single_text(block: Any, name: str, *, required: bool, source: Optional[str]) -> Optional[str]:
    nodes = _children(block, name)
    if len(nodes) > 1 or (required and len(nodes) != 1):
        raise MalformedFragment(
            f"<{_local_name(block.tag)}> must have {'exactly' if required else 'at most'} one <{name}>",
            source=source,
        )
    if not nodes:
        return None
    return "".join(nodes[0].itertext()).strip()


def _artifact_block(block: Any, source: Optional[str]) -> ArtifactCoordinate:
    group_id = _single_text(block, "groupId", required=True, source=source)
    artifact_id = _single_text(block, "artifactId", required=True, source=source)
    version = _single_text(block, "version", required=False, source=source)
    extension = _single_text(block, "extension", required=False, source=source)
    classifier = _single_text(block, "classifier", required=False, source=source)
    try:
        return ArtifactCoordinate(
            group_id=group_id or "",
            artifact_id=artifact_id or "",
            extension=extension,
            classifier=classifier,
            version=version or None,
        )
    except ValueError as e:
        raise MalformedFragment(f"invalid artifact in <{_local_name(block.tag)}>: {e}", source=source) from e


def wrap_fragment(contents: str) -> str:
    """Add the implicit root element unless the text starts with an XML prologue."""
    if contents[:5].lower() == "<?xml":
        return contents
    return f"<{_WRAPPER_TAG}>{contents}</{_WRAPPER_TAG}>"


def parse_fragment(contents: str, source: Optional[str] = None) -> list[FragmentRecord]:
    """Parse fragment text into records.

    Raises:
        MalformedFragment for invalid XML or records of the wrong shape.
    """
    try:
        root = ET.fromstring(wrap_fragment(contents))
    except (ET.ParseError, DefusedXmlException) as e:
        raise MalformedFragment(f"unable to parse: {e}", source=source) from e

    records: list[FragmentRecord] = []
    for elem in root.iter():
        name = _local_name(elem.tag)
        if name == "dependency":
            maven = _children(elem, "maven")
            if len(maven) != 1:
                raise MalformedFragment("<dependency> must have exactly one <maven> block", source=source)
            jpp = _children(elem, "jpp")
            if not jpp:
                raise MalformedFragment("<dependency> has no <jpp> block", source=source)
            records.append(
                MappingRecord(
                    source=_artifact_block(maven[0], source),
                    targets=tuple(_artifact_block(block, source) for block in jpp),
                )
            )
        elif name == "autoRequires":
            records.append(DependencyRecord(_artifact_block(elem, source)))
        elif name in ("requiresJava", "requiresJavaDevel"):
            version = "".join(elem.itertext()).strip()
            try:
                parse_version_floor(version)
            except InvalidVersionFormat as e:
                raise MalformedFragment(str(e), source=source) from e
            records.append(VersionFloorRecord(version=version, build_time=name == "requiresJavaDevel"))
    return records


def apply_records(depmap: DependencyMap, records: Iterable[FragmentRecord]) -> None:
    for record in records:
        if isinstance(record, MappingRecord):
            for target in record.targets:
                depmap.add_mapping(record.source, target)
        elif isinstance(record, DependencyRecord):
            depmap.add_runtime_dependency(record.coordinate)
        elif isinstance(record, VersionFloorRecord):
            depmap.add_version_floor(record.build_time, record.version)


def load_fragment(path: Path) -> DependencyMap:
    """Read and parse a single fragment file into a fresh map.

    Raises:
        OSError when the file cannot be read; MalformedFragment when it
        cannot be parsed.
    """
    data = path.read_bytes()
    # Invalid UTF-8 sequences are replaced; a leading BOM is dropped
    contents = data.decode("utf-8-sig", errors="replace")
    staged = DependencyMap()
    apply_records(staged, parse_fragment(contents, source=str(path)))
    return staged


class FragmentLoader:
    """Builds (once per root) the merged dependency map of a system root.

    Pass the same ``cache`` to several loaders to share published maps
    between them; each loader gets its own cache by default.
    """

    def __init__(self, cache: Optional[OnceCache[Path, DependencyMap]] = None) -> None:
        self._cache: OnceCache[Path, DependencyMap] = cache if cache is not None else OnceCache()

    def load_merged_map(
        self,
        root: Union[str, os.PathLike[str]],
        repository_paths: Iterable[str],
        timeout: Optional[float] = None,
    ) -> Optional[DependencyMap]:
        """Return the shared merged map for ``root``.

        Returns ``None`` if this caller joined an in-flight load and gave up
        waiting after ``timeout`` seconds.
        """
        root_path = Path(root).resolve()
        paths = tuple(repository_paths)
        return self._cache.get_or_compute(
            root_path, lambda: self._read_merged(root_path, paths), timeout=timeout
        )

    def _read_merged(self, root: Path, repository_paths: tuple[str, ...]) -> DependencyMap:
        _logger.info(
            "loading depmap fragments",
            extra={"op": "load_merged_map", "root": str(root), "paths": len(repository_paths)},
        )
        depmap = DependencyMap()
        for rel in repository_paths:
            # Absolute paths are kept as-is by the join
            path = root / rel
            if path.is_dir():
                try:
                    names = sorted(os.listdir(path))
                except OSError as e:
                    _logger.warning(
                        "could not list depmap directory %s: %s",
                        path,
                        e,
                        extra={"op": "load_fragment", "fragment": str(path)},
                    )
                    continue
                for name in names:
                    self._try_load(depmap, path / name)
            else:
                self._try_load(depmap, path)

        depmap.optimize()
        return depmap.freeze()

    def _try_load(self, depmap: DependencyMap, fragment: Path) -> None:
        if fragment.is_dir():
            _logger.debug("skipping directory %s", fragment, extra={"op": "load_fragment"})
            return
        _logger.debug("loading depmap file: %s", fragment, extra={"op": "load_fragment"})
        try:
            staged = load_fragment(fragment)
        except (OSError, MalformedFragment) as e:
            _logger.warning(
                "could not load depmap file %s: %s",
                fragment,
                e,
                extra={"op": "load_fragment", "fragment": str(fragment)},
            )
            return
        depmap.merge(staged)


__all__ = [
    "FragmentLoader",
    "FragmentRecord",
    "MappingRecord",
    "DependencyRecord",
    "VersionFloorRecord",
    "wrap_fragment",
    "parse_fragment",
    "apply_records",
    "load_fragment",
]

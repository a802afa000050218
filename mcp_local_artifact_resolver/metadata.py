"""Installed-artifact metadata sources and the compat-aware resolver.

A metadata source indexes one metadata document shipped by the distro::

    <metadata>
      <artifacts>
        <artifact>
          <groupId>gid</groupId>
          <artifactId>aid</artifactId>
          <extension>ext</extension>
          <classifier>cla</classifier>
          <version>1.2-beta3</version>
          <path>/foo/bar</path>
          <compatVersions><version>1.2-beta3</version></compatVersions>
          <aliases><alias><groupId>alt</groupId><artifactId>aid</artifactId></alias></aliases>
        </artifact>
      </artifacts>
    </metadata>

An artifact is registered under each of its compat versions, or under the
DEFAULT_VERSION sentinel when it lists none.
"""

from __future__ import annotations

import gzip
import logging
import zlib
from pathlib import Path
from typing import Any, Iterable, Optional, Union

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET  # type: ignore[import-untyped]

from .errors import MalformedFragment
from .models import DEFAULT_VERSION, ArtifactCoordinate, ArtifactMetadata

_logger = logging.getLogger(__name__)

_GZIP_MAGIC = b"\x1f\x8b"


def _local_name(tag: Any) -> str:
    tag = str(tag)
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _child(elem: Any, name: str) -> Optional[Any]:
    for child in elem:
        if _local_name(child.tag) == name:
            return child
    return None


def _child_text(elem: Any, name: str) -> Optional[str]:
    child = _child(elem, name)
    if child is None:
        return None
    return (child.text or "").strip() or None


class MetadataSource:
    """Immutable index of one metadata document."""

    def __init__(self, name: str, records: dict[ArtifactCoordinate, tuple[str, str]]) -> None:
        self._name = name
        # coordinate (with compat version) -> (path, namespace)
        self._records = dict(records)

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        return len(self._records)

    @classmethod
    def from_xml(cls, contents: Union[str, bytes], name: str = "<memory>") -> "MetadataSource":
        """Build an index from metadata XML.

        Raises:
            MalformedFragment for invalid XML or artifacts missing required fields.
        """
        try:
            root = ET.fromstring(contents)
        except (ET.ParseError, DefusedXmlException) as e:
            raise MalformedFragment(f"unable to parse metadata: {e}", source=name) from e

        records: dict[ArtifactCoordinate, tuple[str, str]] = {}
        artifacts = _child(root, "artifacts")
        if artifacts is None:
            return cls(name, records)

        for artifact in artifacts:
            if _local_name(artifact.tag) != "artifact":
                continue
            path = _child_text(artifact, "path")
            if not path:
                raise MalformedFragment("<artifact> has no <path>", source=name)
            namespace = _child_text(artifact, "namespace") or ""

            compat = _child(artifact, "compatVersions")
            versions = [
                (v.text or "").strip()
                for v in (compat if compat is not None else [])
                if _local_name(v.tag) == "version" and (v.text or "").strip()
            ] or [DEFAULT_VERSION]

            identities = [artifact]
            aliases = _child(artifact, "aliases")
            if aliases is not None:
                identities.extend(a for a in aliases if _local_name(a.tag) == "alias")

            for ident in identities:
                try:
                    base = ArtifactCoordinate(
                        group_id=_child_text(ident, "groupId") or "",
                        artifact_id=_child_text(ident, "artifactId") or "",
                        extension=_child_text(ident, "extension"),
                        classifier=_child_text(ident, "classifier"),
                    )
                except ValueError as e:
                    raise MalformedFragment(f"invalid artifact identity: {e}", source=name) from e
                for version in versions:
                    # First registration wins within a document
                    records.setdefault(base.with_version(version), (path, namespace))

        return cls(name, records)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "MetadataSource":
        """Load a (possibly gzip-compressed) metadata file.

        Raises:
            OSError when unreadable; MalformedFragment when unparsable or
            when the gzip stream is corrupt.
        """
        p = Path(path)
        data = p.read_bytes()
        if data[:2] == _GZIP_MAGIC:
            try:
                data = gzip.decompress(data)
            except (OSError, EOFError, zlib.error) as e:
                raise MalformedFragment(f"corrupt gzip stream: {e}", source=str(p)) from e
        return cls.from_xml(data, name=str(p))

    def lookup(self, coord: ArtifactCoordinate) -> Optional[ArtifactMetadata]:
        """Exact lookup, version included."""
        hit = self._records.get(coord)
        if hit is None:
            return None
        path, namespace = hit
        return ArtifactMetadata(
            coordinate=coord,
            path=path,
            version=coord.version or DEFAULT_VERSION,
            source=self._name,
            namespace=namespace,
        )


class MetadataResolver:
    """Resolve coordinates against metadata sources in priority order.

    Policy: exact version across all sources first, then (unless the request
    already carries the sentinel) the DEFAULT_VERSION sentinel. First match
    wins; ``None`` means the distro does not provide the artifact.
    """

    def __init__(self, sources: Iterable[MetadataSource]) -> None:
        self._sources = tuple(sources)

    @classmethod
    def from_paths(cls, paths: Iterable[Union[str, Path]]) -> "MetadataResolver":
        """Load sources from files; unreadable or malformed ones are skipped.

        A directory contributes its regular files in sorted name order.
        """
        files: list[Path] = []
        for entry in paths:
            p = Path(entry)
            if p.is_dir():
                try:
                    files.extend(f for f in sorted(p.iterdir()) if f.is_file())
                except OSError as e:
                    _logger.warning(
                        "could not list metadata directory %s: %s",
                        p,
                        e,
                        extra={"op": "load_metadata", "source": str(p)},
                    )
            else:
                files.append(p)

        sources: list[MetadataSource] = []
        for path in files:
            try:
                sources.append(MetadataSource.from_file(path))
            except (OSError, MalformedFragment) as e:
                _logger.warning(
                    "skipping metadata source %s: %s",
                    path,
                    e,
                    extra={"op": "load_metadata", "source": str(path)},
                )
        return cls(sources)

    @property
    def sources(self) -> tuple[MetadataSource, ...]:
        return self._sources

    def _first(self, coord: ArtifactCoordinate) -> Optional[ArtifactMetadata]:
        for source in self._sources:
            metadata = source.lookup(coord)
            if metadata is not None:
                return metadata
        return None

    def resolve(self, coord: ArtifactCoordinate) -> Optional[ArtifactMetadata]:
        metadata = self._first(coord)
        if metadata is None and coord.version != DEFAULT_VERSION:
            metadata = self._first(coord.with_version(DEFAULT_VERSION))
        if metadata is None:
            _logger.debug("metadata not found for %s", coord, extra={"op": "resolve_metadata"})
        return metadata


__all__ = ["MetadataSource", "MetadataResolver"]

"""Repository nodes and the configuration-time factory that wires them.

Repositories form a tree built once at configuration time:

- ``metadata``: answers from installed-artifact metadata documents
- ``jpp``: answers from the flat installed-JAR layout under a directory
- ``depmap``: rewrites coordinates through merged depmap fragments, then asks
  its delegate repository
- ``compound``: asks its children in configured order, first match wins

Every node may carry a filter condition; a node whose filter rejects the
requested artifact answers ``None``. Repositories are read-only: ``store``
always raises :class:`UnsupportedOperation`.

Example configuration document::

    <repositories>
      <repository>
        <id>system</id>
        <type>compound</type>
        <properties><prefix>/</prefix></properties>
        <configuration>
          <repositories>
            <repository>installed</repository>
            <repository>java</repository>
          </repositories>
        </configuration>
      </repository>
      <repository>
        <id>installed</id>
        <type>metadata</type>
        <configuration><path>usr/share/maven-metadata/core.xml</path></configuration>
      </repository>
      <repository>
        <id>java</id>
        <type>jpp</type>
        <properties><root>usr/share/java</root></properties>
        <filter><not><equals><extension/><string>pom</string></equals></not></filter>
      </repository>
    </repositories>
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Union
from xml.etree.ElementTree import Element

from defusedxml import DefusedXmlException
from defusedxml import ElementTree as ET  # type: ignore[import-untyped]

from .cache import OnceCache
from .condition import ALWAYS, Condition, parse_condition
from .errors import ConfigurationError, UnsupportedOperation
from .fragments import FragmentLoader
from .metadata import MetadataResolver
from .models import DEFAULT_VERSION, ArtifactCoordinate, ArtifactMetadata

_logger = logging.getLogger(__name__)


class Repository(ABC):
    """A node able to resolve a coordinate to installed-artifact metadata."""

    def __init__(
        self,
        *,
        namespace: str = "",
        filter: Optional[Condition] = None,
        properties: Optional[Mapping[str, str]] = None,
    ) -> None:
        self._namespace = namespace
        self._filter = filter or ALWAYS
        self._properties = dict(properties or {})

    @property
    def namespace(self) -> str:
        return self._namespace

    def resolve(self, coord: ArtifactCoordinate) -> Optional[ArtifactMetadata]:
        if not self._filter.matches(coord, self._properties):
            return None
        metadata = self._resolve(coord)
        if metadata is not None and self._namespace and not metadata.namespace:
            metadata = metadata.model_copy(update={"namespace": self._namespace})
        return metadata

    @abstractmethod
    def _resolve(self, coord: ArtifactCoordinate) -> Optional[ArtifactMetadata]:
        raise NotImplementedError

    def store(self, coord: ArtifactCoordinate, path: Union[str, Path]) -> None:
        raise UnsupportedOperation(
            f"Storing artifacts through {type(self).__name__} is not supported: {coord}"
        )


class MetadataRepository(Repository):
    """Leaf repository backed by metadata documents.

    Documents are read on first use, once, even under concurrent callers.
    """

    def __init__(self, metadata_paths: Sequence[Union[str, Path]], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._paths = tuple(Path(p) for p in metadata_paths)
        self._resolver_cache: OnceCache[tuple[Path, ...], MetadataResolver] = OnceCache()

    def _resolver(self) -> Optional[MetadataResolver]:
        return self._resolver_cache.get_or_compute(
            self._paths, lambda: MetadataResolver.from_paths(self._paths)
        )

    def _resolve(self, coord: ArtifactCoordinate) -> Optional[ArtifactMetadata]:
        resolver = self._resolver()
        if resolver is None:
            return None
        return resolver.resolve(coord)


def jpp_relative_path(coord: ArtifactCoordinate, versioned: bool) -> Path:
    """Relative location of an artifact in the flat JPP layout."""
    group = coord.group_id
    if group == "JPP":
        base = coord.artifact_id
    elif group.startswith("JPP/"):
        base = f"{group[4:]}/{coord.artifact_id}"
    else:
        base = f"{group}/{coord.artifact_id}"
    if versioned:
        base += f"-{coord.version}"
    if coord.classifier:
        base += f"-{coord.classifier}"
    return Path(f"{base}.{coord.extension}")


class JppRepository(Repository):
    """Leaf repository over the flat installed-JAR layout under ``root``.

    A versioned file is preferred; the unversioned file satisfies any version
    and is reported with the DEFAULT_VERSION sentinel.
    """

    def __init__(self, root: Union[str, Path], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._root = Path(root)

    def _resolve(self, coord: ArtifactCoordinate) -> Optional[ArtifactMetadata]:
        candidates: list[tuple[Path, str]] = []
        if coord.version and coord.version != DEFAULT_VERSION:
            candidates.append((jpp_relative_path(coord, True), coord.version))
        candidates.append((jpp_relative_path(coord, False), DEFAULT_VERSION))

        for rel, version in candidates:
            path = self._root / rel
            if path.is_file():
                return ArtifactMetadata(
                    coordinate=coord,
                    path=str(path),
                    version=version,
                    source=str(self._root),
                )
        return None


class DepmapRepository(Repository):
    """Rewrites a coordinate through the merged depmap before delegating.

    Mapped targets are tried in sorted order, then the coordinate itself.
    """

    def __init__(
        self,
        loader: FragmentLoader,
        root: Union[str, Path],
        fragment_paths: Sequence[str],
        delegate: Repository,
        *,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._loader = loader
        self._root = Path(root)
        self._fragment_paths = tuple(fragment_paths)
        self._delegate = delegate
        self._timeout = timeout

    def candidates(self, coord: ArtifactCoordinate) -> list[ArtifactCoordinate]:
        depmap = self._loader.load_merged_map(self._root, self._fragment_paths, timeout=self._timeout)
        result: list[ArtifactCoordinate] = []
        if depmap is not None:
            for target in sorted(depmap.lookup(coord), key=ArtifactCoordinate.sort_key):
                result.append(
                    target.model_copy(
                        update={
                            "extension": coord.extension,
                            "classifier": target.classifier or coord.classifier,
                            "version": coord.version,
                        }
                    )
                )
        if coord not in result:
            result.append(coord)
        return result

    def _resolve(self, coord: ArtifactCoordinate) -> Optional[ArtifactMetadata]:
        for candidate in self.candidates(coord):
            metadata = self._delegate.resolve(candidate)
            if metadata is not None:
                return metadata
        return None


class CompoundRepository(Repository):
    """Ordered chain of child repositories; first match wins.

    Relative paths reported by children are anchored under ``prefix``.
    """

    def __init__(
        self,
        namespace: str,
        prefix: Optional[Union[str, Path]],
        children: Iterable[Repository],
        **kwargs: Any,
    ) -> None:
        super().__init__(namespace=namespace, **kwargs)
        self._prefix = Path(prefix) if prefix is not None else None
        self._children = tuple(children)

    def _resolve(self, coord: ArtifactCoordinate) -> Optional[ArtifactMetadata]:
        for child in self._children:
            metadata = child.resolve(coord)
            if metadata is None:
                continue
            if self._prefix is not None and not Path(metadata.path).is_absolute():
                metadata = metadata.model_copy(update={"path": str(self._prefix / metadata.path)})
            return metadata
        return None


# --- configuration ---


def _local_name(tag: Any) -> str:
    tag = str(tag)
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _text(elem: Element) -> str:
    return (elem.text or "").strip()


@dataclass(frozen=True)
class RepositoryDefinition:
    id: str
    type: str
    properties: Mapping[str, str] = field(default_factory=dict)
    configuration: Optional[Element] = None
    filter: Optional[Element] = None


def parse_repository_definitions(document: Union[str, bytes]) -> list[RepositoryDefinition]:
    """Read ``<repository>`` definitions from a ``<repositories>`` document.

    Raises:
        ConfigurationError for invalid XML or definitions of the wrong shape.
    """
    try:
        root = ET.fromstring(document)
    except (ET.ParseError, DefusedXmlException) as e:
        raise ConfigurationError(f"Unable to parse repository configuration: {e}") from e

    definitions: list[RepositoryDefinition] = []
    seen: set[str] = set()
    for elem in root:
        if _local_name(elem.tag) != "repository":
            raise ConfigurationError(f"Unexpected element <{_local_name(elem.tag)}> in repository configuration")
        parts: dict[str, Element] = {}
        for child in elem:
            name = _local_name(child.tag)
            if name in parts:
                raise ConfigurationError(f"Repository definition has more than one <{name}>")
            parts[name] = child

        repo_id = _text(parts["id"]) if "id" in parts else ""
        repo_type = _text(parts["type"]) if "type" in parts else ""
        if not repo_id or not repo_type:
            raise ConfigurationError("Repository definition requires non-empty <id> and <type>")
        if repo_id in seen:
            raise ConfigurationError(f"Duplicate repository id: {repo_id}")
        seen.add(repo_id)

        properties: dict[str, str] = {}
        if "properties" in parts:
            for prop in parts["properties"]:
                properties[_local_name(prop.tag)] = _text(prop)

        definitions.append(
            RepositoryDefinition(
                id=repo_id,
                type=repo_type,
                properties=properties,
                configuration=parts.get("configuration"),
                filter=parts.get("filter"),
            )
        )
    return definitions


_Factory = Callable[[RepositoryDefinition, str, Optional[Condition], tuple[str, ...]], Repository]


class RepositoryConfigurator:
    """Builds repository trees from definitions, keyed by repository type.

    Construction performs no I/O, so configuration errors surface before any
    resolution traffic. Relative paths are taken relative to ``root``.
    """

    def __init__(
        self,
        definitions: Iterable[RepositoryDefinition],
        *,
        root: Union[str, Path] = "/",
        loader: Optional[FragmentLoader] = None,
        properties: Optional[Mapping[str, str]] = None,
        load_timeout: Optional[float] = None,
    ) -> None:
        self._definitions = {d.id: d for d in definitions}
        self._root = Path(root)
        self._loader = loader or FragmentLoader()
        self._properties = dict(properties or {})
        self._load_timeout = load_timeout
        self._factories: dict[str, _Factory] = {
            "compound": self._compound,
            "metadata": self._metadata,
            "jpp": self._jpp,
            "depmap": self._depmap,
        }

    def configure_repository(self, repo_id: str, namespace: str = "") -> Repository:
        return self._configure(repo_id, namespace, ())

    def _configure(self, repo_id: str, namespace: str, stack: tuple[str, ...]) -> Repository:
        if repo_id in stack:
            raise ConfigurationError(f"Repository reference cycle: {' -> '.join(stack + (repo_id,))}")
        definition = self._definitions.get(repo_id)
        if definition is None:
            raise ConfigurationError(f"Repository {repo_id!r} is not defined")
        factory = self._factories.get(definition.type)
        if factory is None:
            raise ConfigurationError(f"Repository {repo_id!r} has unknown type {definition.type!r}")

        repo_filter = parse_condition(definition.filter) if definition.filter is not None else None
        _logger.debug("configuring repository %s (%s)", repo_id, definition.type, extra={"op": "configure"})
        return factory(definition, namespace, repo_filter, stack + (repo_id,))

    def _path(self, value: str) -> Path:
        return self._root / value

    def _config_paths(self, definition: RepositoryDefinition) -> list[str]:
        config = definition.configuration
        paths = [] if config is None else [_text(c) for c in config if _local_name(c.tag) == "path"]
        if not paths or not all(paths):
            raise ConfigurationError(
                f"{definition.type} repository {definition.id!r} expects configuration "
                "with one or more non-empty <path> elements"
            )
        return paths

    def _compound(
        self,
        definition: RepositoryDefinition,
        namespace: str,
        repo_filter: Optional[Condition],
        stack: tuple[str, ...],
    ) -> Repository:
        prefix = self._path(definition.properties["prefix"]) if definition.properties.get("prefix") else None

        config = definition.configuration
        if config is None or len(config) != 1 or _local_name(config[0].tag) != "repositories":
            raise ConfigurationError(
                "compound repository expects configuration with exactly one child element: <repositories>"
            )

        children: list[Repository] = []
        for child in config[0]:
            if _local_name(child.tag) != "repository" or len(child) > 0:
                raise ConfigurationError("All children of <repositories> must be <repository> text nodes")
            children.append(self._configure(_text(child), namespace, stack))

        if not namespace:
            namespace = definition.properties.get("namespace", "")

        return CompoundRepository(namespace, prefix, children, filter=repo_filter, properties=self._properties)

    def _metadata(
        self,
        definition: RepositoryDefinition,
        namespace: str,
        repo_filter: Optional[Condition],
        stack: tuple[str, ...],
    ) -> Repository:
        paths = [self._path(p) for p in self._config_paths(definition)]
        return MetadataRepository(
            paths,
            namespace=namespace or definition.properties.get("namespace", ""),
            filter=repo_filter,
            properties=self._properties,
        )

    def _jpp(
        self,
        definition: RepositoryDefinition,
        namespace: str,
        repo_filter: Optional[Condition],
        stack: tuple[str, ...],
    ) -> Repository:
        root = definition.properties.get("root")
        if not root:
            raise ConfigurationError(f"jpp repository {definition.id!r} requires a <root> property")
        return JppRepository(
            self._path(root),
            namespace=namespace or definition.properties.get("namespace", ""),
            filter=repo_filter,
            properties=self._properties,
        )

    def _depmap(
        self,
        definition: RepositoryDefinition,
        namespace: str,
        repo_filter: Optional[Condition],
        stack: tuple[str, ...],
    ) -> Repository:
        paths = self._config_paths(definition)
        config = definition.configuration
        delegates = [] if config is None else [c for c in config if _local_name(c.tag) == "repository"]
        if len(delegates) != 1 or len(delegates[0]) > 0 or not _text(delegates[0]):
            raise ConfigurationError(
                f"depmap repository {definition.id!r} expects exactly one <repository> text node"
            )
        delegate = self._configure(_text(delegates[0]), namespace, stack)
        root = definition.properties.get("root")
        return DepmapRepository(
            self._loader,
            self._path(root) if root else self._root,
            paths,
            delegate,
            timeout=self._load_timeout,
            namespace=namespace or definition.properties.get("namespace", ""),
            filter=repo_filter,
            properties=self._properties,
        )


__all__ = [
    "Repository",
    "MetadataRepository",
    "JppRepository",
    "DepmapRepository",
    "CompoundRepository",
    "RepositoryDefinition",
    "RepositoryConfigurator",
    "parse_repository_definitions",
    "jpp_relative_path",
]

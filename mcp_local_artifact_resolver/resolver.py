"""Resolution facade consumed by tools and build integrations.

``SystemResolver.resolve`` never raises for a missing artifact; callers turn
``ResolutionResult.found == False`` into their own diagnostics.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .config import Settings
from .fragments import FragmentLoader
from .models import ArtifactCoordinate, ResolutionResult
from .repository import (
    CompoundRepository,
    DepmapRepository,
    JppRepository,
    MetadataRepository,
    Repository,
    RepositoryConfigurator,
    parse_repository_definitions,
)

_logger = logging.getLogger(__name__)


class SystemResolver:
    def __init__(self, repository: Repository) -> None:
        self._repository = repository

    @property
    def repository(self) -> Repository:
        return self._repository

    def resolve(self, coord: ArtifactCoordinate) -> ResolutionResult:
        metadata = self._repository.resolve(coord)
        if metadata is None:
            _logger.debug("unable to resolve artifact %s", coord, extra={"op": "resolve"})
            return ResolutionResult(coordinate=coord)
        return ResolutionResult(
            coordinate=coord,
            artifact_path=metadata.path,
            compat_version=metadata.version,
            namespace=metadata.namespace or None,
            source=metadata.source or None,
        )


def build_repository(settings: Settings, loader: Optional[FragmentLoader] = None) -> Repository:
    """Wire the repository tree described by ``settings``.

    Without REPOSITORY_CONFIG the chain is: depmap rewrite -> compound
    [installed metadata, JPP layout].

    Raises:
        ConfigurationError / MalformedExpression for invalid configuration
        documents; OSError when REPOSITORY_CONFIG cannot be read.
    """
    loader = loader or FragmentLoader()
    root = Path(settings.RESOLVER_ROOT)

    if settings.REPOSITORY_CONFIG:
        document = (root / settings.REPOSITORY_CONFIG).read_bytes()
        configurator = RepositoryConfigurator(
            parse_repository_definitions(document),
            root=root,
            loader=loader,
            load_timeout=settings.FRAGMENT_LOAD_TIMEOUT_SECONDS,
        )
        return configurator.configure_repository(settings.REPOSITORY_ID)

    installed = CompoundRepository(
        "",
        root,
        [
            MetadataRepository([root / p for p in settings.METADATA_PATHS]),
            JppRepository(root / settings.JAVA_ROOT),
        ],
    )
    return DepmapRepository(
        loader,
        root,
        settings.DEPMAP_PATHS,
        installed,
        timeout=settings.FRAGMENT_LOAD_TIMEOUT_SECONDS,
    )


def build_default_resolver(
    settings: Optional[Settings] = None, loader: Optional[FragmentLoader] = None
) -> SystemResolver:
    return SystemResolver(build_repository(settings or Settings(), loader))


__all__ = ["SystemResolver", "build_repository", "build_default_resolver"]

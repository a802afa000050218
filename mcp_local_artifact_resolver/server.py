"""MCP STDIO server and tool definitions.

Design notes:
- Transport adapter stays thin; core logic lives in resolver/fragments and is
  re-usable by other consumers.
- The resolution engine is synchronous; tools run it through
  ``asyncio.to_thread`` so concurrent tool calls share the same fragment cache.
- Logging goes to stderr via the central logging config.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional

from fastmcp import FastMCP

from .config import Settings
from .fragments import FragmentLoader
from .logging_config import configure_logging
from .models import ArtifactCoordinate, MappingLookupResponse, ResolutionResult
from .resolver import SystemResolver, build_default_resolver
from .serialization import render_resolved_dependencies

_logger = logging.getLogger(__name__)

_settings = Settings()
configure_logging(_settings.LOG_LEVEL, json_logs=_settings.LOG_JSON)

# One loader per process so every tool observes the same merged maps
_loader = FragmentLoader()
_resolver: Optional[SystemResolver] = None
_resolver_lock = threading.Lock()


def get_resolver() -> SystemResolver:
    global _resolver
    with _resolver_lock:
        if _resolver is None:
            _resolver = build_default_resolver(_settings, _loader)
        return _resolver


def resolve_artifact_core(*, coordinate: str) -> ResolutionResult:
    """Resolve one coordinate string (transport-neutral).

    Errors:
    - Unparsable coordinates raise ValueError, surfaced as a tool error.
    - A missing artifact is not an error: ``artifact_path`` is None.
    """
    coord = ArtifactCoordinate.parse(coordinate)
    return get_resolver().resolve(coord)


def lookup_mapping_core(*, coordinate: str) -> MappingLookupResponse:
    """Return the distro-local identities a coordinate is mapped to."""
    coord = ArtifactCoordinate.parse(coordinate)
    depmap = _loader.load_merged_map(
        Path(_settings.RESOLVER_ROOT),
        _settings.DEPMAP_PATHS,
        timeout=_settings.FRAGMENT_LOAD_TIMEOUT_SECONDS,
    )
    targets = [] if depmap is None else sorted(depmap.lookup(coord), key=ArtifactCoordinate.sort_key)
    return MappingLookupResponse(coordinate=coord, targets=targets)


async def resolve_artifacts_core(coordinates: list[str]) -> list[ResolutionResult]:
    """Resolve several coordinates concurrently, keeping input order."""
    _logger.info("resolving artifacts", extra={"op": "resolve_artifacts", "count": len(coordinates)})
    return list(
        await asyncio.gather(
            *(asyncio.to_thread(resolve_artifact_core, coordinate=c) for c in coordinates)
        )
    )


_server = FastMCP("mcp-local-artifact-resolver")


@_server.tool()
async def resolve_artifact(coordinate: str) -> dict:
    """Locate an installed artifact for ``groupId:artifactId[:extension[:classifier]]:version``."""

    result = await asyncio.to_thread(resolve_artifact_core, coordinate=coordinate)
    return result.model_dump()


@_server.tool()
async def lookup_mapping(coordinate: str) -> dict:
    """Return the distro identities the coordinate is remapped to by depmap fragments."""

    result = await asyncio.to_thread(lookup_mapping_core, coordinate=coordinate)
    return result.model_dump()


@_server.tool()
async def generate_build_dependencies(coordinates: list[str]) -> str:
    """Resolve coordinates and render them as a build-dependency document."""

    results = await resolve_artifacts_core(coordinates)
    return render_resolved_dependencies(results)


def run() -> None:  # pragma: no cover
    _server.run(transport=_settings.TRANSPORT)


__all__ = [
    "resolve_artifact_core",
    "resolve_artifacts_core",
    "lookup_mapping_core",
    "get_resolver",
    "run",
]

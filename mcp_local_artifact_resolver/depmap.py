"""In-memory dependency map merged from distro fragments.

Keys and targets are stripped coordinates (no version, default extension).
All collections use set semantics so merging the same record twice is
idempotent. Once published by the fragment loader the map is frozen and
shared read-only between threads.
"""

from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation
from typing import Iterator, Optional

from .errors import InvalidVersionFormat
from .models import ArtifactCoordinate, strip_version, strip_version_and_extension

_logger = logging.getLogger(__name__)


def parse_version_floor(version: str) -> Decimal:
    """Parse a version floor such as ``"1.8"`` or ``"11"`` into a Decimal."""
    try:
        number = Decimal((version or "").strip())
    except InvalidOperation as e:
        raise InvalidVersionFormat(f"Version floor is not a decimal number: {version!r}") from e
    if not number.is_finite():
        raise InvalidVersionFormat(f"Version floor is not a finite number: {version!r}")
    return number


class DependencyMap:
    def __init__(self) -> None:
        self._mapping: dict[ArtifactCoordinate, set[ArtifactCoordinate]] = {}
        self._runtime: set[ArtifactCoordinate] = set()
        self._build: set[ArtifactCoordinate] = set()
        self._runtime_floor: Optional[Decimal] = None
        self._build_floor: Optional[Decimal] = None
        self._frozen = False

    # --- mutation ---
    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("dependency map is published and read-only")

    def add_mapping(self, source: ArtifactCoordinate, target: ArtifactCoordinate) -> None:
        self._check_mutable()
        key = strip_version_and_extension(source)
        self._mapping.setdefault(key, set()).add(strip_version_and_extension(target))
        _logger.debug("Added mapping %s => %s", key, target)

    def add_runtime_dependency(self, coord: ArtifactCoordinate) -> None:
        self._check_mutable()
        self._runtime.add(strip_version(coord))

    def add_build_dependency(self, coord: ArtifactCoordinate) -> None:
        self._check_mutable()
        self._build.add(strip_version(coord))

    def add_version_floor(self, is_build_time: bool, version: str) -> None:
        """Record a minimum version, keeping the maximum seen per category."""
        self._check_mutable()
        number = parse_version_floor(version)
        if is_build_time:
            if self._build_floor is None or self._build_floor < number:
                self._build_floor = number
        else:
            if self._runtime_floor is None or self._runtime_floor < number:
                self._runtime_floor = number

    def merge(self, other: "DependencyMap") -> None:
        """Union ``other`` into this map."""
        self._check_mutable()
        for source, targets in other._mapping.items():
            self._mapping.setdefault(source, set()).update(targets)
        self._runtime.update(other._runtime)
        self._build.update(other._build)
        if other._runtime_floor is not None:
            self.add_version_floor(False, str(other._runtime_floor))
        if other._build_floor is not None:
            self.add_version_floor(True, str(other._build_floor))

    def optimize(self) -> None:
        """Drop unconditional dependencies that are already mapping sources.

        Must only be called after all merging is complete.
        """
        self._check_mutable()
        self._runtime = {d for d in self._runtime if strip_version_and_extension(d) not in self._mapping}
        self._build = {d for d in self._build if strip_version_and_extension(d) not in self._mapping}

    def freeze(self) -> "DependencyMap":
        self._frozen = True
        return self

    # --- queries ---
    @property
    def frozen(self) -> bool:
        return self._frozen

    def lookup(self, coord: ArtifactCoordinate) -> frozenset[ArtifactCoordinate]:
        return frozenset(self._mapping.get(strip_version_and_extension(coord), ()))

    def is_empty(self) -> bool:
        return (
            not self._mapping
            and not self._runtime
            and not self._build
            and self._runtime_floor is None
            and self._build_floor is None
        )

    @property
    def runtime_version_floor(self) -> Optional[Decimal]:
        return self._runtime_floor

    @property
    def build_version_floor(self) -> Optional[Decimal]:
        return self._build_floor

    # Sorted iteration so that serialized output is deterministic
    def mappings(self) -> Iterator[tuple[ArtifactCoordinate, ArtifactCoordinate]]:
        for source in sorted(self._mapping, key=ArtifactCoordinate.sort_key):
            for target in sorted(self._mapping[source], key=ArtifactCoordinate.sort_key):
                yield source, target

    def runtime_dependencies(self) -> list[ArtifactCoordinate]:
        return sorted(self._runtime, key=ArtifactCoordinate.sort_key)

    def build_dependencies(self) -> list[ArtifactCoordinate]:
        return sorted(self._build, key=ArtifactCoordinate.sort_key)

    def __len__(self) -> int:
        return sum(len(targets) for targets in self._mapping.values())


__all__ = ["DependencyMap", "parse_version_floor"]

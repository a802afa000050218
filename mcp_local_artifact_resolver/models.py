"""Pydantic domain and response models.

Coordinates are frozen (hashable) so they can be used directly as set members
and mapping keys by the dependency map and the metadata index. The helpers at
the bottom of the module implement the version-compatibility model shared by
every resolver.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Reasonable maximum length for coordinate parts; distro-provided ids are far
# shorter in practice.
_COORD_PART_MAX_LEN = 200

DEFAULT_EXTENSION = "jar"

# Reserved "compat" version: the artifact satisfies any requested version.
DEFAULT_VERSION = "SYSTEM"


class ArtifactCoordinate(BaseModel):
    """Represents a dependency coordinate (groupId:artifactId:extension:classifier:version).

    ``version=None`` means "unspecified", which is distinct from the
    :data:`DEFAULT_VERSION` sentinel.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    group_id: str = Field(..., min_length=1, max_length=_COORD_PART_MAX_LEN)
    artifact_id: str = Field(..., min_length=1, max_length=_COORD_PART_MAX_LEN)
    extension: str = DEFAULT_EXTENSION
    classifier: str = ""
    version: Optional[str] = None

    @field_validator("group_id", "artifact_id")
    @classmethod
    def _strip_and_validate(cls, v: str) -> str:
        v_stripped = v.strip()
        if not v_stripped:
            raise ValueError("must not be empty")
        return v_stripped

    @field_validator("extension", mode="before")
    @classmethod
    def _default_extension(cls, v: Optional[str]) -> str:
        return (v or "").strip() or DEFAULT_EXTENSION

    @field_validator("classifier", mode="before")
    @classmethod
    def _blank_classifier(cls, v: Optional[str]) -> str:
        return (v or "").strip()

    @classmethod
    def parse(cls, text: str) -> "ArtifactCoordinate":
        """Parse ``groupId:artifactId[:extension[:classifier]]:version``.

        ``g:a`` and ``g:a:`` both mean "any version" and yield the
        :data:`DEFAULT_VERSION` sentinel.
        """
        s = (text or "").strip()
        if s.count(":") == 1:
            s += ":"
        if s.endswith(":"):
            s += DEFAULT_VERSION

        parts = s.split(":")
        if len(parts) < 3 or len(parts) > 5:
            raise ValueError(
                f"Bad artifact coordinates {text!r}, expected format is "
                "<groupId>:<artifactId>[:<extension>[:<classifier>]]:<version>"
            )

        group_id, artifact_id = parts[0], parts[1]
        version = parts[-1]
        extension = parts[2] if len(parts) >= 4 else DEFAULT_EXTENSION
        classifier = parts[3] if len(parts) == 5 else ""
        return cls(
            group_id=group_id,
            artifact_id=artifact_id,
            extension=extension,
            classifier=classifier,
            version=version or None,
        )

    def with_version(self, version: Optional[str]) -> "ArtifactCoordinate":
        return self.model_copy(update={"version": version})

    def sort_key(self) -> tuple[str, str, str, str, str]:
        return (self.group_id, self.artifact_id, self.extension, self.classifier, self.version or "")

    def __str__(self) -> str:
        return ":".join(
            (self.group_id, self.artifact_id, self.extension, self.classifier, self.version or "")
        )


class ArtifactMetadata(BaseModel):
    """Result of a successful resolution. Created fresh per call."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    coordinate: ArtifactCoordinate
    path: str = Field(..., min_length=1)
    # Resolved compat version: the requested version or DEFAULT_VERSION
    version: str = Field(..., min_length=1)
    source: str = ""
    namespace: str = ""


class ResolutionResult(BaseModel):
    """Response model of the resolution facade.

    ``artifact_path`` is ``None`` when the host does not provide the artifact.
    """

    model_config = ConfigDict(extra="ignore")

    coordinate: ArtifactCoordinate
    artifact_path: Optional[str] = None
    compat_version: Optional[str] = None
    namespace: Optional[str] = None
    source: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.artifact_path is not None


class MappingLookupResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    coordinate: ArtifactCoordinate
    targets: list[ArtifactCoordinate] = Field(default_factory=list)


def strip_version(coord: ArtifactCoordinate) -> ArtifactCoordinate:
    """Drop the version only."""
    return coord.with_version(None)


def strip_version_and_extension(coord: ArtifactCoordinate) -> ArtifactCoordinate:
    """Drop the version and normalize the extension to the default."""
    return coord.model_copy(update={"version": None, "extension": DEFAULT_EXTENSION})


def is_compatible_version(requested: ArtifactCoordinate, candidate: ArtifactCoordinate) -> bool:
    """True iff the versions match or the candidate carries the compat sentinel."""
    return requested.version == candidate.version or candidate.version == DEFAULT_VERSION


__all__ = [
    "DEFAULT_EXTENSION",
    "DEFAULT_VERSION",
    "ArtifactCoordinate",
    "ArtifactMetadata",
    "ResolutionResult",
    "MappingLookupResponse",
    "strip_version",
    "strip_version_and_extension",
    "is_compatible_version",
]

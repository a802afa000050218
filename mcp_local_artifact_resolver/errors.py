"""Exception taxonomy for the resolution engine.

Resolution misses are not errors: resolvers return ``None`` (or a
``ResolutionResult`` with ``found == False``) so callers can tell "not found"
from "lookup failed".
"""

from __future__ import annotations


class ResolverError(Exception):
    """Base class for all errors raised by the resolution engine."""


class MalformedExpression(ResolverError, ValueError):
    """A condition document violates the expression grammar."""


class MalformedFragment(ResolverError, ValueError):
    """A fragment (or metadata) document failed to parse or has a bad shape."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(f"{source}: {message}" if source else message)
        self.source = source


class InvalidVersionFormat(ResolverError, ValueError):
    """A version floor is not a comparable decimal number."""


class ConfigurationError(ResolverError):
    """A repository definition does not have the required shape."""


class UnsupportedOperation(ResolverError):
    """Publishing through a read-only repository."""


__all__ = [
    "ResolverError",
    "MalformedExpression",
    "MalformedFragment",
    "InvalidVersionFormat",
    "ConfigurationError",
    "UnsupportedOperation",
]

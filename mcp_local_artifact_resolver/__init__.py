"""Top-level package for mcp-local-artifact-resolver.

Exports the centralized logging configuration and the resolution facade.
"""

from .logging_config import configure_logging  # re-export for convenience
from .resolver import SystemResolver, build_default_resolver

__all__ = ["configure_logging", "SystemResolver", "build_default_resolver"]

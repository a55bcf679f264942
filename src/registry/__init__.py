"""Registry and canonical-source adapters."""

from .client import NpmRegistryClient
from .monorepo import CanonicalSourceClient, parse_monorepo_directory

__all__ = ["CanonicalSourceClient", "NpmRegistryClient", "parse_monorepo_directory"]

"""Canonical source client: family manifests as they were at a release tag.

The registry-published manifest of a family package points back at its
directory inside the family monorepo (``repository.url`` plus
``repository.directory``). The unpublished package.json at that location
still carries ``workspace:`` links, which is what reveals intra-family peers.
"""

from __future__ import annotations

import logging
from typing import Optional

from common.errors import NotAFamilyPackageError, RegistryConnectionError, RegistryNotFoundError
from common.http_client import HttpClient
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from manifest.models import Manifest, PackageIdentity, RepositoryInfo, decode_manifest
from resolution.family import FamilyConfig

from .client import NpmRegistryClient

logger = logging.getLogger(__name__)


def parse_monorepo_directory(manifest: Manifest, config: FamilyConfig) -> Optional[str]:
    """Return the package's directory inside the canonical monorepo, if any."""
    repository = manifest.repository
    if not isinstance(repository, RepositoryInfo):
        return None
    if not repository.url or not config.is_canonical_repository_url(repository.url):
        return None
    return repository.directory


class CanonicalSourceClient:
    """Fetches historical family manifests from the canonical repository."""

    def __init__(self, http: HttpClient, registry: NpmRegistryClient, config: FamilyConfig):
        self._http = http
        self._registry = registry
        self._config = config

    def manifest_url(self, release_tag: PackageIdentity, directory: str) -> str:
        return f"{self._config.raw_base_url.rstrip('/')}/{release_tag.specifier}/{directory.strip('/')}/package.json"

    async def fetch_family_manifest(self, release_tag: PackageIdentity, package_name: str) -> Manifest:
        """Manifest of ``package_name`` at the monorepo tag ``release_tag``.

        Raises:
            NotAFamilyPackageError: the package is not published from the monorepo.
            RegistryNotFoundError: the registry or the tag has no such manifest.
        """
        published = await self._registry.view(PackageIdentity(package_name, "latest"))
        directory = parse_monorepo_directory(published, self._config)
        if directory is None:
            raise NotAFamilyPackageError(package_name)

        url = self.manifest_url(release_tag, directory)
        status, text = await self._http.robust_get(url)
        if status == 0:
            raise RegistryConnectionError(safe_url(url))
        if status != 200:
            raise RegistryNotFoundError(
                f"{package_name} at {release_tag}", f"source manifest unavailable (HTTP {status})"
            )
        manifest = decode_manifest(text)
        if is_debug_enabled(logger):
            logger.debug(
                "Fetched canonical manifest",
                extra=extra_context(
                    event="source_manifest",
                    component="monorepo",
                    package=package_name,
                    tag=release_tag.specifier,
                    target=safe_url(url),
                ),
            )
        return manifest

"""npm registry client: versions of a package as manifests."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from constants import Constants
from common.errors import MalformedManifestError, RegistryConnectionError, RegistryNotFoundError
from common.http_client import HttpClient
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from manifest.models import Manifest, PackageIdentity, manifest_from_dict
from resolution.peers import parse_range, parse_version, satisfies

logger = logging.getLogger(__name__)

PACKUMENT_HEADERS = {
    "Accept": "application/json",
}


def _sort_key(manifest: Manifest):
    return parse_version(manifest.version)


class NpmRegistryClient:
    """Lists and views package versions from an npm-compatible registry."""

    def __init__(self, http: HttpClient, registry_url: str = Constants.REGISTRY_URL_NPM):
        """Initialize the client.

        Args:
            http: Shared HTTP client.
            registry_url: Registry base URL.
        """
        self._http = http
        self._registry_url = registry_url.rstrip("/") + "/"
        self._packuments: Dict[str, Dict[str, Any]] = {}

    def packument_url(self, name: str) -> str:
        # Scoped names keep the leading "@" but encode the slash.
        return self._registry_url + name.replace("/", "%2F")

    async def packument(self, name: str) -> Dict[str, Any]:
        """Fetch the full registry document for ``name``.

        Raises:
            RegistryNotFoundError: the package does not exist.
            RegistryConnectionError: the registry could not be reached.
        """
        cached = self._packuments.get(name)
        if cached is not None:
            return cached
        url = self.packument_url(name)
        status, data, _ = await self._http.get_json(url, headers=PACKUMENT_HEADERS)
        if status == 0:
            raise RegistryConnectionError(safe_url(url))
        if status == 404:
            raise RegistryNotFoundError(name, "package not found in registry")
        if status != 200 or not isinstance(data, dict):
            raise RegistryNotFoundError(name, f"unexpected registry response (HTTP {status})")
        self._packuments[name] = data
        return data

    def _manifests(self, name: str, packument: Dict[str, Any]) -> List[Manifest]:
        manifests = []
        for version, document in (packument.get("versions") or {}).items():
            if parse_version(version) is None:
                continue
            try:
                manifest = manifest_from_dict(document)
            except MalformedManifestError as exc:
                logger.warning("Skipping unreadable registry entry %s@%s: %s", name, version, exc.issue)
                continue
            if parse_version(manifest.version) is None:
                logger.warning("Skipping registry entry %s@%s: version %r is not semver", name, version, manifest.version)
                continue
            manifests.append(manifest)
        # Stable sort keeps registry order among equal-precedence versions.
        manifests.sort(key=_sort_key)
        return manifests

    def _dist_tag(self, packument: Dict[str, Any], tag: str) -> Optional[str]:
        tags = packument.get("dist-tags") or {}
        value = tags.get(tag)
        return value if isinstance(value, str) else None

    async def list(self, identity: PackageIdentity) -> List[Manifest]:
        """All versions of ``identity.name`` satisfying ``identity.version``, ascending.

        The version may be an exact version, a semver range or a dist-tag.
        ``latest`` (the default of a bare name) lists every version; a
        request is only pinned to that tag by ``view``.

        Raises:
            RegistryNotFoundError: no such package or no matching version.
        """
        packument = await self.packument(identity.name)
        manifests = self._manifests(identity.name, packument)

        tagged = None if identity.version == "latest" else self._dist_tag(packument, identity.version)
        if tagged is not None:
            selected = [m for m in manifests if m.version == tagged]
        else:
            spec_str = "*" if identity.version == "latest" else identity.version
            if parse_range(spec_str) is None:
                raise RegistryNotFoundError(identity.specifier, "invalid version range")
            selected = [m for m in manifests if satisfies(m.version, spec_str)]

        if is_debug_enabled(logger):
            logger.debug(
                "Listed registry versions",
                extra=extra_context(
                    event="registry_list",
                    component="registry",
                    package=identity.specifier,
                    candidate_count=len(manifests),
                    matched_count=len(selected),
                ),
            )
        if not selected:
            raise RegistryNotFoundError(identity.specifier, "no version matches")
        return selected

    async def view(self, identity: PackageIdentity) -> Manifest:
        """Resolve ``identity`` to a single manifest.

        A dist-tag (``latest`` included) wins; otherwise the highest match.
        """
        packument = await self.packument(identity.name)
        tagged = self._dist_tag(packument, identity.version)
        if tagged is not None:
            for manifest in self._manifests(identity.name, packument):
                if manifest.version == tagged:
                    return manifest
        return (await self.list(identity))[-1]

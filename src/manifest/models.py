"""Data models for package manifests (package.json) and package identities."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, List, Mapping, Optional, Union

from common.errors import MalformedManifestError


@dataclass(frozen=True)
class PackageIdentity:
    """A package name paired with an exact version or a version range.

    Which of the two ``version`` holds depends on the caller: installed
    inventories carry exact versions, requests carry ranges.
    """
    name: str
    version: str

    @property
    def specifier(self) -> str:
        return f"{self.name}@{self.version}"

    def __str__(self) -> str:
        return self.specifier


def parse_specifier(token: str, default_version: str = "latest") -> PackageIdentity:
    """Split ``name@range`` into a PackageIdentity.

    The leading ``@`` of a scoped name is not a separator, so
    ``@scope/pkg@^1.0.0`` yields ``("@scope/pkg", "^1.0.0")``.
    """
    token = token.strip()
    at = token.rfind("@")
    if at <= 0:
        return PackageIdentity(token, default_version)
    name, version = token[:at], token[at + 1:]
    return PackageIdentity(name, version or default_version)


@dataclass(frozen=True)
class RepositoryInfo:
    """The ``repository`` object of a manifest."""
    url: Optional[str] = None
    directory: Optional[str] = None


@dataclass(frozen=True)
class Manifest:
    """An immutable package.json.

    Two manifests are equal when they describe the same name and version.
    """
    name: str
    version: str
    dependencies: Mapping[str, str] = field(default_factory=dict, compare=False)
    devDependencies: Mapping[str, str] = field(default_factory=dict, compare=False)
    peerDependencies: Mapping[str, str] = field(default_factory=dict, compare=False)
    repository: Union[RepositoryInfo, str, None] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        for attr in ("dependencies", "devDependencies", "peerDependencies"):
            object.__setattr__(self, attr, MappingProxyType(dict(getattr(self, attr))))

    @property
    def identity(self) -> PackageIdentity:
        return PackageIdentity(self.name, self.version)

    @property
    def all_declared_dependencies(self) -> List[PackageIdentity]:
        """Union of dependencies, devDependencies and peerDependencies.

        The version of each entry is the declared range. Duplicate
        (name, range) pairs are reported once, in declaration order.
        """
        seen = []
        for deps in (self.dependencies, self.devDependencies, self.peerDependencies):
            for name, version_range in deps.items():
                identity = PackageIdentity(name, version_range)
                if identity not in seen:
                    seen.append(identity)
        return seen

    def __str__(self) -> str:
        return self.identity.specifier


def _decode_dependency_map(data: Mapping[str, Any], key: str) -> Mapping[str, str]:
    raw = data.get(key)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"'{key}' must be an object")
    for name, version_range in raw.items():
        if not name or not isinstance(version_range, str) or not version_range:
            raise ValueError(f"'{key}' entry {name!r} must map a non-empty name to a non-empty string")
    return raw


def _decode_repository(raw: Any) -> Union[RepositoryInfo, str, None]:
    if isinstance(raw, str):
        return raw
    if isinstance(raw, dict):
        url = raw.get("url") or None
        directory = raw.get("directory") or None
        return RepositoryInfo(
            url=url if isinstance(url, str) else None,
            directory=directory if isinstance(directory, str) else None,
        )
    return None


def manifest_from_dict(data: Any, contents: Optional[str] = None) -> Manifest:
    """Build a Manifest from an already-parsed JSON document.

    Raises:
        MalformedManifestError: when required fields are missing or mistyped.
    """
    raw = contents if contents is not None else json.dumps(data)
    if not isinstance(data, dict):
        raise MalformedManifestError(raw, "expected a JSON object")
    name = data.get("name")
    version = data.get("version")
    if not isinstance(name, str) or not name:
        raise MalformedManifestError(raw, "'name' must be a non-empty string")
    if not isinstance(version, str) or not version:
        raise MalformedManifestError(raw, "'version' must be a non-empty string")
    try:
        return Manifest(
            name=name,
            version=version,
            dependencies=_decode_dependency_map(data, "dependencies"),
            devDependencies=_decode_dependency_map(data, "devDependencies"),
            peerDependencies=_decode_dependency_map(data, "peerDependencies"),
            repository=_decode_repository(data.get("repository")),
        )
    except ValueError as exc:
        raise MalformedManifestError(raw, exc) from exc


def decode_manifest(contents: str) -> Manifest:
    """Decode a package.json document from its JSON text."""
    try:
        data = json.loads(contents)
    except json.JSONDecodeError as exc:
        raise MalformedManifestError(contents, exc) from exc
    return manifest_from_dict(data, contents)


def filter_saved_in_deps(
    dependencies: Mapping[str, str], identities: Iterable[PackageIdentity]
) -> List[PackageIdentity]:
    """Return the identities whose name appears in ``dependencies``."""
    return [identity for identity in identities if identity.name in dependencies]

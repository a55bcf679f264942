"""Family membership rules: which packages belong with the root package."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from constants import Constants, VersionOrders


@dataclass
class FamilyConfig:
    """Naming and source conventions of one package family."""

    root_package: str = Constants.ROOT_PACKAGE
    prefix: str = Constants.FAMILY_PREFIX
    repository: str = Constants.CANONICAL_REPOSITORY
    raw_base_url: str = Constants.RAW_MANIFEST_BASE_URL
    workspace_protocol: str = Constants.WORKSPACE_PROTOCOL
    version_order: VersionOrders = VersionOrders.REGISTRY

    @classmethod
    def from_constants(cls) -> "FamilyConfig":
        """Create config from the (possibly overridden) Constants."""
        return cls(
            root_package=Constants.ROOT_PACKAGE,
            prefix=Constants.FAMILY_PREFIX,
            repository=Constants.CANONICAL_REPOSITORY,
            raw_base_url=Constants.RAW_MANIFEST_BASE_URL.rstrip("/"),
            workspace_protocol=Constants.WORKSPACE_PROTOCOL,
            version_order=VersionOrders(Constants.VERSION_ORDER),
        )

    def is_root(self, name: str) -> bool:
        return name == self.root_package

    def is_family_package(self, name: str) -> bool:
        """True for the root package and every package sharing the family prefix."""
        return self.is_root(name) or name.startswith(self.prefix)

    def is_family_dependency(self, name: str) -> bool:
        """True for family packages other than the root itself."""
        return self.is_family_package(name) and not self.is_root(name)

    def is_workspace_local(self, version_range: Any) -> bool:
        return isinstance(version_range, str) and version_range.startswith(self.workspace_protocol)

    def is_canonical_repository_url(self, url: str) -> bool:
        return f"/{self.repository.lower()}" in url.lower()

"""Installed-package inventory read from a project's node_modules tree.

Handles the flat npm layout, nested ``node_modules`` directories and the
pnpm virtual store (``node_modules/.pnpm/<id>/node_modules``). Symlinked
entries are followed once; directories are de-duplicated by real path.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Iterable, Iterator, List, Optional, Set

from constants import Constants
from common.errors import (
    MalformedManifestError,
    ManifestNotFoundError,
    MultipleRootPackagesFoundError,
    RootPackageNotFoundError,
)
from common.logging_utils import extra_context, is_debug_enabled, Timer
from manifest.io import read_manifest
from manifest.models import Manifest, PackageIdentity
from resolution.family import FamilyConfig

logger = logging.getLogger(__name__)


def _subdirs(path: str) -> List[os.DirEntry]:
    try:
        with os.scandir(path) as entries:
            return sorted((e for e in entries if e.is_dir()), key=lambda e: e.name)
    except OSError:
        return []


class InstalledInventory:
    """Read-only view of the packages installed under ``project_dir``."""

    def __init__(self, project_dir: str = "."):
        self.project_dir = os.path.abspath(project_dir)
        self.node_modules = os.path.join(self.project_dir, Constants.NODE_MODULES_DIR)
        self._manifests: Optional[Dict[str, Manifest]] = None

    def _package_dirs(self) -> Iterator[str]:
        """Yield every package directory reachable from the top node_modules."""
        stack = [self.node_modules]
        seen: Set[str] = set()
        while stack:
            node_modules = stack.pop()
            real = os.path.realpath(node_modules)
            if real in seen or not os.path.isdir(real):
                continue
            seen.add(real)
            for entry in _subdirs(node_modules):
                if entry.name == ".pnpm":
                    for store_entry in _subdirs(entry.path):
                        stack.append(os.path.join(store_entry.path, Constants.NODE_MODULES_DIR))
                    continue
                if entry.name.startswith("."):
                    continue
                scoped = [sub.path for sub in _subdirs(entry.path)] if entry.name.startswith("@") else [entry.path]
                for package_dir in scoped:
                    yield package_dir
                    stack.append(os.path.join(package_dir, Constants.NODE_MODULES_DIR))

    def _load(self) -> Dict[str, Manifest]:
        if self._manifests is not None:
            return self._manifests
        manifests: Dict[str, Manifest] = {}
        with Timer() as timer:
            for package_dir in self._package_dirs():
                path = os.path.join(package_dir, Constants.PACKAGE_JSON_FILE)
                real = os.path.realpath(path)
                if real in manifests or not os.path.isfile(real):
                    continue
                try:
                    manifests[real] = read_manifest(path)
                except MalformedManifestError as exc:
                    logger.debug("Ignoring unreadable manifest %s: %s", path, exc.issue)
        if is_debug_enabled(logger):
            logger.debug(
                "Scanned installed packages",
                extra=extra_context(
                    event="inventory_scan",
                    component="inventory",
                    target=self.node_modules,
                    package_count=len(manifests),
                    duration_ms=timer.duration_ms(),
                ),
            )
        self._manifests = manifests
        return manifests

    def list_installed(self) -> Set[PackageIdentity]:
        """Exact identities of every installed package, at any depth."""
        return {manifest.identity for manifest in self._load().values()}

    def list_paths(self, names: Iterable[str]) -> List[str]:
        """package.json locations of installed packages named in ``names``."""
        wanted = set(names)
        return sorted(path for path, manifest in self._load().items() if manifest.name in wanted)

    def top_level_path(self, name: str) -> str:
        return os.path.join(self.node_modules, *name.split("/"), Constants.PACKAGE_JSON_FILE)

    def read_installed(self, name: str) -> Manifest:
        """Manifest of ``name`` as resolved from the project root.

        Raises:
            ManifestNotFoundError: the package is not installed at top level.
        """
        return read_manifest(self.top_level_path(name))

    def installed_root(self, root_name: str) -> PackageIdentity:
        """The single installed version of the root package.

        Raises:
            RootPackageNotFoundError: not installed.
            MultipleRootPackagesFoundError: installed more than once.
        """
        found = {identity for identity in self.list_installed() if identity.name == root_name}
        if not found:
            raise RootPackageNotFoundError(root_name)
        if len(found) > 1:
            raise MultipleRootPackagesFoundError(found)
        return next(iter(found))

    def family_manifests(self, config: FamilyConfig) -> List[Manifest]:
        """Top-level installed manifests of the family, root included."""
        manifests = []
        for entry in _subdirs(self.node_modules):
            if entry.name.startswith("."):
                continue
            if entry.name.startswith("@"):
                names = [f"{entry.name}/{sub.name}" for sub in _subdirs(entry.path)]
            else:
                names = [entry.name]
            for name in names:
                if not config.is_family_package(name):
                    continue
                try:
                    manifests.append(self.read_installed(name))
                except (ManifestNotFoundError, MalformedManifestError) as exc:
                    logger.warning("Skipping %s: %s", name, exc)
        return manifests

    def exclude_installed(self, identities: Iterable[PackageIdentity]) -> Set[PackageIdentity]:
        """Drop identities that are already installed at exactly that version."""
        remaining = set(identities)
        for identity in list(remaining):
            try:
                installed = self.read_installed(identity.name)
            except (ManifestNotFoundError, MalformedManifestError):
                continue
            remaining.discard(installed.identity)
        return remaining

    def dependents_requiring_root(self, manifest: Manifest, root_name: str) -> List[Manifest]:
        """Installed dependencies of ``manifest`` that peer-depend on the root."""
        names = [dependency.name for dependency in manifest.all_declared_dependencies]
        dependents = []
        for path in self.list_paths(names):
            candidate = self._load()[path]
            if root_name in candidate.peerDependencies:
                dependents.append(candidate)
        return dependents

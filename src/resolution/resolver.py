"""Candidate resolver: one version per requested package, peers mutually met.

Two nested fixpoints. The inner one (``select_consistent_set``) starts from
every registry version that accepts the installed root package and removes
candidates one at a time until the newest remaining version of each requested
package is satisfied by the remaining pool; the pool only ever shrinks, so it
terminates. The outer one (``resolve``) re-runs the inner one whenever an
accepted package declares a family dependency nobody requested or installed.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, FrozenSet, Iterable, List, Optional, Protocol, Sequence, Set, Tuple

from constants import VersionOrders
from common.errors import IncompatibleWithRootError, NoConsistentCandidateError
from common.logging_utils import extra_context, is_debug_enabled
from manifest.models import Manifest, PackageIdentity

from .family import FamilyConfig
from .peers import PeerMatchResult, is_exact_version, match_peers, parse_version

logger = logging.getLogger(__name__)


class RegistryLookup(Protocol):
    async def list(self, identity: PackageIdentity) -> List[Manifest]:
        ...


def _unique_names(requested: Iterable[PackageIdentity]) -> List[str]:
    names: List[str] = []
    for identity in requested:
        if identity.name not in names:
            names.append(identity.name)
    return names


class ResolutionState:
    """Working state of one inner-fixpoint run.

    ``candidate_pool`` holds every still-eligible manifest, grouped by
    requested name and ascending within a name; ``install_set`` holds the
    picks of the current pass.
    """

    def __init__(
        self,
        requested: Sequence[PackageIdentity],
        already_installed: Iterable[PackageIdentity],
        candidate_pool: Iterable[Manifest],
    ):
        self.requested = list(requested)
        self.requested_names = _unique_names(self.requested)
        self.already_installed: Set[PackageIdentity] = set(already_installed)
        self.candidate_pool: List[Manifest] = list(candidate_pool)
        self.install_set: List[Manifest] = []
        self.pool_sizes: List[int] = []

    @property
    def installed_peers(self) -> Set[PackageIdentity]:
        """Installed identities that are not being (re)resolved."""
        return {i for i in self.already_installed if i.name not in self.requested_names}

    def pick(self, name: str) -> Optional[Manifest]:
        """The last (newest) remaining candidate for ``name``."""
        for manifest in reversed(self.candidate_pool):
            if manifest.name == name:
                return manifest
        return None

    def remove(self, manifest: Manifest) -> None:
        self.candidate_pool = [candidate for candidate in self.candidate_pool if candidate != manifest]

    def _satisfied(self, manifest: Manifest, available: Set[PackageIdentity]) -> bool:
        return match_peers(manifest, available).has_all_peer(True)

    def _pass(self) -> Optional[Manifest]:
        """One sweep over the requested names; returns the candidate to remove, if any."""
        self.install_set = []
        available = self.installed_peers | {candidate.identity for candidate in self.candidate_pool}
        for name in self.requested_names:
            picked = self.pick(name)
            if picked is None:
                raise NoConsistentCandidateError(name)
            if not self._satisfied(picked, available):
                return picked
            self.install_set.append(picked)

        # Every pick is met by some candidate; confirm the picks also meet
        # each other. On a clash the chosen peer is dropped, not the pick.
        chosen = self.installed_peers | {manifest.identity for manifest in self.install_set}
        for picked in self.install_set:
            result = match_peers(picked, chosen)
            if not result.has_all_peer(True):
                return self._clashing_peer(result)
        return None

    def _clashing_peer(self, result: PeerMatchResult) -> Manifest:
        """The chosen manifest that one of ``result``'s peer ranges rejects."""
        for manifest in self.install_set:
            if manifest.identity in result.invalid:
                return manifest
        return result.manifest

    def run(self) -> List[Manifest]:
        """Shrink the pool until a full pass rejects nothing."""
        while True:
            self.pool_sizes.append(len(self.candidate_pool))
            rejected = self._pass()
            if rejected is None:
                return list(self.install_set)
            logger.debug("Removing %s from the candidates", rejected.identity)
            self.remove(rejected)


async def _fetch_root_compatible(
    registry: RegistryLookup,
    root_version: PackageIdentity,
    requested: Sequence[PackageIdentity],
    version_order: VersionOrders,
) -> Dict[str, List[Manifest]]:
    first_by_name: Dict[str, PackageIdentity] = {}
    for identity in requested:
        first_by_name.setdefault(identity.name, identity)
    lookups = list(first_by_name.values())
    listings = await asyncio.gather(*(registry.list(identity) for identity in lookups))
    compatible: Dict[str, List[Manifest]] = {}
    for identity, versions in zip(lookups, listings):
        accepted = [m for m in versions if match_peers(m, [root_version]).has_valid(root_version)]
        if version_order == VersionOrders.SEMVER:
            accepted.sort(key=lambda m: parse_version(m.version))
        compatible[identity.name] = accepted
    for identity in lookups:
        if not compatible.get(identity.name):
            raise IncompatibleWithRootError(identity, root_version)
    return compatible


async def select_consistent_set(
    registry: RegistryLookup,
    root_version: PackageIdentity,
    requested: Sequence[PackageIdentity],
    already_installed: Iterable[PackageIdentity],
    version_order: VersionOrders = VersionOrders.REGISTRY,
) -> List[Manifest]:
    """Pick one manifest per requested name such that all peers hold.

    Raises:
        IncompatibleWithRootError: a requested package never accepts ``root_version``.
        NoConsistentCandidateError: a package ran out of candidates.
    """
    compatible = await _fetch_root_compatible(registry, root_version, requested, version_order)
    pool: List[Manifest] = []
    for name in _unique_names(requested):
        pool.extend(compatible[name])

    state = ResolutionState(requested, already_installed, pool)
    accepted = state.run()
    if is_debug_enabled(logger):
        logger.debug(
            "Consistent set selected",
            extra=extra_context(
                event="resolution_pass",
                component="resolver",
                passes=len(state.pool_sizes),
                initial_pool=state.pool_sizes[0],
                final_pool=len(state.candidate_pool),
                accepted=" ".join(str(m) for m in accepted),
            ),
        )
    return accepted


@dataclass(frozen=True)
class Resolution:
    """Outcome of ``resolve``."""

    accepted: Tuple[Manifest, ...]
    requested: Tuple[PackageIdentity, ...]
    installed: FrozenSet[PackageIdentity]
    passes: int

    @property
    def identities(self) -> FrozenSet[PackageIdentity]:
        return frozenset(manifest.identity for manifest in self.accepted)

    def alternatives(self, requested: Iterable[PackageIdentity]) -> List[PackageIdentity]:
        """Accepted identities replacing an exact version that was asked for."""
        chosen = {manifest.name: manifest.identity for manifest in self.accepted}
        result = []
        for identity in requested:
            picked = chosen.get(identity.name)
            if picked is None or not is_exact_version(identity.version):
                continue
            if picked.version != identity.version:
                result.append(picked)
        return result


async def resolve(
    registry: RegistryLookup,
    root_version: PackageIdentity,
    requested: Sequence[PackageIdentity],
    installed: Iterable[PackageIdentity],
    config: Optional[FamilyConfig] = None,
    version_order: Optional[VersionOrders] = None,
) -> Resolution:
    """Resolve ``requested`` against the root, pulling in family dependencies.

    Raises the first error of the inner fixpoint unchanged.
    """
    config = config or FamilyConfig()
    order = version_order or config.version_order
    current_requested = list(requested)
    current_installed: Set[PackageIdentity] = set(installed)
    passes = 0

    while True:
        passes += 1
        accepted = await select_consistent_set(registry, root_version, current_requested, current_installed, order)
        repeat = False
        for manifest in accepted:
            current_installed = {i for i in current_installed if i.name != manifest.name}
            current_installed.add(manifest.identity)
            for dependency in manifest.all_declared_dependencies:
                if not config.is_family_dependency(dependency.name):
                    continue
                if any(r.name == dependency.name for r in current_requested):
                    continue
                if any(i.name == dependency.name for i in current_installed):
                    continue
                logger.info("%s requires %s, adding it to the request", manifest.identity, dependency)
                current_requested.append(dependency)
                repeat = True
        if not repeat:
            return Resolution(
                accepted=tuple(accepted),
                requested=tuple(current_requested),
                installed=frozenset(current_installed),
                passes=passes,
            )

"""Transitive peer discovery over the family monorepo's workspace links.

Published manifests only state version ranges; the monorepo's own manifests
mark sibling packages with ``workspace:`` links. Walking those links from the
packages about to be installed finds every family package they expect to
find next to them.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, FrozenSet, Iterable, List, Optional, Protocol, Set, Tuple

from common.errors import NotAFamilyPackageError
from common.logging_utils import extra_context, is_debug_enabled
from manifest.models import Manifest, PackageIdentity

from .family import FamilyConfig

logger = logging.getLogger(__name__)

# (release tag the manifest is read at, package name)
WalkEntry = Tuple[PackageIdentity, str]


class ManifestHistory(Protocol):
    async def fetch_family_manifest(self, release_tag: PackageIdentity, package_name: str) -> Manifest:
        ...


@dataclass(frozen=True)
class PeerWalkResult:
    """Family packages to add, and peer ranges outside the family's workspace."""

    peers: FrozenSet[PackageIdentity]
    other_peers: Dict[str, str]
    skipped: Dict[str, NotAFamilyPackageError] = field(default_factory=dict)


class PeerGraphWalk:
    """Breadth-first walk state; one instance per walk."""

    def __init__(self, seeds: Iterable[PackageIdentity], config: FamilyConfig):
        self.config = config
        self.seeds: Set[PackageIdentity] = set(seeds)
        self.queue: Deque[WalkEntry] = deque()
        self.queued: Set[WalkEntry] = set()
        self.visited: Set[WalkEntry] = set()
        self.result_peers: Set[PackageIdentity] = set()
        self.external_peer_ranges: Dict[str, str] = {}
        self.skipped: Dict[str, NotAFamilyPackageError] = {}
        for seed in sorted(self.seeds, key=str):
            self.enqueue((seed, seed.name))

    def enqueue(self, entry: WalkEntry) -> bool:
        """Queue ``entry`` unless this walk has already seen it."""
        if entry in self.queued:
            return False
        self.queued.add(entry)
        self.queue.append(entry)
        return True

    def next_frontier(self) -> List[WalkEntry]:
        """Drain the queue, dropping the root package and visited entries."""
        frontier = []
        while self.queue:
            entry = self.queue.popleft()
            if self.config.is_root(entry[1]) or entry in self.visited:
                continue
            self.visited.add(entry)
            frontier.append(entry)
        return frontier

    def absorb(self, entry: WalkEntry, manifest: Manifest) -> None:
        """Record a fetched manifest and queue its workspace-local edges."""
        release_tag = entry[0]
        local_names = []
        for name, version_range in manifest.peerDependencies.items():
            if self.config.is_workspace_local(version_range):
                local_names.append(name)
            else:
                self.external_peer_ranges[name] = version_range
        for name, version_range in manifest.dependencies.items():
            if self.config.is_workspace_local(version_range):
                local_names.append(name)
        for name in local_names:
            self.enqueue((release_tag, name))
        self.result_peers.add(manifest.identity)

    def result(self) -> PeerWalkResult:
        return PeerWalkResult(
            peers=frozenset(self.result_peers - self.seeds),
            other_peers=dict(self.external_peer_ranges),
            skipped=dict(self.skipped),
        )


async def resolve_required_peers(
    history: ManifestHistory,
    seeds: Iterable[PackageIdentity],
    config: Optional[FamilyConfig] = None,
) -> PeerWalkResult:
    """Walk workspace peer/dependency links starting from ``seeds``.

    Manifests of one breadth-first frontier are fetched concurrently and then
    processed in queue order. Packages outside the monorepo are reported in
    ``skipped`` and contribute no further edges.
    """
    walk = PeerGraphWalk(seeds, config or FamilyConfig())
    while walk.queue:
        frontier = walk.next_frontier()
        if not frontier:
            break
        fetched = await asyncio.gather(
            *(history.fetch_family_manifest(tag, name) for tag, name in frontier),
            return_exceptions=True,
        )
        for entry, outcome in zip(frontier, fetched):
            if isinstance(outcome, NotAFamilyPackageError):
                logger.warning("%s", outcome)
                walk.skipped[entry[1]] = outcome
                continue
            if isinstance(outcome, BaseException):
                raise outcome
            walk.absorb(entry, outcome)

    result = walk.result()
    if is_debug_enabled(logger):
        logger.debug(
            "Peer walk complete",
            extra=extra_context(
                event="peer_walk",
                component="peer_graph",
                visited=len(walk.visited),
                peers=" ".join(sorted(str(p) for p in result.peers)),
            ),
        )
    return result

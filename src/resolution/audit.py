"""Audit of an existing installation: are installed family packages happy?"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Tuple

from manifest.models import Manifest, PackageIdentity

from .peers import PeerMatchResult, match_peers


@dataclass(frozen=True)
class AuditFinding:
    identity: PackageIdentity
    result: PeerMatchResult

    @property
    def compatible(self) -> bool:
        return self.result.has_all_peer(False)

    @property
    def unmet(self) -> Tuple[PackageIdentity, ...]:
        return self.result.unmet()


def audit(manifests: Iterable[Manifest], inventory: Iterable[PackageIdentity]) -> List[AuditFinding]:
    """Check every manifest's peers against what is actually installed.

    Missing peers count as failures here: nothing else will be installed.
    """
    pool = list(inventory)
    return [AuditFinding(manifest.identity, match_peers(manifest, pool)) for manifest in manifests]


@dataclass(frozen=True)
class RootMismatch:
    package: PackageIdentity
    expected_root: PackageIdentity

    def __str__(self) -> str:
        return f"{self.package} requires {self.expected_root}"


def root_mismatches(manifests: Iterable[Manifest], root: PackageIdentity) -> List[RootMismatch]:
    """Family packages whose root peer range rejects the installed root."""
    mismatches = []
    for manifest in manifests:
        expected = manifest.peerDependencies.get(root.name)
        if expected is None:
            continue
        if not match_peers(manifest, [root]).has_valid(root):
            mismatches.append(RootMismatch(manifest.identity, PackageIdentity(root.name, expected)))
    return mismatches

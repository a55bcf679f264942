"""Peer compatibility: does a manifest fit a pool of available peer versions?"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import FrozenSet, Iterable, Optional, Tuple, Union

import semantic_version

from manifest.models import Manifest, PackageIdentity

_Spec = Union[semantic_version.NpmSpec, semantic_version.SimpleSpec]


def _normalize_range(spec_str: str) -> str:
    """Normalize npm range syntax (hyphen, x-ranges) into SimpleSpec-compatible form."""
    s = spec_str.strip()

    # Hyphen ranges: "1.2.3 - 1.4.5" => ">=1.2.3,<=1.4.5"
    m = re.match(r'^\s*([0-9A-Za-z\.\-\+]+)\s+-\s+([0-9A-Za-z\.\-\+]+)\s*$', s)
    if m:
        return f">={m.group(1)},<={m.group(2)}"

    s2 = s.replace('*', 'x').lower()
    m = re.match(r'^\s*(\d+)\.(\d+)\.x\s*$', s2)
    if m:
        major, minor = int(m.group(1)), int(m.group(2))
        return f">={major}.{minor}.0,<{major}.{minor + 1}.0"

    m = re.match(r'^\s*(\d+)(?:\.x)?\s*$', s2)
    if m:
        major = int(m.group(1))
        return f">={major}.0.0,<{major + 1}.0.0"

    return spec_str


@lru_cache(maxsize=1024)
def parse_range(spec_str: str) -> Optional[_Spec]:
    """Parse an npm range, returning None when it is not a semver range at all."""
    try:
        return semantic_version.NpmSpec(spec_str.strip() or "*")
    except ValueError:
        pass
    try:
        return semantic_version.SimpleSpec(_normalize_range(spec_str))
    except ValueError:
        return None


@lru_cache(maxsize=4096)
def parse_version(version: str) -> Optional[semantic_version.Version]:
    """Parse an exact version, tolerating a leading ``v`` or ``=``."""
    try:
        return semantic_version.Version(version.strip().lstrip("v="))
    except ValueError:
        return None


def is_exact_version(version: str) -> bool:
    return parse_version(version) is not None


def satisfies(version: str, spec_str: str) -> bool:
    """npm ``semver.satisfies``: does the exact ``version`` fall in ``spec_str``?"""
    parsed = parse_version(version)
    spec = parse_range(spec_str)
    if parsed is None or spec is None:
        return False
    return spec.match(parsed)


@dataclass(frozen=True)
class PeerMatchResult:
    """How one manifest's declared peers are met by a pool of candidates.

    Each declared peer name lands either in ``missing`` (no candidate has that
    name; the entry carries the declared range) or has every same-named
    candidate split between ``valid`` and ``invalid``.
    """
    manifest: Manifest
    missing: Tuple[PackageIdentity, ...] = ()
    valid: FrozenSet[PackageIdentity] = field(default_factory=frozenset)
    invalid: FrozenSet[PackageIdentity] = field(default_factory=frozenset)

    def has_valid(self, exact: PackageIdentity) -> bool:
        """True iff ``exact`` itself (name and version) was accepted."""
        return exact in self.valid

    def has_all_peer(self, consider_missing_valid: bool) -> bool:
        """True when every declared peer has a valid candidate.

        With ``consider_missing_valid`` a peer nobody provides counts as met,
        since it may be installed in the same run. Audits pass False.
        """
        valid_names = {peer.name for peer in self.valid}
        missing_names = {peer.name for peer in self.missing}
        for name in self.manifest.peerDependencies:
            if name in valid_names:
                continue
            if consider_missing_valid and name in missing_names:
                continue
            return False
        return True

    def unmet(self) -> Tuple[PackageIdentity, ...]:
        """Declared peers (as name@range) with no valid candidate."""
        valid_names = {peer.name for peer in self.valid}
        return tuple(
            PackageIdentity(name, version_range)
            for name, version_range in self.manifest.peerDependencies.items()
            if name not in valid_names
        )


def match_peers(manifest: Manifest, available_peers: Iterable[PackageIdentity]) -> PeerMatchResult:
    """Evaluate ``manifest``'s peerDependencies against ``available_peers``."""
    pool = list(available_peers)
    missing = []
    valid = set()
    invalid = set()
    for name, version_range in manifest.peerDependencies.items():
        candidates = [peer for peer in pool if peer.name == name]
        if not candidates:
            missing.append(PackageIdentity(name, version_range))
            continue
        for candidate in candidates:
            if satisfies(candidate.version, version_range):
                valid.add(candidate)
            else:
                invalid.add(candidate)
    return PeerMatchResult(
        manifest=manifest,
        missing=tuple(missing),
        valid=frozenset(valid),
        invalid=frozenset(invalid),
    )

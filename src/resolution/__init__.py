"""Peer-compatible version resolution for a package family."""

from .audit import AuditFinding, RootMismatch, audit, root_mismatches
from .family import FamilyConfig
from .peer_graph import PeerWalkResult, resolve_required_peers
from .peers import PeerMatchResult, match_peers, satisfies
from .resolver import Resolution, ResolutionState, resolve, select_consistent_set

__all__ = [
    "AuditFinding",
    "FamilyConfig",
    "PeerMatchResult",
    "PeerWalkResult",
    "Resolution",
    "ResolutionState",
    "RootMismatch",
    "audit",
    "match_peers",
    "resolve",
    "resolve_required_peers",
    "root_mismatches",
    "satisfies",
    "select_consistent_set",
]

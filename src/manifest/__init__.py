"""package.json models and local I/O."""

from .models import (
    Manifest,
    PackageIdentity,
    RepositoryInfo,
    decode_manifest,
    filter_saved_in_deps,
    manifest_from_dict,
    parse_specifier,
)
from .io import read_manifest

__all__ = [
    "Manifest",
    "PackageIdentity",
    "RepositoryInfo",
    "decode_manifest",
    "filter_saved_in_deps",
    "manifest_from_dict",
    "parse_specifier",
    "read_manifest",
]

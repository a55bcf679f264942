"""Local package.json reader."""

from __future__ import annotations

import logging

from common.errors import ManifestNotFoundError
from common.logging_utils import extra_context, is_debug_enabled

from .models import Manifest, decode_manifest

logger = logging.getLogger(__name__)


def read_manifest(path: str) -> Manifest:
    """Read and decode the package.json at ``path``.

    Raises:
        ManifestNotFoundError: the file is missing or unreadable.
        MalformedManifestError: the file is not a valid manifest.
    """
    try:
        with open(path, encoding="utf-8") as handle:
            contents = handle.read()
    except OSError as exc:
        raise ManifestNotFoundError(path, exc) from exc
    manifest = decode_manifest(contents)
    if is_debug_enabled(logger):
        logger.debug(
            "Read manifest",
            extra=extra_context(event="manifest_read", component="manifest", target=path, package=str(manifest)),
        )
    return manifest

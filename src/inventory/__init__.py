"""Local installed-package inventory."""

from .installed import InstalledInventory

__all__ = ["InstalledInventory"]

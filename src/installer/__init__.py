"""Package-manager delegation."""

from .package_manager import PackageManager, SaveOptions

__all__ = ["PackageManager", "SaveOptions"]

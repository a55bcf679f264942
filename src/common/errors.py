"""Exception types raised by the resolver and its collaborators."""

from __future__ import annotations

from typing import Any, Iterable


class PeerAlignError(Exception):
    """Base class for every error this tool raises on purpose."""


class MalformedManifestError(PeerAlignError):
    """A package.json document could not be decoded."""

    def __init__(self, contents: str, issue: Any):
        self.contents = contents
        self.issue = issue
        super().__init__(f"Encountered an issue parsing the package.json:\n\n{issue}")


class ManifestNotFoundError(PeerAlignError):
    """No package.json exists at the given location."""

    def __init__(self, path: str, issue: Any = None):
        self.path = path
        self.issue = issue
        message = f"Cannot find the package JSON file at location: {path}."
        if issue is not None:
            message += f"\n\n{issue}"
        super().__init__(message)


class RegistryNotFoundError(PeerAlignError):
    """The registry has no such package, or no version matching the request."""

    def __init__(self, specifier: str, reason: str = "not found"):
        self.specifier = specifier
        self.reason = reason
        super().__init__(f"{specifier}: {reason}")


class RegistryConnectionError(PeerAlignError):
    """The registry or source host could not be reached."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(f"Unable to reach {url}")


class IncompatibleWithRootError(PeerAlignError):
    """No version of a requested package accepts the installed root package."""

    def __init__(self, package: Any, root: Any):
        self.package = package
        self.root = root
        super().__init__(f"No version of {package} is compatible with {root}")


class NoConsistentCandidateError(PeerAlignError):
    """The candidate pool of a package emptied while reconciling peers."""

    def __init__(self, package_name: str):
        self.package_name = package_name
        super().__init__(f"No candidate of {package_name} is compatible with its peers")


class NotAFamilyPackageError(PeerAlignError):
    """The package is not published from the family's canonical source tree."""

    def __init__(self, package: str):
        self.package = package
        super().__init__(f"Package {package} is not part of the family monorepo.")


class RootPackageNotFoundError(PeerAlignError):
    """The root package is not installed."""

    def __init__(self, root_name: str):
        self.root_name = root_name
        super().__init__(f"{root_name} is not installed in this project")


class MultipleRootPackagesFoundError(PeerAlignError):
    """More than one version of the root package is installed."""

    def __init__(self, versions: Iterable[Any]):
        self.versions = sorted(versions, key=str)
        super().__init__(
            "Multiple versions of the root package are installed: "
            + " ".join(str(v) for v in self.versions)
        )


class PackageManagerError(PeerAlignError):
    """The package manager subprocess could not be started."""

    def __init__(self, command: str, issue: Any):
        self.command = command
        self.issue = issue
        super().__init__(f"Failed to run {command}: {issue}")

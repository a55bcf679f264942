"""Installer: delegates install and dedupe to the project's package manager.

Each supported manager gets its own argv builder; the command runs with
inherited stdio and its exit code is returned unchanged.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional

from constants import Constants, PackageManagers
from common.errors import PackageManagerError
from manifest.models import PackageIdentity

logger = logging.getLogger(__name__)


@dataclass
class SaveOptions:
    """Which manifest section the installed packages are written to."""

    save: bool = False
    save_dev: bool = False
    save_peer: bool = False

    @property
    def any(self) -> bool:
        return self.save or self.save_dev or self.save_peer


@dataclass
class ManagerCommands:
    """argv prefixes and save flags of one package manager."""

    add: List[str]
    dedupe: List[str]
    save: List[str] = field(default_factory=list)
    save_dev: List[str] = field(default_factory=list)
    save_peer: List[str] = field(default_factory=list)
    save_exact: List[str] = field(default_factory=list)

    def save_args(self, options: SaveOptions) -> List[str]:
        args: List[str] = []
        if options.save:
            args += self.save
        if options.save_dev:
            args += self.save_dev
        if options.save_peer:
            args += self.save_peer
        if options.any:
            args += self.save_exact
        return args


def _build_pnpm() -> ManagerCommands:
    return ManagerCommands(
        add=["pnpm", "add"],
        dedupe=["pnpm", "dedupe"],
        save=["--save"],
        save_dev=["--save-dev"],
        save_peer=["--save-peer"],
        save_exact=["--save-exact"],
    )


def _build_npm() -> ManagerCommands:
    return ManagerCommands(
        add=["npm", "install"],
        dedupe=["npm", "dedupe"],
        save=["--save"],
        save_dev=["--save-dev"],
        save_peer=["--save-peer"],
        save_exact=["--save-exact"],
    )


def _build_yarn() -> ManagerCommands:
    return ManagerCommands(
        add=["yarn", "add"],
        dedupe=["yarn", "dedupe"],
        save_dev=["--dev"],
        save_peer=["--peer"],
        save_exact=["--exact"],
    )


BUILDERS: Dict[str, Callable[[], ManagerCommands]] = {
    PackageManagers.PNPM.value: _build_pnpm,
    PackageManagers.NPM.value: _build_npm,
    PackageManagers.YARN.value: _build_yarn,
}


class PackageManager:
    """Runs the configured package manager inside the project directory."""

    def __init__(
        self,
        name: str = Constants.PACKAGE_MANAGER,
        project_dir: str = ".",
        registry_url: Optional[str] = None,
    ):
        builder = BUILDERS.get(name)
        if builder is None:
            raise ValueError(f"Unsupported package manager: {name}")
        self.name = name
        self.commands = builder()
        self.project_dir = project_dir
        self.registry_url = registry_url

    def _env(self) -> Dict[str, str]:
        env = os.environ.copy()
        if self.registry_url and self.registry_url != Constants.REGISTRY_URL_NPM:
            env["npm_config_registry"] = self.registry_url
        return env

    def _run(self, argv: List[str]) -> int:
        logger.info("Running: %s", " ".join(argv))
        try:
            result = subprocess.run(argv, cwd=self.project_dir, env=self._env(), check=False)  # noqa: S603
        except OSError as exc:
            raise PackageManagerError(argv[0], exc) from exc
        if result.returncode != 0:
            logger.error("%s exited with status %s", argv[0], result.returncode)
        return result.returncode

    def install_command(self, packages: Iterable[PackageIdentity], options: SaveOptions) -> List[str]:
        specifiers = sorted(identity.specifier for identity in packages)
        return self.commands.add + specifiers + self.commands.save_args(options)

    def install(self, packages: Iterable[PackageIdentity], options: Optional[SaveOptions] = None) -> int:
        """Install ``packages``; returns the package manager's exit code."""
        return self._run(self.install_command(packages, options or SaveOptions()))

    def dedupe(self) -> int:
        return self._run(list(self.commands.dedupe))

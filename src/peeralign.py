"""peeralign - keep a family of peer-dependent packages aligned with their root

    Commands:
        install: add family packages compatible with the installed root package
        update: move the root package and every installed family package together
        doctor: audit installed family packages

    Returns:
        int: Exit code
"""
from __future__ import annotations

import asyncio
import logging
import os
import sys
from dataclasses import dataclass
from typing import Dict, Iterable, List

from args import parse_args
from cli_config import ConfigError, configure
from constants import Constants, ExitCodes
from common.errors import (
    IncompatibleWithRootError,
    MalformedManifestError,
    ManifestNotFoundError,
    MultipleRootPackagesFoundError,
    NoConsistentCandidateError,
    PackageManagerError,
    PeerAlignError,
    RegistryConnectionError,
    RegistryNotFoundError,
    RootPackageNotFoundError,
)
from common.http_client import HttpClient
from common.logging_utils import configure_logging, extra_context
from installer.package_manager import PackageManager, SaveOptions
from inventory.installed import InstalledInventory
from manifest.io import read_manifest
from manifest.models import PackageIdentity, filter_saved_in_deps, parse_specifier
from registry.client import NpmRegistryClient
from registry.monorepo import CanonicalSourceClient
from resolution.audit import audit, root_mismatches
from resolution.family import FamilyConfig
from resolution.peer_graph import resolve_required_peers
from resolution.resolver import resolve

logger = logging.getLogger(__name__)

_EXIT_CODES = (
    ((ConfigError, ManifestNotFoundError, MalformedManifestError), ExitCodes.FILE_ERROR),
    ((RegistryConnectionError,), ExitCodes.CONNECTION_ERROR),
    ((
        IncompatibleWithRootError,
        NoConsistentCandidateError,
        RegistryNotFoundError,
        RootPackageNotFoundError,
        MultipleRootPackagesFoundError,
    ), ExitCodes.RESOLUTION_ERROR),
    ((PackageManagerError,), ExitCodes.INSTALL_ERROR),
)


@dataclass
class Services:
    """Collaborators shared by one command run."""

    config: FamilyConfig
    registry: NpmRegistryClient
    history: CanonicalSourceClient
    inventory: InstalledInventory
    package_manager: PackageManager


def _joined(identities: Iterable[PackageIdentity]) -> str:
    return " ".join(sorted(str(i) for i in identities))


def _unique_requests(tokens: Iterable[str]) -> List[PackageIdentity]:
    requested: Dict[str, PackageIdentity] = {}
    for token in tokens:
        identity = parse_specifier(token, default_version="*")
        if identity.name in requested:
            logger.warning("Ignoring duplicate request %s", identity)
            continue
        requested[identity.name] = identity
    return list(requested.values())


def _install(services: Services, packages, options: SaveOptions, label: str) -> bool:
    if not packages:
        return True
    logger.info("About to install %s %s", label, _joined(packages))
    if services.package_manager.install(packages, options) != 0:
        return False
    return True


async def run_install(args, services: Services) -> ExitCodes:
    """Resolve the requested packages against the installed root and install them."""
    config = services.config
    root = services.inventory.installed_root(config.root_package)
    logger.info("Detected installed %s", root)

    requested = _unique_requests(args.packages)
    for identity in requested:
        if not config.is_family_package(identity.name):
            logger.warning("%s is not a %s family package", identity.name, config.root_package)

    logger.info("Checking compatibility...")
    resolution = await resolve(
        services.registry, root, requested, services.inventory.list_installed(), config
    )

    peers_to_install = set()
    if not args.EXCLUDE_PEERS:
        logger.info("Resolving %s peer-deps...", config.root_package)
        walk = await resolve_required_peers(services.history, resolution.identities, config)
        accepted_names = {m.name for m in resolution.accepted}
        peers_to_install = services.inventory.exclude_installed(
            peer for peer in walk.peers if peer.name not in accepted_names
        )
        for name, version_range in sorted(walk.other_peers.items()):
            if not config.is_family_package(name):
                logger.info("Peer requirement outside the family: %s@%s", name, version_range)
        for name in sorted(walk.skipped):
            logger.warning("No additional peers known for %s", name)

    for alternative in resolution.alternatives(requested):
        logger.warning("%s will be used instead", alternative)
    if peers_to_install:
        logger.warning("Following packages will be added as well %s", _joined(peers_to_install))

    options = SaveOptions(save=args.SAVE, save_dev=args.SAVE_DEV, save_peer=args.SAVE_PEER)
    if not _install(services, resolution.identities, options, "packages"):
        return ExitCodes.INSTALL_ERROR
    if not _install(services, peers_to_install, options, "peers"):
        return ExitCodes.INSTALL_ERROR
    if args.DEDUPE and services.package_manager.dedupe() != 0:
        return ExitCodes.INSTALL_ERROR
    return ExitCodes.SUCCESS


async def run_update(args, services: Services) -> ExitCodes:
    """Move the root package to ``args.version`` and realign the family."""
    config = services.config
    logger.info("Reading %s...", Constants.PACKAGE_JSON_FILE)
    project_manifest = read_manifest(os.path.join(services.inventory.project_dir, Constants.PACKAGE_JSON_FILE))

    new_root = (await services.registry.view(PackageIdentity(config.root_package, args.version))).identity
    logger.info("Checking packages for %s", new_root)

    logger.info("Checking installed packages...")
    family = [m for m in services.inventory.family_manifests(config) if not config.is_root(m.name)]
    current = {m.name: m.identity for m in family}
    installed = {i for i in services.inventory.list_installed() if i.name != config.root_package}
    installed.add(new_root)

    requested = [PackageIdentity(m.name, "*") for m in family]
    if requested:
        logger.info("Checking compatibility of %s...", _joined(current.values()))
        resolution = await resolve(services.registry, new_root, requested, installed, config)
        to_install = set(resolution.identities)
    else:
        to_install = set()
    to_install.add(new_root)

    for identity in sorted(to_install, key=str):
        previous = current.get(identity.name)
        if previous is not None and previous != identity:
            logger.info("%s: %s -> %s", identity.name, previous.version, identity.version)

    dev_deps = filter_saved_in_deps(project_manifest.devDependencies, to_install)
    if not _install(services, dev_deps, SaveOptions(save_dev=True), "dev dependencies"):
        return ExitCodes.INSTALL_ERROR
    deps = filter_saved_in_deps(project_manifest.dependencies, to_install)
    if not _install(services, deps, SaveOptions(save=True), "dependencies"):
        return ExitCodes.INSTALL_ERROR
    if args.DEDUPE and services.package_manager.dedupe() != 0:
        return ExitCodes.INSTALL_ERROR
    return ExitCodes.SUCCESS


async def run_doctor(args, services: Services) -> ExitCodes:
    """Report installed family packages that do not fit the installed root or each other."""
    config = services.config
    root = services.inventory.installed_root(config.root_package)
    logger.info("Checking packages for %s", root)

    logger.info("Checking installed packages...")
    family = [m for m in services.inventory.family_manifests(config) if not config.is_root(m.name)]
    if not family:
        logger.info("No installed %s packages.", config.root_package)
        return ExitCodes.SUCCESS

    logger.info("Checking compatibility of %s...", _joined(m.identity for m in family))
    problems = 0
    for mismatch in root_mismatches(family, root):
        logger.error("%s", mismatch)
        problems += 1
    findings = audit(family, services.inventory.list_installed())
    for finding in findings:
        if not finding.compatible:
            logger.error("%s has unmet peers %s", finding.identity, _joined(finding.unmet))
            problems += 1

    compatible = [f.identity for f in findings if f.compatible]
    logger.info("compatible packages %s", _joined(compatible))

    project_json = os.path.join(services.inventory.project_dir, Constants.PACKAGE_JSON_FILE)
    if os.path.isfile(project_json):
        outside = [
            m for m in services.inventory.dependents_requiring_root(read_manifest(project_json), root.name)
            if not config.is_family_package(m.name)
        ]
        if outside:
            logger.info("Other dependencies peer-depending on %s: %s",
                        root.name, _joined(m.identity for m in outside))

    if problems:
        try:
            suggestion = await resolve(
                services.registry,
                root,
                [PackageIdentity(m.name, "*") for m in family],
                services.inventory.list_installed(),
                config,
            )
            logger.info("Compatible set for %s: %s", root, _joined(suggestion.identities))
        except PeerAlignError as exc:
            logger.error("No compatible set found: %s", exc)
        if getattr(args, "ERROR_ON_WARNINGS", False):
            return ExitCodes.EXIT_WARNINGS
    return ExitCodes.SUCCESS


COMMANDS = {
    "install": run_install,
    "update": run_update,
    "doctor": run_doctor,
}


async def run_command(args) -> ExitCodes:
    """Build the collaborators and run the selected command."""
    config = FamilyConfig.from_constants()
    async with HttpClient(timeout=Constants.REQUEST_TIMEOUT, retry_max=Constants.HTTP_RETRY_MAX) as http:
        registry = NpmRegistryClient(http, Constants.REGISTRY_URL_NPM)
        services = Services(
            config=config,
            registry=registry,
            history=CanonicalSourceClient(http, registry, config),
            inventory=InstalledInventory(args.PROJECT_DIR),
            package_manager=PackageManager(
                Constants.PACKAGE_MANAGER, args.PROJECT_DIR, Constants.REGISTRY_URL_NPM
            ),
        )
        return await COMMANDS[args.action](args, services)


def exit_code_for(exc: BaseException) -> ExitCodes:
    for kinds, code in _EXIT_CODES:
        if isinstance(exc, kinds):
            return code
    return ExitCodes.RESOLUTION_ERROR


def main(argv=None) -> int:
    """Main function of the program."""
    args = parse_args(argv)
    configure_logging(args.LOG_LEVEL, args.LOG_FILE)
    logger.debug(
        "Starting command",
        extra=extra_context(event="function_entry", component="cli", action=args.action),
    )
    try:
        configure(args)
        code = asyncio.run(run_command(args))
    except (ConfigError, PeerAlignError) as exc:
        logger.error("%s", exc)
        code = exit_code_for(exc)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    return code.value


if __name__ == "__main__":
    sys.exit(main())

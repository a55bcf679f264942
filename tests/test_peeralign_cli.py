"""Tests for the peeralign commands."""

import argparse
import asyncio
import json
import logging
import os
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import peeralign
from common.errors import IncompatibleWithRootError, RegistryConnectionError, RegistryNotFoundError
from constants import ExitCodes
from installer.package_manager import SaveOptions
from inventory.installed import InstalledInventory
from manifest.models import Manifest, PackageIdentity
from resolution.family import FamilyConfig
from resolution.peers import satisfies


class FakeRegistry:
    def __init__(self, *manifests):
        self.manifests = list(manifests)

    async def list(self, identity):
        spec = "*" if identity.version == "latest" else identity.version
        found = [m for m in self.manifests if m.name == identity.name and satisfies(m.version, spec)]
        if not found:
            raise RegistryNotFoundError(identity.specifier)
        return found

    async def view(self, identity):
        return (await self.list(identity))[-1]


class FakeHistory:
    def __init__(self, manifests):
        self.manifests = manifests

    async def fetch_family_manifest(self, release_tag, package_name):
        return self.manifests[(release_tag.specifier, package_name)]


def write_package(directory, name, version, **fields):
    os.makedirs(directory, exist_ok=True)
    document = {"name": name, "version": version}
    document.update(fields)
    with open(os.path.join(directory, "package.json"), "w", encoding="utf-8") as handle:
        json.dump(document, handle)


def make_services(project_dir, registry, history=None):
    package_manager = MagicMock()
    package_manager.install.return_value = 0
    package_manager.dedupe.return_value = 0
    return peeralign.Services(
        config=FamilyConfig(root_package="effect", prefix="@effect/"),
        registry=registry,
        history=history or FakeHistory({}),
        inventory=InstalledInventory(str(project_dir)),
        package_manager=package_manager,
    )


def installed_sets(package_manager):
    return [(set(c[0][0]), c[0][1]) for c in package_manager.install.call_args_list]


def install_args(*packages, **flags):
    defaults = dict(SAVE=False, SAVE_DEV=False, SAVE_PEER=False, EXCLUDE_PEERS=False, DEDUPE=False)
    defaults.update(flags)
    return argparse.Namespace(action="install", packages=list(packages), **defaults)


@pytest.fixture
def effect3_project(tmp_path):
    write_package(str(tmp_path), "app", "0.0.0", dependencies={"effect": "3.0.0"})
    write_package(str(tmp_path / "node_modules" / "effect"), "effect", "3.0.0")
    return tmp_path


class TestInstall:
    """Tests for the install command."""

    def registry(self):
        return FakeRegistry(
            Manifest("@effect/platform", "0.40.0", peerDependencies={"effect": "^2.0.0"}),
            Manifest("@effect/platform", "0.48.0", peerDependencies={"effect": "^3.0.0", "@effect/schema": "^0.64.0"}),
            Manifest("@effect/schema", "0.64.10", peerDependencies={"effect": "^3.0.0"}),
        )

    def history(self):
        return FakeHistory({
            ("@effect/platform@0.48.0", "@effect/platform"): Manifest(
                "@effect/platform", "0.48.0",
                dependencies={"@effect/typeclass": "workspace:^"},
                peerDependencies={"effect": "workspace:^", "@effect/schema": "workspace:^"},
            ),
            ("@effect/platform@0.48.0", "@effect/schema"): Manifest("@effect/schema", "0.64.10"),
            ("@effect/platform@0.48.0", "@effect/typeclass"): Manifest("@effect/typeclass", "0.23.0"),
            ("@effect/schema@0.64.10", "@effect/schema"): Manifest("@effect/schema", "0.64.10"),
        })

    def test_installs_resolution_then_peers(self, effect3_project):
        services = make_services(effect3_project, self.registry(), self.history())

        code = asyncio.run(peeralign.run_install(install_args("@effect/platform", SAVE=True), services))

        assert code == ExitCodes.SUCCESS
        assert installed_sets(services.package_manager) == [
            ({PackageIdentity("@effect/platform", "0.48.0"), PackageIdentity("@effect/schema", "0.64.10")},
             SaveOptions(save=True)),
            ({PackageIdentity("@effect/typeclass", "0.23.0")}, SaveOptions(save=True)),
        ]
        services.package_manager.dedupe.assert_not_called()

    def test_exclude_peers_skips_walk(self, effect3_project):
        services = make_services(effect3_project, self.registry(), FakeHistory({}))

        code = asyncio.run(peeralign.run_install(install_args("@effect/platform", EXCLUDE_PEERS=True, DEDUPE=True), services))

        assert code == ExitCodes.SUCCESS
        assert services.package_manager.install.call_count == 1
        services.package_manager.dedupe.assert_called_once_with()

    def test_installer_failure(self, effect3_project):
        services = make_services(effect3_project, self.registry(), self.history())
        services.package_manager.install.return_value = 1

        code = asyncio.run(peeralign.run_install(install_args("@effect/platform"), services))

        assert code == ExitCodes.INSTALL_ERROR
        assert services.package_manager.install.call_count == 1

    def test_resolution_failure_installs_nothing(self, effect3_project):
        registry = FakeRegistry(Manifest("@effect/platform", "0.40.0", peerDependencies={"effect": "^2.0.0"}))
        services = make_services(effect3_project, registry)

        with pytest.raises(IncompatibleWithRootError):
            asyncio.run(peeralign.run_install(install_args("@effect/platform"), services))
        services.package_manager.install.assert_not_called()


class TestUpdate:
    """Tests for the update command."""

    def test_moves_root_and_family_together(self, tmp_path):
        write_package(
            str(tmp_path), "app", "0.0.0",
            dependencies={"effect": "2.0.0", "@effect/schema": "0.60.0"},
            devDependencies={"@effect/platform": "0.40.0"},
        )
        node_modules = tmp_path / "node_modules"
        write_package(str(node_modules / "effect"), "effect", "2.0.0")
        write_package(str(node_modules / "@effect" / "schema"), "@effect/schema", "0.60.0", peerDependencies={"effect": "^2.0.0"})
        write_package(str(node_modules / "@effect" / "platform"), "@effect/platform", "0.40.0", peerDependencies={"effect": "^2.0.0"})
        registry = FakeRegistry(
            Manifest("effect", "2.0.0"),
            Manifest("effect", "3.0.0"),
            Manifest("@effect/schema", "0.60.0", peerDependencies={"effect": "^2.0.0"}),
            Manifest("@effect/schema", "0.64.0", peerDependencies={"effect": "^3.0.0"}),
            Manifest("@effect/platform", "0.40.0", peerDependencies={"effect": "^2.0.0"}),
            Manifest("@effect/platform", "0.48.0", peerDependencies={"effect": "^3.0.0", "@effect/schema": "^0.64.0"}),
        )
        services = make_services(tmp_path, registry)

        code = asyncio.run(peeralign.run_update(argparse.Namespace(version="latest", DEDUPE=False), services))

        assert code == ExitCodes.SUCCESS
        assert installed_sets(services.package_manager) == [
            ({PackageIdentity("@effect/platform", "0.48.0")}, SaveOptions(save_dev=True)),
            ({PackageIdentity("effect", "3.0.0"), PackageIdentity("@effect/schema", "0.64.0")}, SaveOptions(save=True)),
        ]


class TestDoctor:
    """Tests for the doctor command."""

    def test_reports_root_mismatch(self, effect3_project, caplog):
        write_package(
            str(effect3_project / "node_modules" / "@effect" / "schema"), "@effect/schema", "0.60.0",
            peerDependencies={"effect": "^2.0.0"},
        )
        registry = FakeRegistry(Manifest("@effect/schema", "0.64.0", peerDependencies={"effect": "^3.0.0"}))
        services = make_services(effect3_project, registry)

        with caplog.at_level(logging.INFO):
            code = asyncio.run(peeralign.run_doctor(argparse.Namespace(ERROR_ON_WARNINGS=True), services))

        assert code == ExitCodes.EXIT_WARNINGS
        assert "@effect/schema@0.60.0 requires effect@^2.0.0" in caplog.text
        assert "@effect/schema@0.64.0" in caplog.text

    def test_healthy_installation(self, effect3_project):
        write_package(
            str(effect3_project / "node_modules" / "@effect" / "schema"), "@effect/schema", "0.64.0",
            peerDependencies={"effect": "^3.0.0"},
        )
        services = make_services(effect3_project, FakeRegistry())

        code = asyncio.run(peeralign.run_doctor(argparse.Namespace(ERROR_ON_WARNINGS=True), services))

        assert code == ExitCodes.SUCCESS


class TestMain:
    """Tests for the entry point's error mapping."""

    @pytest.mark.parametrize("error,expected", [
        (IncompatibleWithRootError(PackageIdentity("@effect/a", "*"), PackageIdentity("effect", "3.0.0")),
         ExitCodes.RESOLUTION_ERROR),
        (RegistryConnectionError("https://registry.npmjs.org/effect"), ExitCodes.CONNECTION_ERROR),
    ])
    def test_errors_map_to_exit_codes(self, tmp_path, error, expected):
        with patch("peeralign.configure_logging"), \
                patch("peeralign.run_command", new=AsyncMock(side_effect=error)):
            assert peeralign.main(["doctor", "-C", str(tmp_path)]) == expected.value

    def test_success(self, tmp_path):
        with patch("peeralign.configure_logging"), \
                patch("peeralign.run_command", new=AsyncMock(return_value=ExitCodes.SUCCESS)):
            assert peeralign.main(["doctor", "-C", str(tmp_path)]) == 0

    def test_missing_config_file(self, tmp_path):
        with patch("peeralign.configure_logging"):
            code = peeralign.main(["doctor", "-C", str(tmp_path), "--config", str(tmp_path / "missing.yml")])
        assert code == ExitCodes.FILE_ERROR.value

"""Tests for the npm registry and canonical source clients."""

import asyncio
import json

import pytest

from common.errors import (
    MalformedManifestError,
    NotAFamilyPackageError,
    RegistryConnectionError,
    RegistryNotFoundError,
)
from manifest.models import Manifest, PackageIdentity, RepositoryInfo, parse_specifier
from registry.client import NpmRegistryClient
from registry.monorepo import CanonicalSourceClient, parse_monorepo_directory
from resolution.family import FamilyConfig
from resolution.resolver import resolve

REPO_URL = "git+https://github.com/Effect-TS/effect.git"


def version_doc(name, version, peers=None, directory=None):
    doc = {"name": name, "version": version, "peerDependencies": peers or {}}
    if directory:
        doc["repository"] = {"type": "git", "url": REPO_URL, "directory": directory}
    return doc


def packument(name, versions, dist_tags=None):
    return {
        "name": name,
        "dist-tags": dist_tags or {},
        "versions": {doc["version"]: doc for doc in versions},
    }


class FakeHttp:
    """Stands in for HttpClient: serves canned responses by URL."""

    def __init__(self, json_responses=None, text_responses=None):
        self.json_responses = json_responses or {}
        self.text_responses = text_responses or {}
        self.urls = []

    async def get_json(self, url, headers=None):
        self.urls.append(url)
        status, data = self.json_responses.get(url, (404, None))
        return status, data, json.dumps(data)

    async def robust_get(self, url, headers=None):
        self.urls.append(url)
        return self.text_responses.get(url, (404, ""))


def run(coro):
    return asyncio.run(coro)


SCHEMA_URL = "https://registry.example.test/@effect%2Fschema"


@pytest.fixture
def schema_http():
    return FakeHttp({
        SCHEMA_URL: (200, packument(
            "@effect/schema",
            [
                version_doc("@effect/schema", "0.63.0", {"effect": "^2.3.0"}),
                version_doc("@effect/schema", "0.64.2", {"effect": "^2.4.0"}),
                version_doc("@effect/schema", "0.64.10", {"effect": "^2.4.0"}, directory="packages/schema"),
                version_doc("@effect/schema", "0.65.0-beta.1", {"effect": "^3.0.0"}),
                {"name": "@effect/schema", "version": "0.1.0", "peerDependencies": ["broken"]},
            ],
            dist_tags={"latest": "0.64.10", "next": "0.65.0-beta.1"},
        )),
    })


@pytest.fixture
def client(schema_http):
    return NpmRegistryClient(schema_http, "https://registry.example.test/")


class TestNpmRegistryClient:
    """Tests for listing and viewing registry versions."""

    def test_scoped_names_encode_slash(self, client):
        assert client.packument_url("@effect/schema") == SCHEMA_URL

    def test_list_range_is_ascending_by_semver(self, client):
        manifests = run(client.list(PackageIdentity("@effect/schema", "^0.64.0")))
        assert [m.version for m in manifests] == ["0.64.2", "0.64.10"]

    def test_list_skips_malformed_entries(self, client):
        manifests = run(client.list(PackageIdentity("@effect/schema", "*")))
        assert "0.1.0" not in [m.version for m in manifests]

    def test_dist_tag_resolves_first(self, client):
        manifests = run(client.list(PackageIdentity("@effect/schema", "next")))
        assert [m.version for m in manifests] == ["0.65.0-beta.1"]

    def test_view_latest_uses_dist_tag(self, client):
        manifest = run(client.view(PackageIdentity("@effect/schema", "latest")))
        assert manifest.version == "0.64.10"
        assert manifest.repository.directory == "packages/schema"

    def test_list_latest_covers_every_version(self, client):
        manifests = run(client.list(PackageIdentity("@effect/schema", "latest")))
        assert [m.version for m in manifests] == ["0.63.0", "0.64.2", "0.64.10"]

    def test_packument_is_fetched_once(self, client, schema_http):
        run(client.list(PackageIdentity("@effect/schema", "^0.64.0")))
        run(client.view(PackageIdentity("@effect/schema", "latest")))
        assert schema_http.urls == [SCHEMA_URL]

    def test_no_matching_version(self, client):
        with pytest.raises(RegistryNotFoundError):
            run(client.list(PackageIdentity("@effect/schema", "^9.0.0")))

    def test_invalid_range(self, client):
        with pytest.raises(RegistryNotFoundError) as excinfo:
            run(client.list(PackageIdentity("@effect/schema", "workspace:^")))
        assert excinfo.value.reason == "invalid version range"

    def test_unknown_package(self, client):
        with pytest.raises(RegistryNotFoundError):
            run(client.list(PackageIdentity("@effect/nope", "latest")))

    def test_unreachable_registry(self):
        http = FakeHttp({"https://registry.example.test/effect": (0, None)})
        client = NpmRegistryClient(http, "https://registry.example.test")
        with pytest.raises(RegistryConnectionError):
            run(client.view(PackageIdentity("effect", "latest")))


class TestResolveAgainstRegistry:
    """Tests for resolving bare package names through the registry client."""

    def test_bare_name_finds_older_root_compatible_version(self):
        url = "https://registry.example.test/@effect%2Fa"
        http = FakeHttp({url: (200, packument(
            "@effect/a",
            [
                version_doc("@effect/a", "1.0.0", {"effect": "^1.0.0"}),
                version_doc("@effect/a", "2.0.0", {"effect": "^2.0.0"}),
            ],
            dist_tags={"latest": "2.0.0"},
        ))})
        client = NpmRegistryClient(http, "https://registry.example.test")
        root = PackageIdentity("effect", "1.0.0")

        resolution = run(resolve(client, root, [parse_specifier("@effect/a")], {root}, FamilyConfig()))

        assert resolution.identities == {PackageIdentity("@effect/a", "1.0.0")}


class TestParseMonorepoDirectory:
    """Tests for locating a package inside the canonical monorepo."""

    def test_canonical_repository(self):
        manifest = Manifest("@effect/schema", "1.0.0", repository=RepositoryInfo(REPO_URL, "packages/schema"))
        assert parse_monorepo_directory(manifest, FamilyConfig(repository="effect-ts/effect")) == "packages/schema"

    @pytest.mark.parametrize("repository", [
        None,
        "github:Effect-TS/effect",
        RepositoryInfo("https://github.com/someone/fork.git", "packages/schema"),
        RepositoryInfo(REPO_URL, None),
    ])
    def test_not_in_monorepo(self, repository):
        manifest = Manifest("@effect/schema", "1.0.0", repository=repository)
        assert parse_monorepo_directory(manifest, FamilyConfig(repository="effect-ts/effect")) is None


class TestCanonicalSourceClient:
    """Tests for fetching manifests at a release tag."""

    RAW_BASE = "https://raw.example.test/Effect-TS/effect"

    def make(self, text_responses, registry_docs):
        registry_http = FakeHttp({
            f"https://registry.example.test/{name.replace('/', '%2F')}": (200, doc)
            for name, doc in registry_docs.items()
        })
        registry = NpmRegistryClient(registry_http, "https://registry.example.test")
        config = FamilyConfig(repository="effect-ts/effect", raw_base_url=self.RAW_BASE)
        return CanonicalSourceClient(FakeHttp(text_responses=text_responses), registry, config)

    def test_fetches_manifest_at_tag(self):
        url = f"{self.RAW_BASE}/@effect/platform@0.48.0/packages/schema/package.json"
        source = json.dumps({
            "name": "@effect/schema",
            "version": "0.64.10",
            "peerDependencies": {"effect": "workspace:^"},
        })
        client = self.make(
            {url: (200, source)},
            {"@effect/schema": packument(
                "@effect/schema",
                [version_doc("@effect/schema", "0.64.10", directory="packages/schema")],
                {"latest": "0.64.10"},
            )},
        )

        manifest = run(client.fetch_family_manifest(PackageIdentity("@effect/platform", "0.48.0"), "@effect/schema"))

        assert manifest.peerDependencies == {"effect": "workspace:^"}

    def test_package_outside_monorepo(self):
        client = self.make({}, {"fast-check": packument("fast-check", [version_doc("fast-check", "3.0.0")])})
        with pytest.raises(NotAFamilyPackageError) as excinfo:
            run(client.fetch_family_manifest(PackageIdentity("@effect/a", "1.0.0"), "fast-check"))
        assert excinfo.value.package == "fast-check"

    def test_missing_source_manifest(self):
        client = self.make(
            {},
            {"@effect/schema": packument(
                "@effect/schema", [version_doc("@effect/schema", "0.64.10", directory="packages/schema")]
            )},
        )
        with pytest.raises(RegistryNotFoundError):
            run(client.fetch_family_manifest(PackageIdentity("@effect/a", "1.0.0"), "@effect/schema"))

    def test_malformed_source_manifest(self):
        url = f"{self.RAW_BASE}/@effect/a@1.0.0/packages/schema/package.json"
        client = self.make(
            {url: (200, "{")},
            {"@effect/schema": packument(
                "@effect/schema", [version_doc("@effect/schema", "0.64.10", directory="packages/schema")]
            )},
        )
        with pytest.raises(MalformedManifestError):
            run(client.fetch_family_manifest(PackageIdentity("@effect/a", "1.0.0"), "@effect/schema"))

"""Tests for DependencyResolver passes, soft selection and reports."""

import logging
import threading
from unittest.mock import patch

import pytest

from conftest import FakeResponse, StubProvider, jar_bytes, make_config, write_jar
from resolver.orchestrator import DependencyResolver


class FakePipeline:
    """Download pipeline double; 'installs' a jar declaring the identity for known URLs."""

    def __init__(self, plugins_dir, good_urls=()):
        self.plugins_dir = plugins_dir
        self.good_urls = set(good_urls)
        self.calls = []
        self.arbitrary_calls = []

    def download_to_target(self, url, file_name, expected_identity):
        self.calls.append((url, file_name, expected_identity))
        if url not in self.good_urls:
            return False
        write_jar(self.plugins_dir, file_name, name=expected_identity)
        return True

    def download_arbitrary(self, url, suggested_name=None, exists=None):
        self.arbitrary_calls.append((url, suggested_name))
        if exists is not None and exists("Chunky"):
            return "Chunky"
        write_jar(self.plugins_dir, suggested_name or "Chunky.jar", name="Chunky")
        return "Chunky"


class FakeGitHub:
    def __init__(self, asset=None):
        self.asset = asset

    def latest_jar_asset(self, owner_repo, asset_filter=None):
        return self.asset


def make_resolver(plugins_dir, providers=None, good_urls=(), github=None, **config):
    providers = providers if providers is not None else [StubProvider("modrinth"), StubProvider("spiget")]
    pipeline = FakePipeline(plugins_dir, good_urls)
    resolver = DependencyResolver(
        make_config(plugins_dir, **config),
        providers={p.key: p for p in providers},
        pipeline=pipeline,
        github=github or FakeGitHub(),
    )
    return resolver, pipeline


class TestScanAndResolve:
    """Test DependencyResolver.scan_and_resolve."""

    def test_nothing_missing(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"])
        write_jar(plugins_dir, "Vault.jar", name="Vault")
        providers = [StubProvider("modrinth", "https://m/x.jar")]
        resolver, pipeline = make_resolver(plugins_dir, providers)

        report = resolver.scan_and_resolve()

        assert report.missing_required == []
        assert report.installed == {}
        assert providers[0].calls == []
        assert pipeline.calls == []

    def test_falls_through_priority_and_is_idempotent(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"])
        modrinth = StubProvider("modrinth")
        spiget = StubProvider("spiget", "https://spiget/vault.jar")
        resolver, pipeline = make_resolver(plugins_dir, [modrinth, spiget], good_urls=["https://spiget/vault.jar"])

        report = resolver.scan_and_resolve()

        assert report.missing_required == ["Vault"]
        assert report.installed == {"Vault": {"Shop"}}
        assert report.conflicts == {}
        assert len(modrinth.calls) == 1
        assert pipeline.calls == [("https://spiget/vault.jar", "Vault.jar", "Vault")]

        second = resolver.scan_and_resolve()

        assert second.missing_required == []
        assert len(modrinth.calls) == 1
        assert len(spiget.calls) == 1
        assert len(pipeline.calls) == 1

    def test_priority_order_respected(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"])
        modrinth = StubProvider("modrinth", "https://m/vault.jar")
        spiget = StubProvider("spiget", "https://s/vault.jar")
        resolver, pipeline = make_resolver(
            plugins_dir, [modrinth, spiget], good_urls=["https://s/vault.jar", "https://m/vault.jar"],
            repository_priority=["spiget", "modrinth"])

        resolver.scan_and_resolve()

        assert pipeline.calls[0][0] == "https://s/vault.jar"
        assert modrinth.calls == []

    def test_failed_download_tries_next_provider(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"])
        resolver, pipeline = make_resolver(
            plugins_dir,
            [StubProvider("modrinth", "https://m/bad.jar"), StubProvider("spiget", "https://s/vault.jar")],
            good_urls=["https://s/vault.jar"])

        report = resolver.scan_and_resolve()

        assert [c[0] for c in pipeline.calls] == ["https://m/bad.jar", "https://s/vault.jar"]
        assert "Vault" in report.installed

    def test_not_found_conflict(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Ghost"])
        resolver, _ = make_resolver(plugins_dir)

        report = resolver.scan_and_resolve()

        assert report.conflicts == {"Ghost": "not found"}
        assert report.installed == {}

    def test_constraint_conflict_and_passed_to_providers(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"])
        modrinth = StubProvider("modrinth")
        resolver, _ = make_resolver(plugins_dir, [modrinth], version_constraints={"Vault": ">=2.0"})

        report = resolver.scan_and_resolve()

        assert report.conflicts == {"Vault": "no version satisfies constraint '>=2.0'"}
        assert modrinth.calls[0][2].raw == ">=2.0"

    def test_override_is_terminal(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"])
        modrinth = StubProvider("modrinth", "https://m/vault.jar")
        resolver, pipeline = make_resolver(
            plugins_dir, [modrinth], good_urls=["https://m/vault.jar"],
            overrides={"Vault": "https://mirror/vault.jar"})

        report = resolver.scan_and_resolve()

        assert report.conflicts == {"Vault": "override download failed (https://mirror/vault.jar)"}
        assert modrinth.calls == []
        assert pipeline.calls == [("https://mirror/vault.jar", "Vault.jar", "Vault")]

    def test_override_success(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"])
        resolver, _ = make_resolver(
            plugins_dir, good_urls=["https://mirror/vault.jar"],
            overrides={"Vault": "https://mirror/vault.jar"})

        report = resolver.scan_and_resolve()

        assert report.installed == {"Vault": {"Shop"}}
        assert report.conflicts == {}

    def test_empty_override_ignores_dependency(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"], softdepend=["Maps"])
        resolver, pipeline = make_resolver(plugins_dir, overrides={"Vault": "", "Maps": " "})

        report = resolver.scan_and_resolve()

        assert report.missing_required == []
        assert report.missing_soft == []
        assert report.conflicts == {}
        assert pipeline.calls == []
        assert resolver.install_dependency("Vault") is False
        assert resolver.conflicts == {}

    def test_auto_download_disabled(self, plugins_dir, caplog):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"])
        modrinth = StubProvider("modrinth", "https://m/vault.jar")
        resolver, pipeline = make_resolver(plugins_dir, [modrinth], auto_download=False)

        with caplog.at_level(logging.WARNING):
            report = resolver.scan_and_resolve()

        assert report.missing_required == ["Vault"]
        assert report.auto_download is False
        assert modrinth.calls == []
        assert pipeline.calls == []
        assert "auto-download is disabled" in caplog.text

    def test_soft_not_installed_by_default(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", softdepend=["Maps"])
        resolver, pipeline = make_resolver(
            plugins_dir, [StubProvider("modrinth", "https://m/maps.jar")], good_urls=["https://m/maps.jar"])

        report = resolver.scan_and_resolve()

        assert report.missing_soft == ["Maps"]
        assert pipeline.calls == []

    def test_soft_installed_when_enabled(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", softdepend=["Maps"])
        resolver, _ = make_resolver(
            plugins_dir, [StubProvider("modrinth", "https://m/maps.jar")],
            good_urls=["https://m/maps.jar"], auto_download_soft=True)

        report = resolver.scan_and_resolve()

        assert report.installed == {"Maps": {"Shop"}}

    def test_alias_and_provides_satisfy(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Economy", "Perms"])
        write_jar(plugins_dir, "Eco.jar", name="EssentialsX")
        write_jar(plugins_dir, "LP.jar", name="LuckPerms", provides=["Perms"])
        resolver, _ = make_resolver(plugins_dir, aliases={"Economy": "essentialsx"})

        assert resolver.scan_and_resolve().missing_required == []

    def test_missing_membership_is_case_sensitive(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["vault"])
        write_jar(plugins_dir, "Vault.jar", name="Vault")
        resolver, pipeline = make_resolver(plugins_dir)

        report = resolver.scan_and_resolve()

        # listed as missing, but the existing archive short-circuits the install
        assert report.missing_required == ["vault"]
        assert report.installed == {"vault": {"Shop"}}
        assert pipeline.calls == []

    def test_self_dependencies_ignored(self, plugins_dir):
        write_jar(plugins_dir, "Depo.jar", name="Depo", depend=["Internal"])
        resolver, pipeline = make_resolver(plugins_dir)

        assert resolver.scan_and_resolve().missing_required == []
        assert pipeline.calls == []

    def test_reload_adopts_new_snapshot(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"])
        resolver, _ = make_resolver(plugins_dir)

        resolver.reload(make_config(plugins_dir, overrides={"Vault": ""}, auto_download=False))

        assert resolver.config.auto_download is False
        assert sorted(resolver.providers) == ["modrinth", "spiget"]
        assert resolver.scan_and_resolve().missing_required == []

    def test_conflicts_reset_each_pass(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Ghost"])
        resolver, _ = make_resolver(plugins_dir)
        resolver.scan_and_resolve()
        (plugins_dir / "Shop.jar").unlink()

        assert resolver.scan_and_resolve().conflicts == {}
        assert resolver.conflicts == {}


class TestBackgroundPass:
    """Test DependencyResolver.start_background_pass."""

    def test_runs_and_reports(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Ghost"])
        resolver, _ = make_resolver(plugins_dir)
        reports = []

        worker = resolver.start_background_pass(reports.append)
        worker.join(timeout=10)

        assert len(reports) == 1
        assert reports[0].conflicts == {"Ghost": "not found"}

    def test_refuses_concurrent_pass(self, plugins_dir):
        resolver, _ = make_resolver(plugins_dir)
        release = threading.Event()
        started = threading.Event()

        def slow_pass():
            started.set()
            release.wait(timeout=10)

        resolver.scan_and_resolve = slow_pass
        first = resolver.start_background_pass()
        started.wait(timeout=10)

        assert resolver.start_background_pass() is None

        release.set()
        first.join(timeout=10)
        assert resolver.start_background_pass() is not None


class TestSoftSelection:
    """Test soft dependency selection and installation."""

    @pytest.fixture
    def resolver(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", softdepend=["Maps", "Chat", "Bank"])
        resolver, _ = make_resolver(
            plugins_dir, [StubProvider("modrinth", "https://m/any.jar")], good_urls=["https://m/any.jar"])
        return resolver

    def test_order(self, resolver):
        assert resolver.soft_missing() == ["Bank", "Chat", "Maps"]

    @pytest.mark.parametrize("tokens,expected", [
        (["all"], ["Bank", "Chat", "Maps"]),
        (["2"], ["Chat"]),
        (["1,3"], ["Bank", "Maps"]),
        (["Maps", "1", "Maps"], ["Maps", "Bank"]),
        (["9", "Nope"], []),
    ])
    def test_select(self, resolver, tokens, expected):
        assert resolver.select_soft_targets(tokens) == expected

    def test_install_soft(self, resolver):
        assert resolver.install_soft(["Chat"]) == {"Chat": True}
        assert resolver.soft_missing() == ["Bank", "Maps"]


class TestManualDownloads:
    """Test download_direct and download_github."""

    @patch("resolver.download.stream_get")
    def test_direct_installs_through_pipeline(self, mock_stream, plugins_dir):
        mock_stream.return_value = FakeResponse(body=jar_bytes(name="Chunky"))
        resolver = DependencyResolver(make_config(plugins_dir), providers={}, github=FakeGitHub())

        assert resolver.download_direct("https://cdn.example/Chunky.jar") == "Chunky"

        assert [p.name for p in plugins_dir.iterdir() if p.is_file()] == ["Chunky.jar"]
        assert "Chunky" in resolver.list_satisfied_names()

    @patch("resolver.download.stream_get")
    def test_direct_skips_plugin_already_present(self, mock_stream, plugins_dir):
        write_jar(plugins_dir, "Chunky-old.jar", name="Chunky")
        mock_stream.return_value = FakeResponse(body=jar_bytes(name="Chunky"))
        resolver = DependencyResolver(make_config(plugins_dir), providers={}, github=FakeGitHub())

        assert resolver.download_direct("https://cdn.example/Chunky.jar") == "Chunky"

        assert [p.name for p in plugins_dir.iterdir() if p.is_file()] == ["Chunky-old.jar"]

    def test_direct(self, plugins_dir):
        resolver, pipeline = make_resolver(plugins_dir)

        assert resolver.download_direct("https://cdn/Chunky.jar") == "Chunky"
        assert pipeline.arbitrary_calls == [("https://cdn/Chunky.jar", None)]

    def test_github(self, plugins_dir):
        github = FakeGitHub(("Chunky-1.0.jar", "https://gh/chunky.jar"))
        resolver, pipeline = make_resolver(plugins_dir, github=github)

        assert resolver.download_github("owner/repo") == "Chunky"
        assert pipeline.arbitrary_calls == [("https://gh/chunky.jar", "Chunky-1.0.jar")]

    def test_github_without_asset(self, plugins_dir):
        resolver, pipeline = make_resolver(plugins_dir)

        assert resolver.download_github("owner/repo") is None
        assert pipeline.arbitrary_calls == []


class TestReports:
    """Test status and tree output."""

    def test_status(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"], softdepend=["Maps"])
        write_jar(plugins_dir, "LP.jar", name="LuckPerms")
        resolver, _ = make_resolver(plugins_dir, categories={"LuckPerms": "Permissions", "Vault": "Economy"})
        resolver.conflicts["Vault"] = "not found"

        lines = resolver.status()

        assert lines[0] == "Depo status"
        assert "Platform: paper 1.20.1 (loader=paper)" in lines
        assert "Installed: LuckPerms, Shop" in lines
        assert "Declared: Maps, Vault" in lines
        assert "  Permissions: LuckPerms" in lines
        assert "  Economy: Vault" not in lines
        assert "  Vault: not found" in lines
        assert "  Vault (required by Shop)" in lines
        assert "  Maps (wanted by Shop)" in lines

    def test_status_nothing_missing(self, plugins_dir):
        resolver, _ = make_resolver(plugins_dir)
        assert "No missing required dependencies." in resolver.status()

    def test_tree(self, plugins_dir):
        write_jar(plugins_dir, "Shop.jar", name="Shop", depend=["Vault"], softdepend=["Maps"])
        write_jar(plugins_dir, "Vault.jar", name="Vault")
        resolver, _ = make_resolver(plugins_dir, version_constraints={"Maps": "^1.0"})

        assert resolver.tree() == [
            "Dependency tree",
            "Shop",
            "  - Maps@^1.0 (missing)",
            "  + Vault",
        ]

    def test_empty_tree(self, plugins_dir):
        resolver, _ = make_resolver(plugins_dir)
        assert resolver.tree() == ["No plugins declare dependencies."]

from unittest.mock import patch

import pytest

from pacdeps.config import Settings
from pacdeps.models import (
    Dependency,
    DependencySource,
    DependencyStatus,
    PackageRef,
    PackageSource,
    ResolverConfig,
    SourceKind,
    StatusKind,
)
from pacdeps.query import PacmanQuery
from pacdeps.resolver import DependencyResolver, package_ref_for

CACHED_PKGBUILD = """pkgname=foo
pkgver=1.0
depends=('glibc')
makedepends=('cmake')
checkdepends=('python-pytest')
optdepends=('git: version control support')
"""


@pytest.fixture
def resolver(query):
    return DependencyResolver(query=query)


@pytest.fixture
def aur_query(fake_pacman):
    with patch("pacdeps.query.shutil.which", side_effect=lambda cmd: f"/usr/bin/{cmd}"):
        yield PacmanQuery(Settings(aur_helpers=["paru", "yay"]), runner=fake_pacman)


def by_name(resolution):
    return {dep.name: dep for dep in resolution.dependencies}


class TestResolveEndToEnd:
    def test_installed_and_missing_dependency(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["glibc", "python>=3.12"])
        fake_pacman.publish("python", "3.12.4-1", repo="core")
        fake_pacman.install("glibc", "2.39-1", repo="core")

        resolution = resolver.resolve([PackageRef("app")])

        assert [dep.name for dep in resolution.dependencies] == ["python", "glibc"]
        deps = by_name(resolution)
        assert deps["glibc"].status == DependencyStatus.installed("2.39")
        assert deps["python"].status == DependencyStatus.to_install()
        assert deps["python"].version_req == ">=3.12"
        assert deps["python"].source == DependencySource.official("core")
        assert resolution.missing == []
        assert resolution.conflicts == []

    def test_empty_request(self, fake_pacman, resolver):
        resolution = resolver.resolve([])
        assert resolution.dependencies == []
        assert resolution.conflicts == []
        assert resolution.missing == []
        assert fake_pacman.calls == []

    def test_system_and_core_flags(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["glibc", "gtk3"])
        fake_pacman.install("glibc", repo="core")
        fake_pacman.install("gtk3", repo="extra")

        deps = by_name(resolver.resolve([PackageRef("app")]))

        assert deps["glibc"].is_core and deps["glibc"].is_system
        assert not deps["gtk3"].is_core and not deps["gtk3"].is_system

    def test_self_reference_filtered(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["app", "glibc", "libfoo.so=1-64"])
        fake_pacman.install("glibc")

        resolution = resolver.resolve([PackageRef("app")])

        assert [dep.name for dep in resolution.dependencies] == ["glibc"]

    def test_sorted_by_priority_then_name(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["zlib", "bash", "nss", "curl"])
        fake_pacman.install("zlib")
        fake_pacman.install("bash")
        fake_pacman.publish("nss")
        fake_pacman.publish("curl")

        resolution = resolver.resolve([PackageRef("app")])

        assert [dep.name for dep in resolution.dependencies] == ["curl", "nss", "bash", "zlib"]

    def test_failed_package_recorded_as_missing(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["glibc"])
        fake_pacman.install("glibc")

        resolution = resolver.resolve([PackageRef("app"), PackageRef("ghost")])

        assert resolution.missing == ["ghost"]
        assert [dep.name for dep in resolution.dependencies] == ["glibc"]

    def test_shared_dependency_merged(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["glibc"])
        fake_pacman.publish("tool", depends=["glibc", "app"])
        fake_pacman.install("glibc")

        deps = by_name(resolver.resolve([PackageRef("app"), PackageRef("tool")]))

        assert deps["glibc"].required_by == ["app", "tool"]
        assert deps["app"].required_by == ["tool"]

    def test_local_package_uses_local_query(self, fake_pacman, resolver):
        fake_pacman.install("my-tool", repo="local", depends=["glibc"])
        fake_pacman.install("glibc", repo="core")

        resolution = resolver.resolve([PackageRef("my-tool", source=PackageSource.official("local"))])

        assert [dep.name for dep in resolution.dependencies] == ["glibc"]
        assert fake_pacman.count("pacman", "-Si", "my-tool") == 0


class TestDetermineStatus:
    def test_not_installed(self, resolver):
        snapshot = resolver.snapshot()
        assert resolver.determine_status("python", "", snapshot) == DependencyStatus.to_install()

    def test_installed(self, fake_pacman, resolver):
        fake_pacman.install("glibc", "2.39-1")
        snapshot = resolver.snapshot()
        assert resolver.determine_status("glibc", "", snapshot) == DependencyStatus.installed("2.39")

    def test_requirement_unmet(self, fake_pacman, resolver):
        fake_pacman.install("python", "3.11.9-1")
        snapshot = resolver.snapshot()
        assert resolver.determine_status("python", ">=3.12", snapshot) == DependencyStatus.to_upgrade("3.11.9", ">=3.12")

    def test_satisfied_but_upgradable(self, fake_pacman, resolver):
        fake_pacman.install("python", "3.12.1-1")
        fake_pacman.upgrades["python"] = "3.12.4-1"
        fake_pacman.publish("python", "3.12.4-1")
        snapshot = resolver.snapshot()

        status = resolver.determine_status("python", ">=3.12", snapshot)

        assert status == DependencyStatus.to_upgrade("3.12.1", "3.12.4")

    def test_upgradable_without_repository_version(self, fake_pacman, resolver):
        fake_pacman.install("python", "3.12.1-1")
        fake_pacman.upgrades["python"] = "3.12.4-1"
        snapshot = resolver.snapshot()

        assert resolver.determine_status("python", "", snapshot) == DependencyStatus.to_upgrade("3.12.1", "newer")

    def test_provided_by_installed_package(self, fake_pacman, resolver):
        fake_pacman.install("bash")
        fake_pacman.providers["sh"] = "bash"
        snapshot = resolver.snapshot()

        assert resolver.determine_status("sh", "", snapshot) == DependencyStatus.installed("installed")

    def test_provider_probed_once_per_name(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["sh"])
        fake_pacman.publish("tool", depends=["sh"])
        fake_pacman.install("bash")
        fake_pacman.providers["sh"] = "bash"

        resolver.resolve([PackageRef("app"), PackageRef("tool")])

        assert fake_pacman.count("pacman", "-Qqo", "sh") == 1


class TestMergeDependency:
    def _dep(self, name, status, version_req=""):
        return Dependency(name=name, status=status, source=DependencySource.official("extra"), version_req=version_req)

    def test_required_by_deduplicated(self, resolver):
        snapshot = resolver.snapshot()
        deps = {}
        resolver.merge_dependency(self._dep("glibc", DependencyStatus.to_install()), "app", deps, snapshot)
        resolver.merge_dependency(self._dep("glibc", DependencyStatus.to_install()), "app", deps, snapshot)
        resolver.merge_dependency(self._dep("glibc", DependencyStatus.to_install()), "tool", deps, snapshot)
        assert deps["glibc"].required_by == ["app", "tool"]

    def test_more_urgent_status_wins(self, resolver):
        snapshot = resolver.snapshot()
        deps = {}
        resolver.merge_dependency(self._dep("foo", DependencyStatus.installed("1.0")), "a1", deps, snapshot)
        resolver.merge_dependency(self._dep("foo", DependencyStatus.to_install()), "b2", deps, snapshot)
        resolver.merge_dependency(self._dep("foo", DependencyStatus.installed("1.0")), "c3", deps, snapshot)
        assert deps["foo"].status == DependencyStatus.to_install()

    def test_conflict_never_replaced(self, resolver):
        snapshot = resolver.snapshot()
        deps = {}
        conflict = DependencyStatus.conflict("Conflicts with app")
        resolver.merge_dependency(self._dep("foo", conflict), "app", deps, snapshot)

        for status in (
            DependencyStatus.missing(),
            DependencyStatus.conflict("Conflicts with other"),
            DependencyStatus.to_install(),
        ):
            resolver.merge_dependency(self._dep("foo", status, ">=2.0"), "other", deps, snapshot)
            assert deps["foo"].status == conflict

        assert deps["foo"].version_req == ">=2.0"

    def test_empty_requirement_filled(self, resolver):
        snapshot = resolver.snapshot()
        deps = {}
        resolver.merge_dependency(self._dep("foo", DependencyStatus.to_install()), "a1", deps, snapshot)
        resolver.merge_dependency(self._dep("foo", DependencyStatus.to_install(), ">=1.0"), "b2", deps, snapshot)
        assert deps["foo"].version_req == ">=1.0"

    @pytest.mark.parametrize("order", [(">=2.30", ">=2.39"), (">=2.39", ">=2.30")])
    def test_most_restrictive_requirement_wins(self, fake_pacman, resolver, order):
        fake_pacman.install("glibc", "2.38-1")
        fake_pacman.publish("app", depends=[f"glibc{order[0]}"])
        fake_pacman.publish("tool", depends=[f"glibc{order[1]}"])

        deps = by_name(resolver.resolve([PackageRef("app"), PackageRef("tool")]))

        assert deps["glibc"].version_req == ">=2.39"
        assert deps["glibc"].status == DependencyStatus.to_upgrade("2.38", ">=2.39")

    @pytest.mark.parametrize("order", [(">=2.30", ">=2.39"), (">=2.39", ">=2.30")])
    @pytest.mark.parametrize(
        "installed,expected_status",
        [
            ("2.20-1", DependencyStatus.to_upgrade("2.20", ">=2.39")),
            ("2.40-1", DependencyStatus.installed("2.40")),
        ],
    )
    def test_narrower_requirement_kept_when_statuses_match(
        self, fake_pacman, resolver, order, installed, expected_status
    ):
        fake_pacman.install("glibc", installed)
        fake_pacman.publish("app", depends=[f"glibc{order[0]}"])
        fake_pacman.publish("tool", depends=[f"glibc{order[1]}"])

        deps = by_name(resolver.resolve([PackageRef("app"), PackageRef("tool")]))

        assert deps["glibc"].version_req == ">=2.39"
        assert deps["glibc"].status == expected_status


class TestConflicts:
    def test_installed_conflict_injected(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["glibc"], conflicts=["app-git", "other-bin>=2"])
        fake_pacman.install("glibc")
        fake_pacman.install("app-git")

        resolution = resolver.resolve([PackageRef("app")])

        assert resolution.conflicts == ["app-git"]
        first = resolution.dependencies[0]
        assert first.name == "app-git"
        assert first.status == DependencyStatus.conflict("Conflicts with app")
        assert first.source == DependencySource.local()
        assert first.required_by == ["app"]

    def test_conflict_with_other_requested_package(self, fake_pacman, resolver):
        fake_pacman.publish("app", conflicts=["tool"])
        fake_pacman.publish("tool")

        resolution = resolver.resolve([PackageRef("app"), PackageRef("tool")])

        assert resolution.conflicts == ["tool"]
        assert by_name(resolution)["tool"].status.is_conflict

    def test_conflict_overrides_dependency_status(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["libfoo"])
        fake_pacman.publish("tool", conflicts=["libfoo"])
        fake_pacman.install("libfoo")

        deps = by_name(resolver.resolve([PackageRef("app"), PackageRef("tool")]))

        assert deps["libfoo"].status == DependencyStatus.conflict("Conflicts with tool")
        assert deps["libfoo"].required_by == ["app", "tool"]

    def test_fetch_conflicts_for_aur_package(self, fake_pacman, aur_query):
        fake_pacman.aur("yay", "google-chrome", conflicts=["google-chrome-beta"])
        resolver = DependencyResolver(query=aur_query)

        conflicts = resolver.fetch_package_conflicts(PackageRef("google-chrome", source=PackageSource.aur()))

        assert conflicts == ["google-chrome-beta"]

    def test_aur_conflicts_from_cached_pkgbuild(self, fake_pacman, query):
        fake_pacman.install("foo")
        fake_pacman.install("glibc")
        pkgbuild = "pkgname=foo-bin\ndepends=('glibc')\nconflicts=('foo')\n"
        config = ResolverConfig(pkgbuild_cache=lambda name: pkgbuild if name == "foo-bin" else None)
        resolver = DependencyResolver(config=config, query=query)

        resolution = resolver.resolve([PackageRef("foo-bin", source=PackageSource.aur())])

        assert resolution.conflicts == ["foo"]
        assert by_name(resolution)["foo"].status == DependencyStatus.conflict("Conflicts with foo-bin")
        assert resolution.missing == []


class TestBatching:
    def test_single_query_for_official_packages(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["glibc"])
        fake_pacman.publish("tool", depends=["zlib"])

        resolver.resolve([PackageRef("app"), PackageRef("tool")])

        assert fake_pacman.count("pacman", "-Si", "app", "tool") == 1
        # the remaining single query reads conflicts
        assert fake_pacman.calls.count(["pacman", "-Si", "app"]) == 1

    def test_batched_and_individual_results_match(self, fake_pacman):
        fake_pacman.publish("app", depends=["glibc", "python>=3.12"], conflicts=["old-app"])
        fake_pacman.publish("tool", depends=["glibc>=2.40", "zlib"])
        fake_pacman.publish("python", repo="core")
        fake_pacman.install("glibc", "2.39-1", repo="core")
        fake_pacman.install("old-app")
        packages = [PackageRef("app"), PackageRef("tool"), PackageRef("ghost")]

        batched = DependencyResolver(
            query=PacmanQuery(Settings(aur_helpers=[]), runner=fake_pacman)
        ).resolve(packages)
        single = DependencyResolver(
            query=PacmanQuery(Settings(aur_helpers=[], batch_size=1), runner=fake_pacman)
        ).resolve(packages)

        assert batched.to_dict() == single.to_dict()


class TestAurResolution:
    def test_helper_dependencies(self, fake_pacman, aur_query):
        fake_pacman.aur("paru", "google-chrome", depends=["gtk3", "libxss"])
        fake_pacman.install("gtk3")
        fake_pacman.publish("libxss")
        resolver = DependencyResolver(query=aur_query)

        resolution = resolver.resolve([PackageRef("google-chrome", source=PackageSource.aur())])

        deps = by_name(resolution)
        assert deps["libxss"].status.kind is StatusKind.TO_INSTALL
        assert deps["gtk3"].status.kind is StatusKind.INSTALLED
        assert resolution.missing == []

    def test_second_helper_used(self, fake_pacman, aur_query):
        fake_pacman.aur("yay", "google-chrome", depends=["gtk3"])
        fake_pacman.install("gtk3")
        resolver = DependencyResolver(query=aur_query)

        resolution = resolver.resolve([PackageRef("google-chrome", source=PackageSource.aur())])

        assert [dep.name for dep in resolution.dependencies] == ["gtk3"]

    def test_cached_pkgbuild_runtime_only(self, fake_pacman, query):
        fake_pacman.install("glibc")
        config = ResolverConfig(pkgbuild_cache=lambda name: CACHED_PKGBUILD if name == "foo" else None)
        resolver = DependencyResolver(config=config, query=query)

        resolution = resolver.resolve([PackageRef("foo", source=PackageSource.aur())])

        assert [dep.name for dep in resolution.dependencies] == ["glibc"]

    def test_cached_pkgbuild_optional_arrays(self, fake_pacman, query):
        fake_pacman.install("glibc")
        config = ResolverConfig(
            include_makedepends=True,
            include_checkdepends=True,
            include_optdepends=True,
            pkgbuild_cache=lambda name: CACHED_PKGBUILD,
        )
        resolver = DependencyResolver(config=config, query=query)

        resolution = resolver.resolve([PackageRef("foo", source=PackageSource.aur())])

        assert {dep.name for dep in resolution.dependencies} == {"glibc", "cmake", "python-pytest", "git"}

    def test_unknown_aur_package_is_missing(self, query):
        resolver = DependencyResolver(query=query)

        resolution = resolver.resolve([PackageRef("nowhere", source=PackageSource.aur())])

        assert resolution.dependencies == []
        assert resolution.missing == ["nowhere"]

    def test_known_package_without_dependencies(self, fake_pacman, aur_query):
        fake_pacman.aur("paru", "fonts-only")
        resolver = DependencyResolver(query=aur_query)

        resolution = resolver.resolve([PackageRef("fonts-only", source=PackageSource.aur())])

        assert resolution.dependencies == []
        assert resolution.missing == []


class TestCheckAur:
    def test_unknown_dependency_defaults_to_aur(self, fake_pacman, resolver):
        fake_pacman.publish("app", depends=["mystery"])

        deps = by_name(resolver.resolve([PackageRef("app")]))

        assert deps["mystery"].status == DependencyStatus.to_install()
        assert deps["mystery"].source.kind is SourceKind.AUR

    def test_unknown_dependency_marked_missing(self, fake_pacman, aur_query):
        fake_pacman.publish("app", depends=["mystery"])
        resolver = DependencyResolver(config=ResolverConfig(check_aur=True), query=aur_query)

        resolution = resolver.resolve([PackageRef("app")])

        assert by_name(resolution)["mystery"].status == DependencyStatus.missing()
        assert resolution.missing == ["mystery"]

    def test_aur_dependency_found_by_helper(self, fake_pacman, aur_query):
        fake_pacman.publish("app", depends=["mystery"])
        fake_pacman.aur("paru", "mystery")
        resolver = DependencyResolver(config=ResolverConfig(check_aur=True), query=aur_query)

        resolution = resolver.resolve([PackageRef("app")])

        assert by_name(resolution)["mystery"].status == DependencyStatus.to_install()
        assert resolution.missing == []


class TestPackageRefFor:
    def test_official(self, fake_pacman, query):
        fake_pacman.publish("glibc", repo="core")
        assert package_ref_for("glibc", query).source == PackageSource.official("core")

    def test_local(self, fake_pacman, query):
        fake_pacman.install("my-tool", repo="local")
        assert package_ref_for("my-tool", query).source.is_local

    def test_aur(self, query):
        assert package_ref_for("google-chrome", query).source == PackageSource.aur()

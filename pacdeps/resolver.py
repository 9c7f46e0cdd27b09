#!/usr/bin/env python3
"""
Dependency Resolution System
Resolves the direct dependencies of packages requested for installation,
classifies each by install/upgrade status and detects conflicts.
"""

import logging
from dataclasses import dataclass, field

from pacdeps.config import Settings
from pacdeps.exceptions import QueryError
from pacdeps.models import (
    Dependency,
    DependencyResolution,
    DependencySource,
    DependencyStatus,
    PackageRef,
    PackageSource,
    ResolverConfig,
    SourceKind,
    StatusKind,
)
from pacdeps.parse import is_virtual_token, parse_dep_spec, parse_pacman_si_conflicts, parse_pacman_si_deps
from pacdeps.pkgbuild import parse_pkgbuild_conflicts, parse_pkgbuild_deps
from pacdeps.query import PacmanQuery
from pacdeps.source import determine_dependency_source, is_system_package, repository_of
from pacdeps.version import is_narrower_requirement, version_satisfies

logger = logging.getLogger(__name__)


@dataclass
class SystemSnapshot:
    """
    Installed and upgradable package sets for one resolution run.

    The sets are fetched once and never modified. Provider and AUR lookups
    are filled lazily, one query per distinct name.
    """

    installed: frozenset[str]
    upgradable: frozenset[str]
    providers: dict[str, str | None] = field(default_factory=dict)
    aur_known: dict[str, bool] = field(default_factory=dict)


class DependencyResolver:
    """Resolves the direct dependencies of a batch of packages"""

    def __init__(
        self,
        config: ResolverConfig | None = None,
        query: PacmanQuery | None = None,
        settings: Settings | None = None,
    ):
        self.config = config or ResolverConfig()
        self.query = query or PacmanQuery(settings)
        self.settings = self.query.settings

    def snapshot(self) -> SystemSnapshot:
        """Fetch the installed and upgradable sets"""
        logger.info("Fetching list of installed packages...")
        installed = self.query.installed_packages()
        logger.info(f"Found {len(installed)} installed packages")

        # Provides are checked lazily; listing every provision up front is too slow.
        upgradable = self.query.upgradable_packages()
        logger.info(f"Found {len(upgradable)} upgradable packages")

        return SystemSnapshot(installed=frozenset(installed), upgradable=frozenset(upgradable))

    def is_installed_or_provided(self, name: str, snapshot: SystemSnapshot) -> bool:
        """Check if package is installed or provided by an installed package"""
        if name in snapshot.installed:
            return True
        if name not in snapshot.providers:
            snapshot.providers[name] = self.query.find_provider(name)
        return snapshot.providers[name] is not None

    def _upgrade_target(self, name: str) -> str:
        return self.query.available_version(name) or "newer"

    def determine_status(self, name: str, version_req: str, snapshot: SystemSnapshot) -> DependencyStatus:
        """
        Work out what has to happen for a dependency to be satisfied.

        Args:
            name: Dependency name
            version_req: Requirement such as ">=1.5", or "" for none
            snapshot: Installed/upgradable sets for this run
        """
        if not self.is_installed_or_provided(name, snapshot):
            return DependencyStatus.to_install()

        is_upgradable = name in snapshot.upgradable

        try:
            installed_version = self.query.installed_version(name)
        except QueryError:
            # Provided by another package, or pacman -Q output unusable
            installed_version = None

        if version_req and installed_version is not None:
            if not version_satisfies(installed_version, version_req):
                return DependencyStatus.to_upgrade(installed_version, version_req)
            if is_upgradable:
                return DependencyStatus.to_upgrade(installed_version, self._upgrade_target(name))
            return DependencyStatus.installed(installed_version)

        if is_upgradable:
            if installed_version is None:
                return DependencyStatus.to_upgrade("installed", "newer")
            return DependencyStatus.to_upgrade(installed_version, self._upgrade_target(name))

        return DependencyStatus.installed(installed_version or "installed")

    def _aur_has(self, name: str, snapshot: SystemSnapshot) -> bool:
        if name not in snapshot.aur_known:
            snapshot.aur_known[name] = any(
                self.query.helper_info(helper, name) is not None
                for helper in self.query.available_helpers()
            )
        return snapshot.aur_known[name]

    def _process_spec(self, dep_spec: str, parent: str, snapshot: SystemSnapshot) -> Dependency | None:
        spec = parse_dep_spec(dep_spec)
        name = spec.name

        if not name:
            return None
        if name == parent:
            logger.debug(f"Skipping self-reference: {name} == {parent}")
            return None
        if is_virtual_token(name):
            logger.debug(f"Filtering out virtual package: {name}")
            return None

        status = self.determine_status(name, spec.version_req, snapshot)
        source, is_core = determine_dependency_source(
            name, snapshot.installed, self.query, self.settings.system_packages
        )

        if (
            self.config.check_aur
            and source.kind is SourceKind.AUR
            and status.kind is StatusKind.TO_INSTALL
            and not self._aur_has(name, snapshot)
        ):
            logger.debug(f"{name} is not in the official repos or the AUR, marking as missing")
            status = DependencyStatus.missing()

        return Dependency(
            name=name,
            version_req=spec.version_req,
            status=status,
            source=source,
            required_by=[parent],
            is_core=is_core,
            is_system=is_core or is_system_package(name, self.settings.system_packages),
        )

    def _process_specs(self, dep_specs: list[str], parent: str, snapshot: SystemSnapshot) -> list[Dependency]:
        dependencies = []
        for dep_spec in dep_specs:
            dep = self._process_spec(dep_spec, parent, snapshot)
            if dep is not None:
                dependencies.append(dep)
        return dependencies

    def _resolve_official(self, name: str, repo: str, snapshot: SystemSnapshot) -> list[Dependency]:
        """Dependencies of a repository package via pacman -Si (raises QueryError)"""
        logger.debug(f"Running: pacman -Si {name} (repo: {repo})")
        text = self.query.sync_info(name)
        dep_specs = parse_pacman_si_deps(text)
        logger.debug(f"Parsed {len(dep_specs)} dependency names from pacman -Si output")
        return self._process_specs(dep_specs, name, snapshot)

    def _resolve_local(self, name: str, snapshot: SystemSnapshot) -> list[Dependency]:
        """Dependencies of a locally installed package via pacman -Qi (raises QueryError)"""
        logger.debug(f"Running: pacman -Qi {name} (local package)")
        text = self.query.local_info(name)
        dep_specs = parse_pacman_si_deps(text)
        logger.debug(f"Parsed {len(dep_specs)} dependency names from pacman -Qi output")
        return self._process_specs(dep_specs, name, snapshot)

    def _pkgbuild_specs(self, pkgbuild: str) -> list[str]:
        depends, makedepends, checkdepends, optdepends = parse_pkgbuild_deps(pkgbuild)
        specs = list(depends)
        if self.config.include_makedepends:
            specs.extend(makedepends)
        if self.config.include_checkdepends:
            specs.extend(checkdepends)
        if self.config.include_optdepends:
            # "name: description"
            specs.extend(opt.split(":", 1)[0].strip() for opt in optdepends)
        return specs

    def _resolve_aur(self, name: str, snapshot: SystemSnapshot) -> list[Dependency]:
        """
        Dependencies of an AUR package.

        Tries the AUR helpers in order, then the cached PKGBUILD. Raises
        QueryError only when no source knew anything about the package.
        """
        logger.debug(f"Attempting to resolve AUR package: {name}")
        known = False

        for helper in self.query.available_helpers():
            text = self.query.helper_info(helper, name)
            if text is None:
                continue
            known = True
            dep_specs = parse_pacman_si_deps(text)
            if dep_specs:
                logger.info(f"Using {helper} to resolve runtime dependencies for {name}")
                return self._process_specs(dep_specs, name, snapshot)

        lookup = self.config.pkgbuild_cache
        pkgbuild = lookup(name) if lookup is not None else None
        if pkgbuild is not None:
            logger.info(f"Using cached PKGBUILD for {name} to resolve dependencies (offline fallback)")
            deps = self._process_specs(self._pkgbuild_specs(pkgbuild), name, snapshot)
            logger.info(f"Resolved {len(deps)} dependencies from cached PKGBUILD for {name}")
            return deps

        if not known:
            raise QueryError(f"No AUR helper or cached PKGBUILD knows {name}")

        logger.debug(f"No cached PKGBUILD available for {name} (no dependencies resolved)")
        return []

    def _resolve_package(self, package: PackageRef, snapshot: SystemSnapshot) -> list[Dependency]:
        source = package.source
        if source.kind is SourceKind.AUR:
            deps = self._resolve_aur(package.name, snapshot)
        elif source.is_local:
            deps = self._resolve_local(package.name, snapshot)
        else:
            deps = self._resolve_official(package.name, source.repo, snapshot)

        logger.debug(f"Resolved {len(deps)} dependencies for package {package.name}")
        return deps

    def fetch_package_conflicts(self, package: PackageRef) -> list[str]:
        """Conflicting package names declared by a requested package"""
        source = package.source
        try:
            if source.is_local:
                logger.debug(f"Running: pacman -Qi {package.name} (local package, conflicts)")
                return parse_pacman_si_conflicts(self.query.local_info(package.name))
            if source.kind is not SourceKind.AUR:
                logger.debug(f"Running: pacman -Si {package.name} (conflicts)")
                return parse_pacman_si_conflicts(self.query.sync_info(package.name))
        except QueryError as e:
            logger.debug(f"Could not read conflicts for {package.name}: {e}")
            return []

        for helper in self.query.available_helpers():
            text = self.query.helper_info(helper, package.name)
            if text is None:
                continue
            conflicts = parse_pacman_si_conflicts(text)
            if conflicts:
                return conflicts

        lookup = self.config.pkgbuild_cache
        pkgbuild = lookup(package.name) if lookup is not None else None
        if pkgbuild is not None:
            logger.debug(f"Reading conflicts for {package.name} from cached PKGBUILD")
            return parse_pkgbuild_conflicts(pkgbuild)
        return []

    def merge_dependency(
        self,
        dep: Dependency,
        parent: str,
        deps: dict[str, Dependency],
        snapshot: SystemSnapshot,
    ) -> None:
        """
        Fold ``dep`` into ``deps``.

        The most urgent status and the most restrictive version requirement
        win. When two requirements lead to equally urgent statuses the
        narrower one is kept. A conflict status is never replaced.
        """
        entry = deps.get(dep.name)
        if entry is None:
            deps[dep.name] = Dependency(
                name=dep.name,
                version_req=dep.version_req,
                status=dep.status,
                source=dep.source,
                required_by=[parent],
                depends_on=list(dep.depends_on),
                is_core=dep.is_core,
                is_system=dep.is_system,
            )
            return

        if parent not in entry.required_by:
            entry.required_by.append(parent)

        if entry.status.is_conflict:
            if dep.version_req and not entry.version_req:
                entry.version_req = dep.version_req
            return

        if dep.status.priority < entry.status.priority:
            entry.status = dep.status

        if not dep.version_req or dep.version_req == entry.version_req:
            return

        if not entry.version_req:
            entry.version_req = dep.version_req
            return

        existing_status = self.determine_status(entry.name, entry.version_req, snapshot)
        new_status = self.determine_status(entry.name, dep.version_req, snapshot)
        if new_status.priority < existing_status.priority or (
            new_status.priority == existing_status.priority
            and is_narrower_requirement(dep.version_req, entry.version_req)
        ):
            entry.version_req = dep.version_req
            if new_status.priority <= entry.status.priority:
                entry.status = new_status

    def resolve(self, packages: list[PackageRef]) -> DependencyResolution:
        """
        Resolve the direct dependencies of ``packages``.

        Only direct dependencies are resolved. Packages whose dependencies
        cannot be read are listed in ``missing`` instead of failing the batch.
        """
        if not packages:
            logger.warning("No packages provided for dependency resolution")
            return DependencyResolution()

        snapshot = self.snapshot()
        deps: dict[str, Dependency] = {}
        conflicts: list[str] = []
        missing: list[str] = []

        # One multi-package query for every repository package
        official = [
            package.name for package in packages
            if package.source.kind is SourceKind.OFFICIAL and not package.source.is_local
        ]
        batched = self.query.batch_sync_info(official) if official else {}

        for package in packages:
            block = batched.get(package.name)
            if block is not None:
                resolved = self._process_specs(parse_pacman_si_deps(block), package.name, snapshot)
            else:
                try:
                    resolved = self._resolve_package(package, snapshot)
                except QueryError as e:
                    logger.warning(f"Failed to resolve dependencies for {package.name}: {e}")
                    if package.name not in missing:
                        missing.append(package.name)
                    continue

            logger.debug(f"Found {len(resolved)} dependencies for {package.name}")

            for dep in resolved:
                if dep.status.kind is StatusKind.MISSING and dep.name not in missing:
                    missing.append(dep.name)
                self.merge_dependency(dep, package.name, deps, snapshot)

        requested = {package.name for package in packages}
        logger.info(f"Checking conflicts for {len(packages)} package(s)")
        for package in packages:
            for conflict_name in self.fetch_package_conflicts(package):
                if conflict_name == package.name:
                    continue
                if conflict_name not in snapshot.installed and conflict_name not in requested:
                    continue
                if conflict_name not in conflicts:
                    conflicts.append(conflict_name)
                conflict = Dependency(
                    name=conflict_name,
                    status=DependencyStatus.conflict(f"Conflicts with {package.name}"),
                    source=DependencySource.local(),
                    required_by=[package.name],
                )
                self.merge_dependency(conflict, package.name, deps, snapshot)

        result = sorted(deps.values(), key=lambda dep: (dep.status.priority, dep.name))
        logger.info(f"Total unique dependencies found: {len(result)}")

        return DependencyResolution(dependencies=result, conflicts=conflicts, missing=missing)


def package_ref_for(name: str, query: PacmanQuery, installed: set[str] | frozenset[str] | None = None) -> PackageRef:
    """
    Build a PackageRef for a bare package name.

    Repository packages get their repository from ``pacman -Si``; installed
    packages unknown to the repositories are local; anything else is assumed
    to come from the AUR.
    """
    try:
        repo = repository_of(query.sync_info(name))
        return PackageRef(name=name, source=PackageSource.official(repo or "extra"))
    except QueryError:
        pass

    if installed is None:
        installed = query.installed_packages()
    if name in installed:
        return PackageRef(name=name, source=PackageSource.official("local"))
    return PackageRef(name=name, source=PackageSource.aur())

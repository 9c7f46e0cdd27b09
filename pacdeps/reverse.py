#!/usr/bin/env python3
"""
Reverse Dependency Analysis

Finds every installed package that would break if the removal targets were
removed. One breadth-first walk over the "Required By" field of
``pacman -Qi`` is made per target and the results are aggregated, so a
dependent reachable from several targets is reported once.
"""

import logging
from collections import deque
from dataclasses import dataclass, field

from pacdeps.config import Settings
from pacdeps.exceptions import QueryError
from pacdeps.models import (
    Dependency,
    DependencySource,
    DependencyStatus,
    PackageRef,
    ReverseDependencyReport,
    ReverseDependencySummary,
)
from pacdeps.parse import split_ws_or_none
from pacdeps.query import PacmanQuery

logger = logging.getLogger(__name__)


@dataclass
class PkgInfo:
    """Fields of ``pacman -Qi`` needed for the walk"""

    name: str
    version: str = ""
    repo: str | None = None
    groups: list[str] = field(default_factory=list)
    required_by: list[str] = field(default_factory=list)
    explicit: bool = False


@dataclass
class RootRelation:
    """How a dependent relates to one removal target"""

    parents: set[str] = field(default_factory=set)
    min_depth: int | None = None

    def record(self, parent: str, depth: int) -> None:
        if parent:
            self.parents.add(parent)
        if self.min_depth is None or depth < self.min_depth:
            self.min_depth = depth

    def is_direct(self, root: str) -> bool:
        return root in self.parents or self.min_depth == 1


@dataclass
class AggregatedEntry:
    """A dependent package across all removal targets"""

    info: PkgInfo
    per_root: dict[str, RootRelation] = field(default_factory=dict)
    selected_for_removal: bool = False


def fetch_pkg_info(name: str, query: PacmanQuery) -> PkgInfo:
    """
    Read the installed package ``name``.

    Raises:
        QueryError: If ``pacman -Qi`` fails.
    """
    fields = query.local_fields(name)
    install_reason = fields.get("Install Reason", "").lower()
    return PkgInfo(
        name=fields.get("Name") or name,
        version=fields.get("Version", ""),
        repo=fields.get("Repository"),
        groups=split_ws_or_none(fields.get("Groups")),
        required_by=split_ws_or_none(fields.get("Required By")),
        explicit="explicit" in install_reason,
    )


@dataclass
class _WalkState:
    """Memoized package info and aggregation for one analyze() call"""

    targets: set[str]
    cache: dict[str, PkgInfo] = field(default_factory=dict)
    failed: set[str] = field(default_factory=set)
    aggregated: dict[str, AggregatedEntry] = field(default_factory=dict)


def _pkg_info(name: str, query: PacmanQuery, state: _WalkState) -> PkgInfo | None:
    if name in state.cache:
        return state.cache[name]
    if name in state.failed:
        return None

    try:
        info = fetch_pkg_info(name, query)
    except QueryError as e:
        logger.warning(f"Failed to query pacman -Qi {name}: {e}")
        state.failed.add(name)
        return None

    state.cache[name] = info
    return info


def _update_entry(
    dependent: str, parent: str, root: str, depth: int, query: PacmanQuery, state: _WalkState
) -> None:
    if dependent.lower() == root.lower():
        return

    info = _pkg_info(dependent, query, state)
    if info is None:
        return

    entry = state.aggregated.get(dependent)
    if entry is None:
        entry = AggregatedEntry(info=info)
        state.aggregated[dependent] = entry
    else:
        entry.info = info

    if dependent in state.targets:
        entry.selected_for_removal = True

    entry.per_root.setdefault(root, RootRelation()).record(parent, depth)


def convert_entry(name: str, entry: AggregatedEntry, system_groups: list[str] | None = None) -> Dependency:
    """Turn an aggregated dependent into a Dependency with conflict status"""
    if system_groups is None:
        system_groups = ["base", "base-devel"]
    info = entry.info

    reasons = []
    for root, relation in entry.per_root.items():
        depth = relation.min_depth or 0
        if depth <= 1:
            reasons.append(f"requires {root}")
        else:
            via = ", ".join(sorted(relation.parents)) or "unknown"
            reasons.append(f"blocks {root} (depth {depth} via {via})")

    if entry.selected_for_removal:
        reasons.append("already selected for removal")
    if info.explicit:
        reasons.append("explicitly installed")

    reasons.sort()
    reason = "; ".join(reasons) if reasons else "required by removal targets"

    parents = set()
    for relation in entry.per_root.values():
        parents.update(relation.parents)

    repo = info.repo
    if repo is None or repo == "" or repo.lower() == "local":
        source = DependencySource.local()
    else:
        source = DependencySource.official(repo)

    return Dependency(
        name=info.name or name,
        status=DependencyStatus.conflict(reason),
        source=source,
        required_by=sorted(entry.per_root),
        depends_on=sorted(parents),
        is_core=repo is not None and repo.lower() == "core",
        is_system=any(group in system_groups for group in info.groups),
    )


def _build_summaries(aggregated: dict[str, AggregatedEntry], packages: list[PackageRef]) -> list[ReverseDependencySummary]:
    summaries: dict[str, ReverseDependencySummary] = {}
    for entry in aggregated.values():
        for root, relation in entry.per_root.items():
            summary = summaries.setdefault(root, ReverseDependencySummary(package=root))
            if relation.is_direct(root):
                summary.direct_dependents += 1
            else:
                summary.transitive_dependents += 1
            summary.total_dependents = summary.direct_dependents + summary.transitive_dependents

    for package in packages:
        summaries.setdefault(package.name, ReverseDependencySummary(package=package.name))

    return sorted(summaries.values(), key=lambda s: s.package)


class ReverseDependencyAnalyzer:
    """
    Analyzes which installed packages depend on packages being removed.

    Example:
        analyzer = ReverseDependencyAnalyzer()
        report = analyzer.analyze([PackageRef("qt5-base")])
        print(f"{len(report.dependents)} packages would be affected")
    """

    def __init__(self, query: PacmanQuery | None = None, settings: Settings | None = None):
        self.query = query or PacmanQuery(settings)
        self.settings = self.query.settings

    def analyze(self, packages: list[PackageRef]) -> ReverseDependencyReport:
        """
        Walk the reverse dependency graph of each removal target.

        Targets that are not installed are skipped. Package info is memoized
        for the duration of this call only, failures included.
        """
        logger.info(f"Starting reverse dependency resolution for {len(packages)} target(s)")
        if not packages:
            return ReverseDependencyReport()

        state = _WalkState(targets={package.name for package in packages})

        for package in packages:
            root = package.name.strip()
            if not root:
                continue

            if _pkg_info(root, self.query, state) is None:
                logger.warning(f"Skipping reverse dependency walk for {root} (not installed)")
                continue

            visited = {root}
            queue = deque([(root, 0)])

            while queue:
                current, depth = queue.popleft()
                info = _pkg_info(current, self.query, state)
                if info is None:
                    continue

                for dependent in info.required_by:
                    if not dependent:
                        continue
                    _update_entry(dependent, current, root, depth + 1, self.query, state)
                    if dependent not in visited:
                        visited.add(dependent)
                        queue.append((dependent, depth + 1))

        summaries = _build_summaries(state.aggregated, packages)
        dependents = sorted(
            (convert_entry(name, entry, self.settings.system_groups) for name, entry in state.aggregated.items()),
            key=lambda dep: dep.name,
        )

        logger.info(f"Reverse dependency resolution complete ({len(dependents)} impacted packages)")
        return ReverseDependencyReport(dependents=dependents, summaries=summaries)


def get_installed_required_by(name: str, query: PacmanQuery | None = None) -> list[str]:
    """
    Installed packages listed in the "Required By" field of ``name``.

    Returns an empty list if ``name`` is not installed or pacman fails.
    """
    query = query or PacmanQuery()
    installed = query.installed_packages()
    if not installed:
        logger.debug("Failed to get installed packages for get_installed_required_by")
        return []

    try:
        info = fetch_pkg_info(name, query)
    except QueryError as e:
        logger.debug(f"Failed to query pacman -Qi {name}: {e}")
        return []

    return [pkg for pkg in info.required_by if pkg in installed]


def has_installed_required_by(name: str, query: PacmanQuery | None = None) -> bool:
    """Check if any installed package requires ``name``"""
    return bool(get_installed_required_by(name, query))

"""
Data models for dependency resolution and reverse dependency analysis.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class StatusKind(Enum):
    """Kinds of dependency status, declared from most to least urgent."""

    CONFLICT = "conflict"
    MISSING = "missing"
    TO_INSTALL = "to_install"
    TO_UPGRADE = "to_upgrade"
    INSTALLED = "installed"


_STATUS_PRIORITY = {
    StatusKind.CONFLICT: 0,
    StatusKind.MISSING: 1,
    StatusKind.TO_INSTALL: 2,
    StatusKind.TO_UPGRADE: 3,
    StatusKind.INSTALLED: 4,
}


@dataclass(frozen=True)
class DependencyStatus:
    """
    Status of a dependency.

    Only the fields belonging to ``kind`` are meaningful: ``version`` for
    installed, ``current``/``required`` for to-upgrade and ``reason`` for
    conflict. Use the classmethod constructors instead of building it directly.
    """

    kind: StatusKind
    version: str = ""
    current: str = ""
    required: str = ""
    reason: str = ""

    @classmethod
    def installed(cls, version: str) -> "DependencyStatus":
        return cls(StatusKind.INSTALLED, version=version)

    @classmethod
    def to_install(cls) -> "DependencyStatus":
        return cls(StatusKind.TO_INSTALL)

    @classmethod
    def to_upgrade(cls, current: str, required: str) -> "DependencyStatus":
        return cls(StatusKind.TO_UPGRADE, current=current, required=required)

    @classmethod
    def conflict(cls, reason: str) -> "DependencyStatus":
        return cls(StatusKind.CONFLICT, reason=reason)

    @classmethod
    def missing(cls) -> "DependencyStatus":
        return cls(StatusKind.MISSING)

    @property
    def priority(self) -> int:
        """Sort priority, lower is more urgent."""
        return _STATUS_PRIORITY[self.kind]

    @property
    def is_installed(self) -> bool:
        return self.kind in (StatusKind.INSTALLED, StatusKind.TO_UPGRADE)

    @property
    def needs_action(self) -> bool:
        return self.kind in (StatusKind.TO_INSTALL, StatusKind.TO_UPGRADE)

    @property
    def is_conflict(self) -> bool:
        return self.kind is StatusKind.CONFLICT

    def __str__(self) -> str:
        if self.kind is StatusKind.INSTALLED:
            return f"Installed ({self.version})"
        if self.kind is StatusKind.TO_INSTALL:
            return "To Install"
        if self.kind is StatusKind.TO_UPGRADE:
            return f"To Upgrade ({self.current} -> {self.required})"
        if self.kind is StatusKind.CONFLICT:
            return f"Conflict: {self.reason}"
        return "Missing"

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"kind": self.kind.value}
        if self.kind is StatusKind.INSTALLED:
            data["version"] = self.version
        elif self.kind is StatusKind.TO_UPGRADE:
            data["current"] = self.current
            data["required"] = self.required
        elif self.kind is StatusKind.CONFLICT:
            data["reason"] = self.reason
        return data


class SourceKind(Enum):
    """Where a dependency comes from."""

    OFFICIAL = "official"
    AUR = "aur"
    LOCAL = "local"


@dataclass(frozen=True)
class DependencySource:
    """Origin of a dependency; ``repo`` is only set for official packages."""

    kind: SourceKind
    repo: str = ""

    @classmethod
    def official(cls, repo: str) -> "DependencySource":
        return cls(SourceKind.OFFICIAL, repo=repo)

    @classmethod
    def aur(cls) -> "DependencySource":
        return cls(SourceKind.AUR)

    @classmethod
    def local(cls) -> "DependencySource":
        return cls(SourceKind.LOCAL)

    def __str__(self) -> str:
        if self.kind is SourceKind.OFFICIAL:
            return f"Official ({self.repo})"
        if self.kind is SourceKind.AUR:
            return "AUR"
        return "Local"

    def to_dict(self) -> dict[str, Any]:
        if self.kind is SourceKind.OFFICIAL:
            return {"kind": self.kind.value, "repo": self.repo}
        return {"kind": self.kind.value}


@dataclass(frozen=True)
class PackageSource:
    """Source of a package requested for installation or removal."""

    kind: SourceKind
    repo: str = ""
    arch: str = ""

    @classmethod
    def official(cls, repo: str, arch: str = "x86_64") -> "PackageSource":
        return cls(SourceKind.OFFICIAL, repo=repo, arch=arch)

    @classmethod
    def aur(cls) -> "PackageSource":
        return cls(SourceKind.AUR)

    @property
    def is_local(self) -> bool:
        """Packages installed from a file live in the "local" pseudo-repository."""
        return self.kind is SourceKind.OFFICIAL and self.repo == "local"

    def __str__(self) -> str:
        if self.kind is SourceKind.OFFICIAL:
            return f"Official ({self.repo}/{self.arch})"
        return "AUR"


def _default_package_source() -> PackageSource:
    return PackageSource.official("extra")


@dataclass
class PackageRef:
    """A package the caller wants to install or remove."""

    name: str
    version: str = ""
    source: PackageSource = field(default_factory=_default_package_source)


@dataclass(frozen=True)
class DependencySpec:
    """A dependency name with an optional version requirement such as ``>=3.12``."""

    name: str
    version_req: str = ""

    @property
    def has_version_req(self) -> bool:
        return bool(self.version_req)

    def __str__(self) -> str:
        return f"{self.name}{self.version_req}"


@dataclass
class Dependency:
    """A resolved dependency with its status and the packages that need it."""

    name: str
    status: DependencyStatus
    source: DependencySource
    version_req: str = ""
    required_by: list[str] = field(default_factory=list)
    depends_on: list[str] = field(default_factory=list)
    is_core: bool = False
    is_system: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version_req": self.version_req,
            "status": self.status.to_dict(),
            "source": self.source.to_dict(),
            "required_by": list(self.required_by),
            "depends_on": list(self.depends_on),
            "is_core": self.is_core,
            "is_system": self.is_system,
        }


@dataclass
class SrcinfoData:
    """Fields recovered from a .SRCINFO file."""

    pkgbase: str = ""
    pkgname: str = ""
    pkgver: str = ""
    pkgrel: str = ""
    depends: list[str] = field(default_factory=list)
    makedepends: list[str] = field(default_factory=list)
    checkdepends: list[str] = field(default_factory=list)
    optdepends: list[str] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    provides: list[str] = field(default_factory=list)
    replaces: list[str] = field(default_factory=list)


# Returns the cached PKGBUILD text for a package name, or None.
PkgbuildLookup = Callable[[str], str | None]


@dataclass
class ResolverConfig:
    """
    Per-call options for the dependency resolver.

    ``max_depth`` is kept for forward compatibility only; resolution always
    stops at direct dependencies.
    """

    include_optdepends: bool = False
    include_makedepends: bool = False
    include_checkdepends: bool = False
    max_depth: int = 0
    pkgbuild_cache: PkgbuildLookup | None = None
    check_aur: bool = False


@dataclass
class DependencyResolution:
    """Result of forward dependency resolution."""

    dependencies: list[Dependency] = field(default_factory=list)
    conflicts: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dependencies": [dep.to_dict() for dep in self.dependencies],
            "conflicts": list(self.conflicts),
            "missing": list(self.missing),
        }


@dataclass
class ReverseDependencySummary:
    """Per-target counts of packages affected by its removal."""

    package: str
    direct_dependents: int = 0
    transitive_dependents: int = 0
    total_dependents: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "package": self.package,
            "direct_dependents": self.direct_dependents,
            "transitive_dependents": self.transitive_dependents,
            "total_dependents": self.total_dependents,
        }


@dataclass
class ReverseDependencyReport:
    """Result of reverse dependency analysis; every dependent has conflict status."""

    dependents: list[Dependency] = field(default_factory=list)
    summaries: list[ReverseDependencySummary] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "dependents": [dep.to_dict() for dep in self.dependents],
            "summaries": [summary.to_dict() for summary in self.summaries],
        }

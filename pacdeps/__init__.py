__version__ = "0.1.0"

from .models import (
    Dependency,
    DependencyResolution,
    DependencySource,
    DependencySpec,
    DependencyStatus,
    PackageRef,
    PackageSource,
    ResolverConfig,
    ReverseDependencyReport,
    ReverseDependencySummary,
    SrcinfoData,
)
from .resolver import DependencyResolver
from .reverse import ReverseDependencyAnalyzer
from .version import compare_versions, version_satisfies

__all__ = [
    "Dependency",
    "DependencyResolution",
    "DependencyResolver",
    "DependencySource",
    "DependencySpec",
    "DependencyStatus",
    "PackageRef",
    "PackageSource",
    "ResolverConfig",
    "ReverseDependencyAnalyzer",
    "ReverseDependencyReport",
    "ReverseDependencySummary",
    "SrcinfoData",
    "compare_versions",
    "version_satisfies",
]

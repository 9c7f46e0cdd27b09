"""
Dependency source classification.

Decides whether a dependency comes from an official repository, the AUR or
a locally built package, and whether it is critical to the system.
"""

import logging
from collections.abc import Collection

from pacdeps.config import DEFAULT_SYSTEM_PACKAGES
from pacdeps.exceptions import QueryError
from pacdeps.models import DependencySource
from pacdeps.query import PacmanQuery

logger = logging.getLogger(__name__)


def is_system_package(name: str, system_packages: Collection[str] = DEFAULT_SYSTEM_PACKAGES) -> bool:
    """Check whether ``name`` is in the critical package table."""
    return name in system_packages


def repository_of(info_text: str) -> str | None:
    """Lower-cased "Repository" field of ``pacman -Si``/``-Qi`` output."""
    for line in info_text.splitlines():
        if line.startswith("Repository"):
            _, sep, value = line.partition(":")
            if sep:
                return value.strip().lower()
    return None


def determine_dependency_source(
    name: str,
    installed: Collection[str],
    query: PacmanQuery,
    system_packages: Collection[str] = DEFAULT_SYSTEM_PACKAGES,
) -> tuple[DependencySource, bool]:
    """
    Classify a dependency.

    Returns (source, is_core). Packages that are not installed are looked up
    in the official repositories before being assumed to come from the AUR.
    Installed packages report the repository they were installed from.
    """
    if name not in installed:
        try:
            text = query.sync_info(name)
        except QueryError:
            logger.debug(f"Package {name} not found in official repos and not installed, assuming AUR")
            return DependencySource.aur(), False

        repo = repository_of(text)
        if repo is None:
            return DependencySource.official("extra"), False
        return DependencySource.official(repo), repo == "core"

    try:
        repo = repository_of(query.local_info(name))
    except QueryError:
        repo = None
        logger.debug(f"Could not determine repository for {name}, assuming official")

    if repo is not None:
        if repo in ("local", ""):
            return DependencySource.local(), False
        return DependencySource.official(repo), repo == "core"

    is_core = is_system_package(name, system_packages)
    return DependencySource.official("core" if is_core else "extra"), is_core

"""
.SRCINFO parser.

.SRCINFO is the ``key = value`` rendering of a PKGBUILD generated by
``makepkg --printsrcinfo``. Keys repeat once per array element, and
architecture specific arrays use a suffix (``depends_x86_64``) that is folded
into the base key.
"""

from collections.abc import Iterator

from pacdeps.models import SrcinfoData
from pacdeps.parse import dedupe, parse_dep_spec
from pacdeps.pkgbuild import is_valid_dependency


def _iter_pairs(srcinfo: str) -> Iterator[tuple[str, str]]:
    """Yield (base_key, value) for every assignment line."""
    for line in srcinfo.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        base_key = key.strip().split("_", 1)[0]
        yield base_key, value.strip()


def _values(srcinfo: str, base_key: str) -> list[str]:
    return dedupe(
        value for key, value in _iter_pairs(srcinfo)
        if key == base_key and is_valid_dependency(value)
    )


def parse_srcinfo_deps(srcinfo: str) -> tuple[list[str], list[str], list[str], list[str]]:
    """Return (depends, makedepends, checkdepends, optdepends) across all architectures."""
    return (
        _values(srcinfo, "depends"),
        _values(srcinfo, "makedepends"),
        _values(srcinfo, "checkdepends"),
        _values(srcinfo, "optdepends"),
    )


def parse_srcinfo_conflicts(srcinfo: str) -> list[str]:
    """Return conflicting package names with version requirements stripped."""
    names = (parse_dep_spec(value).name for value in _values(srcinfo, "conflicts"))
    return dedupe(name for name in names if name)


def parse_srcinfo(content: str) -> SrcinfoData:
    """
    Parse a whole .SRCINFO file.

    Scalar fields keep their first occurrence, so for split packages
    ``pkgname`` is the first package defined.
    """
    depends, makedepends, checkdepends, optdepends = parse_srcinfo_deps(content)
    data = SrcinfoData(
        depends=depends,
        makedepends=makedepends,
        checkdepends=checkdepends,
        optdepends=optdepends,
        conflicts=parse_srcinfo_conflicts(content),
    )

    provides = []
    replaces = []
    for key, value in _iter_pairs(content):
        if key == "pkgbase" and not data.pkgbase:
            data.pkgbase = value
        elif key == "pkgname" and not data.pkgname:
            data.pkgname = value
        elif key == "pkgver" and not data.pkgver:
            data.pkgver = value
        elif key == "pkgrel" and not data.pkgrel:
            data.pkgrel = value
        elif key == "provides":
            provides.append(value)
        elif key == "replaces":
            replaces.append(value)

    data.provides = dedupe(provides)
    data.replaces = dedupe(replaces)
    return data


def looks_like_srcinfo(text: str) -> bool:
    """Sanity check for downloaded .SRCINFO text (empty bodies and HTML error pages fail)."""
    stripped = text.strip()
    if not stripped:
        return False
    if stripped.startswith(("<html", "<!DOCTYPE")):
        return False
    return "pkgbase =" in text or "pkgname =" in text

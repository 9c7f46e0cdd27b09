"""
Version comparison matching pacman's ordering.

Used to check dependency requirements such as ``>=1.5`` against installed
versions and to spot major version bumps.
"""

import functools
from enum import IntEnum


class Ordering(IntEnum):
    LESS = -1
    EQUAL = 0
    GREATER = 1


# Checked in this order so that ">=" is not mistaken for ">".
REQUIREMENT_OPERATORS = (">=", "<=", "=", ">", "<")


def normalize_version(version: str) -> str:
    """Strip a trailing numeric pkgrel ("1.2.3-1" -> "1.2.3"); text suffixes are kept."""
    head, sep, suffix = version.rpartition("-")
    if sep and suffix.isascii() and (suffix == "" or suffix.isdigit()):
        return head
    return version


def _split_segment(segment: str) -> tuple[str, str]:
    """Split a segment into its leading digits and the remainder."""
    end = 0
    while end < len(segment) and segment[end].isascii() and segment[end].isdigit():
        end += 1
    return segment[:end], segment[end:]


def _cmp(a, b) -> Ordering:
    if a < b:
        return Ordering.LESS
    if a > b:
        return Ordering.GREATER
    return Ordering.EQUAL


def _compare_segments(a_seg: str, b_seg: str) -> Ordering:
    a_num, a_suffix = _split_segment(a_seg)
    b_num, b_suffix = _split_segment(b_seg)

    if a_num and b_num:
        result = _cmp(int(a_num), int(b_num))
        if result is not Ordering.EQUAL:
            return result
        # "3" sorts after "3alpha"
        if not a_suffix and not b_suffix:
            return Ordering.EQUAL
        if not a_suffix:
            return Ordering.GREATER
        if not b_suffix:
            return Ordering.LESS
        return _cmp(a_suffix, b_suffix)

    # numeric < text
    if a_num:
        return Ordering.LESS
    if b_num:
        return Ordering.GREATER
    return _cmp(a_seg, b_seg)


def compare_versions(a: str, b: str) -> Ordering:
    """
    Compare two version strings.

    Segments are split on '.' and '-', the shorter side is padded with "0",
    and the first differing segment decides.
    """
    a_parts = normalize_version(a).replace("-", ".").split(".")
    b_parts = normalize_version(b).replace("-", ".").split(".")

    for idx in range(max(len(a_parts), len(b_parts))):
        a_seg = a_parts[idx] if idx < len(a_parts) else "0"
        b_seg = b_parts[idx] if idx < len(b_parts) else "0"
        result = _compare_segments(a_seg, b_seg)
        if result is not Ordering.EQUAL:
            return result

    return Ordering.EQUAL


# Sort key, e.g. sorted(versions, key=version_key)
version_key = functools.cmp_to_key(compare_versions)


def split_requirement(requirement: str) -> tuple[str, str]:
    """Split ">=1.5" into (">=", "1.5"). Returns ("", "") without a known operator."""
    for op in REQUIREMENT_OPERATORS:
        if requirement.startswith(op):
            return op, requirement[len(op):]
    return "", ""


def is_narrower_requirement(new: str, old: str) -> bool:
    """
    Check whether requirement ``new`` is strictly more restrictive than ``old``.

    Lower bounds are narrower when higher, upper bounds when lower. An exact
    pin is narrower than any range. Requirements of different kinds, or
    without a known operator, are never narrower.
    """
    new_op, new_version = split_requirement(new)
    old_op, old_version = split_requirement(old)
    if not new_op or not old_op:
        return False

    result = compare_versions(new_version, old_version)
    if new_op in (">=", ">") and old_op in (">=", ">"):
        if result is Ordering.GREATER:
            return True
        return result is Ordering.EQUAL and new_op == ">" and old_op == ">="
    if new_op in ("<=", "<") and old_op in ("<=", "<"):
        if result is Ordering.LESS:
            return True
        return result is Ordering.EQUAL and new_op == "<" and old_op == "<="
    return new_op == "=" and old_op != "="


def version_satisfies(version: str, requirement: str) -> bool:
    """
    Check whether ``version`` meets ``requirement`` (e.g. ">=1.5").

    An empty requirement, or one without a known operator, is always satisfied.
    """
    op, wanted = split_requirement(requirement)
    if not op:
        return True

    result = compare_versions(version, wanted)
    if op == ">=":
        return result >= Ordering.EQUAL
    if op == "<=":
        return result <= Ordering.EQUAL
    if op == "=":
        return result == Ordering.EQUAL
    if op == ">":
        return result == Ordering.GREATER
    return result == Ordering.LESS


def extract_major_component(version: str) -> int | None:
    """Return the leading numeric component, e.g. 1 for "1.2.3-1"."""
    token = normalize_version(version).replace("-", ".").split(".")[0]
    if token.isascii() and token.isdigit():
        return int(token)
    return None


def is_major_version_bump(old: str, new: str) -> bool:
    old_major = extract_major_component(old)
    new_major = extract_major_component(new)
    if old_major is None or new_major is None:
        return False
    return new_major > old_major

"""
Parsers for dependency specs and ``pacman -Si`` / ``pacman -Qi`` output.

Real-world output is messy, so none of these raise: malformed input gives
empty results.
"""

from collections.abc import Iterable

from pacdeps.models import DependencySpec

DEPENDS_LABELS = ("Depends On",)
CONFLICTS_LABELS = ("Conflicts With",)
NONE_LABELS = ("None",)

# Words that show up when a description wraps into a dependency field.
COMMON_WORDS = frozenset({
    "for", "to", "with", "is", "that", "using", "usually", "bundled", "bindings",
    "tooling", "the", "and", "or", "in", "on", "at", "by", "from", "as", "if",
    "when", "where", "which", "what", "how", "why",
})

# Multi-character operators first.
SPEC_OPERATORS = ("<=", ">=", "=", "<", ">")


def parse_dep_spec(spec: str) -> DependencySpec:
    """
    Split "python>=3.12" into name and version requirement.

    Operators are searched in precedence order, so the first operator found
    in that order wins, not the leftmost one.
    """
    for op in SPEC_OPERATORS:
        pos = spec.find(op)
        if pos != -1:
            return DependencySpec(name=spec[:pos].strip(), version_req=spec[pos:].strip())
    return DependencySpec(name=spec.strip())


def is_virtual_token(token: str) -> bool:
    """True for shared-library provisions such as libfoo.so, libfoo.so.1 or libfoo.so=1-64."""
    lower = token.lower()
    return lower.endswith(".so") or ".so." in lower or ".so=" in lower


def dedupe(items: Iterable[str]) -> list[str]:
    """Drop repeats, keeping first-seen order."""
    seen: set[str] = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result


def is_valid_package_token(token: str) -> bool:
    """Filter for whitespace-separated tokens taken from query output."""
    if len(token) < 2:
        return False
    if is_virtual_token(token):
        return False
    if token.lower() in COMMON_WORDS:
        return False

    first = token[0]
    if not first.isalnum() and first not in "-_":
        return False
    if token.endswith(":"):
        return False

    return any(ch.isalnum() for ch in token)


def _collect_continuation_lines(lines: list[str], start: int, value: str) -> str:
    """Append indented continuation lines following ``lines[start]``."""
    parts = [value]
    for line in lines[start + 1:]:
        if not line.strip():
            break
        if not line[0].isspace():
            break
        parts.append(line.strip())
    return " ".join(parts)


def _find_field(text: str, labels: tuple[str, ...], first_word: str, second_word: str) -> str | None:
    """
    Return the full value of a labelled field, continuation lines included.

    Returns None when the field is absent.
    """
    lines = text.splitlines()
    for idx, line in enumerate(lines):
        is_label = line.startswith(labels) or (first_word in line and second_word in line)
        if not is_label:
            continue
        colon = line.find(":")
        if colon == -1:
            continue
        value = line[colon + 1:].strip()
        return _collect_continuation_lines(lines, idx, value).strip()
    return None


def _is_none_value(value: str) -> bool:
    return not value or any(value.lower() == label.lower() for label in NONE_LABELS)


def parse_pacman_si_deps(text: str) -> list[str]:
    """
    Extract the "Depends On" specs from ``pacman -Si``/``-Qi`` output.

    Version requirements are kept ("python>=3.10"); virtual packages and
    stray words are dropped.
    """
    value = _find_field(text, DEPENDS_LABELS, "Depends", "On")
    if value is None or _is_none_value(value):
        return []

    return dedupe(token for token in value.split() if is_valid_package_token(token))


def parse_pacman_si_conflicts(text: str) -> list[str]:
    """Extract bare package names from the "Conflicts With" field."""
    value = _find_field(text, CONFLICTS_LABELS, "Conflicts", "With")
    if value is None or _is_none_value(value):
        return []

    names = (parse_dep_spec(token).name for token in value.split() if is_valid_package_token(token))
    return dedupe(name for name in names if name)


def parse_key_value_output(text: str) -> dict[str, str]:
    """
    Parse ``Label : value`` lines into a dict.

    Indented lines without a label are appended to the previous field.
    A repeated label keeps the last value.
    """
    fields: dict[str, str] = {}
    last_key = None

    for line in text.splitlines():
        if not line.strip():
            continue

        if ":" in line:
            key, _, value = line.partition(":")
            last_key = key.strip()
            fields[last_key] = value.strip()
        elif line[0] in " \t" and last_key is not None:
            current = fields.get(last_key, "")
            if current and not current.endswith(" "):
                current += " "
            fields[last_key] = current + line.strip()

    return fields


def split_ws_or_none(value: str | None) -> list[str]:
    """Split a field value on whitespace; "None" and empty values give []."""
    if value is None:
        return []
    value = value.strip()
    if not value or value.lower() == "none":
        return []
    return value.split()


def split_info_blocks(text: str) -> list[str]:
    """Split multi-package ``pacman -Si a b c`` output on blank lines."""
    blocks = []
    current: list[str] = []
    for line in text.splitlines():
        if not line.strip():
            if current:
                blocks.append("\n".join(current) + "\n")
                current = []
        else:
            current.append(line)
    if current:
        blocks.append("\n".join(current) + "\n")
    return blocks


def block_package_name(block: str) -> str | None:
    """Return the "Name" field of a single package block."""
    for line in block.splitlines():
        if line.lstrip().startswith("Name"):
            _, sep, value = line.partition(":")
            if sep:
                return value.strip()
    return None

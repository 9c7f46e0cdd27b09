"""
PKGBUILD dependency array parser.

PKGBUILDs are bash scripts, so this only recognises the array assignments
that matter for dependency resolution::

    depends=('glibc' 'python>=3.10')
    makedepends+=(
        'cmake'   # build system
        ninja
    )

Everything else in the script is ignored.
"""

from pacdeps.parse import dedupe, is_virtual_token, parse_dep_spec

DEPENDENCY_KEYS = ("depends", "makedepends", "checkdepends", "optdepends")
CONFLICT_KEYS = ("conflicts",)


def _find_matching_paren(value: str, depth: int = 0) -> int | None:
    """
    Index of the ')' closing the '(' at the start of ``value``, ignoring quoted text.

    Pass ``depth=1`` when the opening '(' is on an earlier line.
    """
    quote = None
    for pos, ch in enumerate(value):
        if ch in "'\"":
            if quote is None:
                quote = ch
            elif ch == quote:
                quote = None
        elif quote is None and ch == "(":
            depth += 1
        elif quote is None and ch == ")":
            depth -= 1
            if depth == 0:
                return pos
    return None


def _split_array_content(content: str) -> list[str]:
    """Split bash array content into words, honouring single and double quotes."""
    words = []
    current = ""
    quote = None

    for ch in content:
        if ch in "'\"":
            if quote is None:
                quote = ch
            elif ch == quote:
                if current:
                    words.append(current)
                    current = ""
                quote = None
            else:
                current += ch
        elif quote is not None:
            current += ch
        elif ch.isspace():
            if current:
                words.append(current)
                current = ""
        else:
            current += ch

    # unclosed quote or trailing bare word
    if current:
        words.append(current)
    return words


def is_valid_dependency(dep: str) -> bool:
    """Reject virtual libraries, stray parser fragments and implausible names."""
    if is_virtual_token(dep):
        return False
    if dep.endswith(")"):
        return False
    if len(dep) < 2:
        return False

    first = dep[0]
    if not first.isalnum() and first != "_":
        return False

    return any(ch.isalnum() or ch in "-_" for ch in dep)


def _strip_comment(line: str) -> str:
    """Drop a trailing ``# comment`` that is outside quotes."""
    quote = None
    for pos, ch in enumerate(line):
        if ch in "'\"":
            if quote is None:
                quote = ch
            elif ch == quote:
                quote = None
        elif ch == "#" and quote is None and (pos == 0 or line[pos - 1].isspace()):
            return line[:pos]
    return line


def _read_multiline_array(lines: list[str], start: int) -> tuple[str, int]:
    """
    Collect the body of an array opened on the previous line.

    Returns the joined content and the index of the first line after the array.
    """
    collected = []
    idx = start
    while idx < len(lines):
        line = _strip_comment(lines[idx]).strip()
        idx += 1

        if not line:
            continue
        if line == ")":
            break

        paren = _find_matching_paren(line, depth=1)
        if paren is not None:
            before = line[:paren].strip()
            if before:
                collected.append(before)
            break

        collected.append(line)

    return " ".join(collected), idx


def _iter_arrays(pkgbuild: str, keys: tuple[str, ...]):
    """Yield (key, words) for every ``key=(...)`` or ``key+=(...)`` assignment."""
    lines = pkgbuild.splitlines()
    idx = 0
    while idx < len(lines):
        line = lines[idx].strip()
        idx += 1

        if not line or line.startswith("#"):
            continue

        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key.endswith("+"):
            key = key[:-1]
        if key not in keys:
            continue

        value = value.strip()
        if not value.startswith("("):
            continue

        closing = _find_matching_paren(value)
        if closing is not None:
            content = value[1:closing]
        else:
            # entries may follow the '(' on the opening line
            first = _strip_comment(value[1:]).strip()
            rest, idx = _read_multiline_array(lines, idx)
            content = f"{first} {rest}"

        words = (word.strip() for word in _split_array_content(content))
        yield key, [word for word in words if word and is_valid_dependency(word)]


def parse_pkgbuild_deps(pkgbuild: str) -> tuple[list[str], list[str], list[str], list[str]]:
    """
    Parse the dependency arrays of a PKGBUILD.

    Returns (depends, makedepends, checkdepends, optdepends), each
    deduplicated in first-seen order. Version requirements and optdepends
    descriptions are kept as written.
    """
    arrays: dict[str, list[str]] = {key: [] for key in DEPENDENCY_KEYS}
    for key, words in _iter_arrays(pkgbuild, DEPENDENCY_KEYS):
        arrays[key].extend(words)

    return (
        dedupe(arrays["depends"]),
        dedupe(arrays["makedepends"]),
        dedupe(arrays["checkdepends"]),
        dedupe(arrays["optdepends"]),
    )


def parse_pkgbuild_conflicts(pkgbuild: str) -> list[str]:
    """Parse the conflicts array, returning bare package names."""
    names = []
    for _, words in _iter_arrays(pkgbuild, CONFLICT_KEYS):
        names.extend(parse_dep_spec(word).name for word in words)
    return dedupe(name for name in names if name)

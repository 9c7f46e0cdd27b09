"""Pytest configuration for the `tests/` suite.

The resolver and analyzer only talk to pacman through ``PacmanQuery``'s
runner, so tests install a ``FakePacman`` runner that answers from an
in-memory package database instead of a live system.
"""

from __future__ import annotations

import pytest

from pacdeps.config import Settings
from pacdeps.query import PacmanQuery

NOT_FOUND = "error: package '{}' was not found\n"


def info_text(
    name: str,
    version: str = "1.0-1",
    repo: str | None = None,
    depends=(),
    conflicts=(),
    required_by=(),
    groups=(),
    explicit: bool = False,
) -> str:
    """Render ``pacman -Si``/``-Qi`` style output."""
    fields = []
    if repo is not None:
        fields.append(("Repository", repo))
    fields += [
        ("Name", name),
        ("Version", version),
        ("Description", f"The {name} package"),
        ("Groups", "  ".join(groups) or "None"),
        ("Depends On", "  ".join(depends) or "None"),
        ("Conflicts With", "  ".join(conflicts) or "None"),
        ("Required By", "  ".join(required_by) or "None"),
        (
            "Install Reason",
            "Explicitly installed" if explicit else "Installed as a dependency for another package",
        ),
    ]
    return "".join(f"{label:<16}: {value}\n" for label, value in fields)


class FakePacman:
    """Command runner answering pacman and AUR helper queries from dicts."""

    def __init__(self):
        self.installed: dict[str, str] = {}
        self.local: dict[str, str] = {}
        self.sync: dict[str, str] = {}
        self.upgrades: dict[str, str] = {}
        self.providers: dict[str, str] = {}
        self.helpers: dict[tuple[str, str], str] = {}
        self.calls: list[list[str]] = []

    def install(self, name, version="1.0-1", repo="extra", depends=(), conflicts=(),
                required_by=(), groups=(), explicit=False):
        self.installed[name] = version
        self.local[name] = info_text(name, version, repo, depends, conflicts, required_by, groups, explicit)

    def publish(self, name, version="1.0-1", repo="extra", depends=(), conflicts=()):
        self.sync[name] = info_text(name, version, repo, depends, conflicts)

    def aur(self, helper, name, version="1.0-1", depends=(), conflicts=()):
        self.helpers[(helper, name)] = info_text(name, version, "aur", depends, conflicts)

    def count(self, *prefix: str) -> int:
        return sum(1 for call in self.calls if tuple(call[:len(prefix)]) == prefix)

    def __call__(self, cmd: list[str]) -> tuple[bool, str, str]:
        self.calls.append(list(cmd))
        program, flag, args = cmd[0], cmd[1], cmd[2:]

        if program != "pacman":
            text = self.helpers.get((program, args[0]))
            if text is None:
                return (False, "", NOT_FOUND.format(args[0]))
            return (True, text, "")

        if flag == "-Qq":
            return (True, "".join(f"{name}\n" for name in self.installed), "")
        if flag == "-Qu":
            if not self.upgrades:
                return (False, "", "")
            lines = [f"{name} {self.installed.get(name, '0')} -> {new}\n" for name, new in self.upgrades.items()]
            return (True, "".join(lines), "")
        if flag == "-Qqo":
            provider = self.providers.get(args[0])
            if provider is None:
                return (False, "", f"error: No package owns {args[0]}\n")
            return (True, f"{provider}\n", "")
        if flag == "-Q":
            if args[0] not in self.installed:
                return (False, "", NOT_FOUND.format(args[0]))
            return (True, f"{args[0]} {self.installed[args[0]]}\n", "")
        if flag == "-Qi":
            if args[0] not in self.local:
                return (False, "", NOT_FOUND.format(args[0]))
            return (True, self.local[args[0]], "")
        if flag == "-Si":
            found = [self.sync[name] for name in args if name in self.sync]
            unknown = [name for name in args if name not in self.sync]
            stdout = "\n".join(found)
            if unknown:
                return (False, stdout, "".join(NOT_FOUND.format(name) for name in unknown))
            return (True, stdout, "")

        return (False, "", f"unsupported fake command: {cmd}")


@pytest.fixture
def fake_pacman():
    return FakePacman()


@pytest.fixture
def settings():
    return Settings(aur_helpers=[])


@pytest.fixture
def query(fake_pacman, settings):
    return PacmanQuery(settings=settings, runner=fake_pacman)

"""
Package database queries.

Thin wrapper around the pacman command line. Bulk queries degrade to empty
sets when pacman is unavailable; single-package queries raise ``QueryError``
so callers can record the failure for that package and carry on.
"""

import logging
import os
import shutil
import subprocess
from collections.abc import Callable, Iterable

from pacdeps.config import Settings
from pacdeps.exceptions import PackageNotFoundError, QueryError
from pacdeps.parse import block_package_name, parse_key_value_output, split_info_blocks

logger = logging.getLogger(__name__)

# (success, stdout, stderr)
CommandResult = tuple[bool, str, str]
CommandRunner = Callable[[list[str]], CommandResult]


def run_command(cmd: list[str], timeout: float = 30) -> CommandResult:
    """Execute command with a C locale and return (success, stdout, stderr)"""
    env = dict(os.environ, LC_ALL="C", LANG="C")
    try:
        result = subprocess.run(
            cmd,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            errors="replace",
            timeout=timeout,
            env=env,
        )
        return (result.returncode == 0, result.stdout, result.stderr)
    except subprocess.TimeoutExpired:
        return (False, "", "Command timed out")
    except FileNotFoundError:
        return (False, "", f"Command not found: {cmd[0]}")
    except OSError as e:
        return (False, "", str(e))


def _strip_pkgrel(version: str) -> str:
    return version.split("-", 1)[0]


class PacmanQuery:
    """
    Read-only access to the pacman database.

    Args:
        settings: Binary name, timeout and batch size. Defaults are used if omitted.
        runner: Callable used to execute commands; tests pass a fake here.
    """

    def __init__(self, settings: Settings | None = None, runner: CommandRunner | None = None):
        self.settings = settings or Settings()
        self._runner = runner

    def run(self, cmd: list[str]) -> CommandResult:
        logger.debug(f"Running: {' '.join(cmd)}")
        if self._runner is not None:
            return self._runner(cmd)
        return run_command(cmd, timeout=self.settings.command_timeout)

    def _pacman(self, *args: str) -> CommandResult:
        return self.run([self.settings.pacman_binary, *args])

    # Bulk queries

    def installed_packages(self) -> set[str]:
        """Names of all installed packages (``pacman -Qq``)."""
        success, stdout, stderr = self._pacman("-Qq")
        if not success:
            logger.error(f"pacman -Qq failed: {stderr.strip()}")
            return set()

        packages = {line.strip() for line in stdout.splitlines() if line.strip()}
        logger.debug(f"Successfully retrieved {len(packages)} installed packages")
        return packages

    def upgradable_packages(self) -> set[str]:
        """
        Names of packages with pending upgrades (``pacman -Qu``).

        Lines look like "name 1.0-1 -> 1.1-1"; pacman exits non-zero when
        nothing is upgradable, which is reported as an empty set.
        """
        success, stdout, _ = self._pacman("-Qu")
        if not success:
            logger.debug("pacman -Qu returned non-zero status (no upgrades or error)")
            return set()

        packages = set()
        for line in stdout.splitlines():
            line = line.strip()
            if line:
                packages.add(line.split(" ", 1)[0].strip())
        logger.debug(f"Successfully retrieved {len(packages)} upgradable packages")
        return packages

    # Single package queries

    def find_provider(self, name: str) -> str | None:
        """Return the installed package providing ``name``, if any (``pacman -Qqo``)."""
        success, stdout, _ = self._pacman("-Qqo", name)
        if not success:
            return None
        lines = stdout.splitlines()
        if not lines or not lines[0].strip():
            return None
        provider = lines[0].strip()
        logger.debug(f"{name} is provided by {provider}")
        return provider

    def installed_version(self, name: str) -> str:
        """
        Installed version of ``name`` without the pkgrel (``pacman -Q``).

        Raises:
            PackageNotFoundError: If the package is not installed.
            QueryError: If the output cannot be parsed.
        """
        cmd = [self.settings.pacman_binary, "-Q", name]
        success, stdout, stderr = self.run(cmd)
        if not success:
            raise PackageNotFoundError(name, command=cmd, stderr=stderr)

        lines = stdout.splitlines()
        if lines:
            _, sep, version = lines[0].partition(" ")
            if sep and version.strip():
                return _strip_pkgrel(version.strip())

        raise QueryError(
            f"Could not parse version from pacman -Q output for package '{name}'",
            command=cmd,
        )

    def available_version(self, name: str) -> str | None:
        """Repository version of ``name`` without the pkgrel, or None."""
        try:
            text = self.sync_info(name)
        except QueryError:
            return None

        for line in text.splitlines():
            if line.startswith("Version"):
                _, sep, version = line.partition(":")
                if sep:
                    return _strip_pkgrel(version.strip())
        return None

    def sync_info(self, name: str) -> str:
        """
        Raw ``pacman -Si`` output for a repository package.

        Raises:
            QueryError: If pacman fails or does not know the package.
        """
        cmd = [self.settings.pacman_binary, "-Si", name]
        success, stdout, stderr = self.run(cmd)
        if not success:
            raise QueryError(f"pacman -Si failed for {name}: {stderr.strip()}", command=cmd, stderr=stderr)
        return stdout

    def local_info(self, name: str) -> str:
        """
        Raw ``pacman -Qi`` output for an installed package.

        Raises:
            PackageNotFoundError: If the package is not installed.
        """
        cmd = [self.settings.pacman_binary, "-Qi", name]
        success, stdout, stderr = self.run(cmd)
        if not success:
            raise PackageNotFoundError(name, command=cmd, stderr=stderr)
        return stdout

    def local_fields(self, name: str) -> dict[str, str]:
        """``pacman -Qi`` output parsed into a label -> value mapping."""
        return parse_key_value_output(self.local_info(name))

    def batch_sync_info(self, names: Iterable[str]) -> dict[str, str]:
        """
        Fetch ``pacman -Si`` output for several packages at once.

        Returns a mapping from package name to its block of output. A failed
        chunk stops the batch; packages absent from the result should be
        queried individually.
        """
        names = list(names)
        blocks: dict[str, str] = {}
        size = self.settings.batch_size

        for start in range(0, len(names), size):
            chunk = names[start:start + size]
            success, stdout, stderr = self._pacman("-Si", *chunk)
            if not success:
                logger.debug(f"Batched pacman -Si failed ({stderr.strip()}), falling back to single queries")
                break
            for block in split_info_blocks(stdout):
                name = block_package_name(block)
                if name:
                    blocks[name] = block

        return blocks

    # AUR helpers

    def is_command_available(self, cmd: str) -> bool:
        return shutil.which(cmd) is not None

    def available_helpers(self) -> list[str]:
        """Configured AUR helpers that are installed, in preference order."""
        return [helper for helper in self.settings.aur_helpers if self.is_command_available(helper)]

    def helper_info(self, helper: str, name: str) -> str | None:
        """``<helper> -Si name`` output, or None if the helper fails."""
        success, stdout, stderr = self.run([helper, "-Si", name])
        if not success:
            logger.debug(f"{helper} -Si {name} failed (will try other methods): {stderr.strip()}")
            return None
        return stdout

"""
Custom exceptions for pacdeps.
"""


class PacdepsError(Exception):
    """Base exception for all pacdeps errors."""
    pass


class QueryError(PacdepsError):
    """Raised when a package manager query fails or exits non-zero."""

    def __init__(self, message: str, command: list[str] | None = None,
                 returncode: int | None = None, stderr: str = ""):
        super().__init__(message)
        self.command = command or []
        self.returncode = returncode
        self.stderr = stderr


class PackageNotFoundError(QueryError):
    """Raised when the queried package is not known to the package manager."""

    def __init__(self, package: str, command: list[str] | None = None, stderr: str = ""):
        super().__init__(f"Package not found: {package}", command=command, returncode=1, stderr=stderr)
        self.package = package


class ConfigError(PacdepsError):
    """Raised when the settings file is unreadable or invalid."""
    pass

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from pacdeps import __version__
from pacdeps.config import Settings, load_settings
from pacdeps.exceptions import ConfigError
from pacdeps.models import (
    DependencyResolution,
    PackageRef,
    PackageSource,
    PkgbuildLookup,
    ResolverConfig,
    ReverseDependencyReport,
    StatusKind,
)
from pacdeps.pkgbuild import parse_pkgbuild_conflicts, parse_pkgbuild_deps
from pacdeps.query import PacmanQuery
from pacdeps.resolver import DependencyResolver, package_ref_for
from pacdeps.reverse import ReverseDependencyAnalyzer
from pacdeps.srcinfo import looks_like_srcinfo, parse_srcinfo
from pacdeps.version import compare_versions

console = Console()
err_console = Console(stderr=True)

STATUS_STYLES = {
    StatusKind.CONFLICT: "bold red",
    StatusKind.MISSING: "red",
    StatusKind.TO_INSTALL: "yellow",
    StatusKind.TO_UPGRADE: "cyan",
    StatusKind.INSTALLED: "green",
}


def setup_logging(settings: Settings, verbose: bool = False, debug: bool = False) -> None:
    """Send log records to stderr through rich"""
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = getattr(logging, settings.log_level)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


def pkgbuild_dir_lookup(directory: str | Path) -> PkgbuildLookup:
    """Look up cached PKGBUILDs as DIR/NAME/PKGBUILD or DIR/NAME.PKGBUILD"""
    base = Path(directory).expanduser()

    def lookup(name: str) -> str | None:
        for candidate in (base / name / "PKGBUILD", base / f"{name}.PKGBUILD"):
            if candidate.is_file():
                return candidate.read_text(encoding="utf-8", errors="replace")
        return None

    return lookup


class PacdepsCLI:
    def __init__(self, settings: Settings, query: PacmanQuery | None = None, as_json: bool = False):
        self.settings = settings
        self.query = query or PacmanQuery(settings)
        self.as_json = as_json

    def _print_json(self, data) -> None:
        print(json.dumps(data, indent=2))

    def resolve(self, args: argparse.Namespace) -> int:
        """Resolve direct dependencies of the requested packages"""
        config = ResolverConfig(
            include_optdepends=args.optdepends,
            include_makedepends=args.makedepends,
            include_checkdepends=args.checkdepends,
            pkgbuild_cache=pkgbuild_dir_lookup(args.pkgbuild_dir) if args.pkgbuild_dir else None,
            check_aur=args.check_aur,
        )

        aur = set(args.aur or [])
        installed = self.query.installed_packages()
        packages = [PackageRef(name=name, source=PackageSource.aur()) for name in args.aur or []]
        packages += [package_ref_for(name, self.query, installed) for name in args.packages if name not in aur]

        if not packages:
            console.print("No packages given", style="yellow")
            return 1

        resolution = DependencyResolver(config=config, query=self.query).resolve(packages)

        if self.as_json:
            self._print_json(resolution.to_dict())
        else:
            self._display_resolution(resolution)

        if args.strict and (resolution.missing or resolution.conflicts):
            return 1
        return 0

    def _display_resolution(self, resolution: DependencyResolution) -> None:
        if not resolution.dependencies:
            console.print("No dependencies found")
        else:
            table = Table(title="Dependencies")
            table.add_column("Package", style="cyan")
            table.add_column("Requirement", style="dim")
            table.add_column("Status")
            table.add_column("Source")
            table.add_column("Required By", style="dim")

            for dep in resolution.dependencies:
                style = STATUS_STYLES[dep.status.kind]
                name = f"{dep.name} [bold](system)[/bold]" if dep.is_system else dep.name
                table.add_row(
                    name,
                    dep.version_req,
                    f"[{style}]{dep.status}[/]",
                    str(dep.source),
                    ", ".join(dep.required_by),
                )
            console.print(table)

        if resolution.conflicts:
            console.print(f"[bold red]Conflicts:[/bold red] {', '.join(resolution.conflicts)}")
        if resolution.missing:
            console.print(f"[red]Could not resolve:[/red] {', '.join(resolution.missing)}")

    def reverse(self, args: argparse.Namespace) -> int:
        """Show installed packages that would break if the targets were removed"""
        packages = [PackageRef(name=name) for name in args.packages]
        report = ReverseDependencyAnalyzer(query=self.query).analyze(packages)

        if self.as_json:
            self._print_json(report.to_dict())
        else:
            self._display_report(report)

        if args.strict and report.dependents:
            return 1
        return 0

    def _display_report(self, report: ReverseDependencyReport) -> None:
        summary_table = Table(title="Removal Impact")
        summary_table.add_column("Target", style="cyan")
        summary_table.add_column("Direct", justify="right")
        summary_table.add_column("Transitive", justify="right")
        summary_table.add_column("Total", justify="right", style="bold")
        for summary in report.summaries:
            summary_table.add_row(
                summary.package,
                str(summary.direct_dependents),
                str(summary.transitive_dependents),
                str(summary.total_dependents),
            )
        console.print(summary_table)

        if not report.dependents:
            console.print("[green]No installed packages depend on the removal targets[/green]")
            return

        table = Table(title="Affected Packages")
        table.add_column("Package", style="cyan")
        table.add_column("Source")
        table.add_column("Reason", style="red")
        for dep in report.dependents:
            name = f"{dep.name} [bold](system)[/bold]" if dep.is_system else dep.name
            table.add_row(name, str(dep.source), dep.status.reason)
        console.print(table)

    def vercmp(self, args: argparse.Namespace) -> int:
        """Print -1, 0 or 1 like pacman's vercmp"""
        result = compare_versions(args.a, args.b)
        if self.as_json:
            self._print_json({"a": args.a, "b": args.b, "result": int(result)})
        else:
            print(int(result))
        return 0

    def srcinfo(self, args: argparse.Namespace) -> int:
        text = Path(args.file).read_text(encoding="utf-8", errors="replace")
        if not looks_like_srcinfo(text):
            console.print(f"{args.file} does not look like a .SRCINFO file", style="yellow")
            return 1

        data = parse_srcinfo(text)
        if self.as_json:
            self._print_json(asdict(data))
            return 0

        table = Table(title=data.pkgbase or data.pkgname or args.file, show_header=False)
        table.add_column("Field", style="bold cyan")
        table.add_column("Value")
        for key, value in asdict(data).items():
            table.add_row(key, " ".join(value) if isinstance(value, list) else value)
        console.print(table)
        return 0

    def pkgbuild(self, args: argparse.Namespace) -> int:
        text = Path(args.file).read_text(encoding="utf-8", errors="replace")
        depends, makedepends, checkdepends, optdepends = parse_pkgbuild_deps(text)
        data = {
            "depends": depends,
            "makedepends": makedepends,
            "checkdepends": checkdepends,
            "optdepends": optdepends,
            "conflicts": parse_pkgbuild_conflicts(text),
        }
        if self.as_json:
            self._print_json(data)
            return 0

        table = Table(title=args.file, show_header=False)
        table.add_column("Array", style="bold cyan")
        table.add_column("Entries")
        for key, values in data.items():
            table.add_row(key, "\n".join(values) or "[dim]none[/dim]")
        console.print(table)
        return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pacdeps",
        description="Dependency resolution and removal impact analysis for pacman",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  pacdeps resolve firefox
  pacdeps resolve --aur google-chrome --pkgbuild-dir ~/.cache/pkgbuilds
  pacdeps reverse qt5-base
  pacdeps vercmp 1.2.3 1.2.3alpha

Environment Variables:
  PACDEPS_CONFIG      Settings file (default ~/.config/pacdeps/config.yaml)
  PACDEPS_PACMAN      pacman executable
  PACDEPS_TIMEOUT     Seconds before a pacman query is abandoned
  PACDEPS_LOG_LEVEL   Default log level
        """,
    )

    parser.add_argument("--version", "-V", action="version", version=f"pacdeps {__version__}")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show progress messages")
    parser.add_argument("--debug", action="store_true", help="Show every pacman invocation")
    parser.add_argument("--json", action="store_true", help="Print machine readable output")
    parser.add_argument("--config", help="Settings file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    resolve_parser = subparsers.add_parser("resolve", help="Resolve direct dependencies")
    resolve_parser.add_argument("packages", nargs="*", help="Packages to install")
    resolve_parser.add_argument("--aur", action="append", metavar="NAME", help="Treat NAME as an AUR package")
    resolve_parser.add_argument("--pkgbuild-dir", help="Directory of cached PKGBUILDs for AUR packages")
    resolve_parser.add_argument("--optdepends", action="store_true", help="Include optdepends from PKGBUILDs")
    resolve_parser.add_argument("--makedepends", action="store_true", help="Include makedepends from PKGBUILDs")
    resolve_parser.add_argument("--checkdepends", action="store_true", help="Include checkdepends from PKGBUILDs")
    resolve_parser.add_argument(
        "--check-aur", action="store_true", help="Mark dependencies unknown to the AUR helpers as missing"
    )
    resolve_parser.add_argument(
        "--strict", action="store_true", help="Exit 1 if anything is missing or conflicting"
    )

    reverse_parser = subparsers.add_parser("reverse", help="Show packages broken by a removal")
    reverse_parser.add_argument("packages", nargs="+", help="Packages to remove")
    reverse_parser.add_argument("--strict", action="store_true", help="Exit 1 if anything would break")

    vercmp_parser = subparsers.add_parser("vercmp", help="Compare two versions")
    vercmp_parser.add_argument("a")
    vercmp_parser.add_argument("b")

    srcinfo_parser = subparsers.add_parser("srcinfo", help="Parse a .SRCINFO file")
    srcinfo_parser.add_argument("file")

    pkgbuild_parser = subparsers.add_parser("pkgbuild", help="Parse the arrays of a PKGBUILD")
    pkgbuild_parser.add_argument("file")

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        return 2

    setup_logging(settings, verbose=args.verbose, debug=args.debug)
    cli = PacdepsCLI(settings, as_json=args.json)

    try:
        if args.command == "resolve":
            return cli.resolve(args)
        elif args.command == "reverse":
            return cli.reverse(args)
        elif args.command == "vercmp":
            return cli.vercmp(args)
        elif args.command == "srcinfo":
            return cli.srcinfo(args)
        elif args.command == "pkgbuild":
            return cli.pkgbuild(args)
        else:
            parser.print_help()
            return 1
    except KeyboardInterrupt:
        print("\nOperation cancelled", file=sys.stderr)
        return 130
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())

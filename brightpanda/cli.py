"""CLI entrypoints for brightpanda commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import BrightpandaConfig, ConfigError, load_config
from .logging import configure_logging
from .orchestrator import ScanSession
from .stores import ChangeCache


def _add_common_options(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    verbose_kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    log_file_kwargs: dict[str, object] = {
        "type": Path,
        "help": "Also write detailed logs to this file.",
    }
    if suppress_default:
        verbose_kwargs["default"] = argparse.SUPPRESS
        log_file_kwargs["default"] = argparse.SUPPRESS
    else:
        verbose_kwargs["default"] = False
        log_file_kwargs["default"] = None
    parser.add_argument("-v", "--verbose", **verbose_kwargs)
    parser.add_argument("--log-file", **log_file_kwargs)


def _add_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the repository root (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="brightpanda",
        description="Map services, endpoints and inter-service calls in a repository.",
    )
    _add_common_options(parser)
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan_parser = subparsers.add_parser(
        "scan",
        help="Scan a repository and write its dependency manifest.",
    )
    _add_common_options(scan_parser, suppress_default=True)
    _add_path_argument(scan_parser)
    scan_parser.add_argument(
        "-o",
        "--output",
        type=Path,
        help="Manifest path (defaults to brightpanda.json in the repository root).",
    )
    scan_parser.add_argument(
        "--cache-file",
        type=Path,
        help="Change cache path (defaults to .brightpanda/cache.bin in the repository root).",
    )
    scan_parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable the change cache; every file is parsed.",
    )
    scan_parser.add_argument(
        "--full",
        action="store_true",
        help="Ignore the previous manifest and rebuild it from scratch.",
    )
    scan_parser.add_argument(
        "--max-depth",
        type=int,
        help="Maximum directory depth to descend (0 means unlimited).",
    )
    scan_parser.add_argument(
        "--ext",
        action="append",
        dest="extensions",
        metavar="EXT",
        help="Only scan files with this extension (repeatable).",
    )
    scan_parser.add_argument(
        "--workers",
        type=int,
        help="Number of files to parse in parallel.",
    )
    scan_parser.add_argument(
        "--follow-symlinks",
        action="store_true",
        help="Descend into symlinked directories and files.",
    )

    cache_parser = subparsers.add_parser(
        "cache",
        help="Show or clear the change cache of a repository.",
    )
    _add_common_options(cache_parser, suppress_default=True)
    _add_path_argument(cache_parser)
    cache_parser.add_argument(
        "--clear",
        action="store_true",
        help="Remove every cached entry.",
    )

    return parser


def _apply_scan_overrides(config: BrightpandaConfig, args: argparse.Namespace) -> None:
    if args.output is not None:
        config.output = args.output.expanduser().resolve()
    if args.cache_file is not None:
        config.cache.path = args.cache_file.expanduser().resolve()
    if args.no_cache:
        config.cache.enabled = False
    if args.full:
        config.scan.incremental = False
    if args.max_depth is not None:
        if args.max_depth < 0:
            raise ConfigError("--max-depth must not be negative")
        config.walker.max_depth = args.max_depth
    if args.extensions:
        config.walker.extensions = [ext.lstrip(".") for ext in args.extensions if ext.lstrip(".")]
    if args.workers is not None:
        if args.workers < 1:
            raise ConfigError("--workers must be at least 1")
        config.scan.workers = args.workers
    if args.follow_symlinks:
        config.walker.follow_symlinks = True


def _run_scan(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    repo_path = Path(args.path).expanduser().resolve()
    if not repo_path.is_dir():
        parser.exit(1, f"Path is not a directory: {repo_path}\n")
    try:
        config = load_config(repo_path)
        _apply_scan_overrides(config, args)
    except ConfigError as exc:
        parser.exit(1, f"Invalid configuration: {exc}\n")

    try:
        with ScanSession(repo_path, config) as session:
            report = session.run()
    except (FileNotFoundError, NotADirectoryError) as exc:
        parser.exit(1, f"{exc}\n")
    except ValueError as exc:
        parser.exit(1, f"brightpanda scan failed: {exc}\n")
    except OSError as exc:
        parser.exit(1, f"brightpanda scan failed: {exc}\nRun with --verbose for more details.\n")

    manifest = report.manifest
    print(f"Manifest written to {_relativize(report.output_path)}")
    print(
        f"Files analyzed: {report.files_analyzed}, skipped: {report.files_skipped}, "
        f"removed: {report.files_removed}"
    )
    print(
        f"Services: {len(manifest.services)}, endpoints: {len(manifest.endpoints)}, "
        f"edges: {len(manifest.edges)}"
    )
    if report.cache_stats is not None:
        print(f"Cache hits: {report.cache_stats.hits}, misses: {report.cache_stats.misses}")


def _run_cache(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    repo_path = Path(args.path).expanduser().resolve()
    try:
        config = load_config(repo_path)
    except ConfigError as exc:
        parser.exit(1, f"Invalid configuration: {exc}\n")

    cache = ChangeCache(
        config.cache.path,
        max_entries=config.cache.max_entries,
        max_bytes=config.cache.max_bytes,
    )
    if not cache.load():
        parser.exit(1, f"Failed to read cache file {config.cache.path}\n")

    if args.clear:
        cache.clear()
        if not cache.save():
            parser.exit(1, f"Failed to write cache file {config.cache.path}\n")
        print(f"Cache cleared at {_relativize(cache.path)}")
        return

    stats = cache.stats()
    print(f"Cache file: {_relativize(cache.path)}")
    print(f"Entries: {stats.entries}")
    print(f"Tracked bytes: {stats.total_bytes}")


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for brightpanda commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "scan":
        _run_scan(parser, args)
    elif args.command == "cache":
        _run_cache(parser, args)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _relativize(path: Path | None) -> str:
    if path is None:
        return "<none>"
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])

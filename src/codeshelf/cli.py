"""Command line entrypoint: scan directories, list the catalog, or serve the API."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from codeshelf.config import AppConfig, load_config
from codeshelf.container import AppContainer
from codeshelf.core.search_index import ProjectFilters, SortSpec, sort_projects
from codeshelf.logging_config import setup_logging
from codeshelf.models.project import Project
from codeshelf.models.scan import (
    DEFAULT_IGNORED_PATTERNS,
    JobStatus,
    ScanConfig,
    ScanProgress,
    ScanRoot,
)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="codeshelf", description="Local code project catalog")
    parser.add_argument("--data-dir", help="Catalog directory (default: ~/.codeshelf)")
    parser.add_argument("--log-level", help="Logging level, e.g. DEBUG or WARNING")
    subparsers = parser.add_subparsers(dest="command", required=True)

    scan = subparsers.add_parser("scan", help="Scan directories and update the catalog")
    scan.add_argument("paths", nargs="+", help="Root directories to scan")
    scan.add_argument(
        "--ignore",
        action="append",
        default=None,
        help="Ignore pattern (repeatable); replaces the default set",
    )
    scan.add_argument("--max-depth", type=int, default=5, help="Maximum directory depth")
    scan.add_argument(
        "--include-root",
        action="store_true",
        help="Always catalog each root directory itself",
    )

    listing = subparsers.add_parser("list", help="List or search catalogued projects")
    listing.add_argument("--query", help="Fuzzy search text")
    listing.add_argument("--kind", choices=["git", "local"], help="Only this project kind")
    listing.add_argument("--sort", help="Sort field, prefix with '-' for descending")
    listing.add_argument("--limit", type=int, default=50, help="Maximum number of results")
    listing.add_argument("--json", action="store_true", help="Print projects as JSON")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def _config_from_args(args: argparse.Namespace) -> AppConfig:
    config = load_config()
    updates: dict[str, object] = {}
    if args.data_dir:
        updates["data_dir"] = Path(args.data_dir).expanduser()
    if args.log_level:
        updates["log_level"] = args.log_level.upper()
    return config.model_copy(update=updates)


def _print_progress(job_id: str, progress: ScanProgress) -> None:
    sys.stderr.write(f"\r{progress.processed}/{progress.discovered} directories processed")
    sys.stderr.flush()


async def _scan(config: AppConfig, args: argparse.Namespace) -> int:
    container = AppContainer.build(config)
    await container.start()
    try:
        scan_config = ScanConfig(
            roots=[
                ScanRoot(path=path, include_as_project=args.include_root) for path in args.paths
            ],
            ignore_patterns=args.ignore or list(DEFAULT_IGNORED_PATTERNS),
            max_depth=args.max_depth,
        )
        unsubscribe = container.jobs.on_progress(_print_progress)
        job_id = await container.jobs.start_scan(scan_config)
        job = await container.jobs.wait(job_id)
        unsubscribe()
        sys.stderr.write("\n")
    finally:
        await container.stop()

    if job is None or job.status is not JobStatus.COMPLETE or job.result is None:
        error = job.error if job is not None else "job disappeared"
        sys.stderr.write(f"Scan failed: {error}\n")
        return 1
    stats = job.result.stats
    sys.stdout.write(
        f"Found {len(job.result.projects)} projects "
        f"({stats.git_repos} git, {stats.local_projects} local) in {stats.duration:.2f}s\n"
    )
    for error in job.result.errors:
        sys.stdout.write(f"  error: {error.path}: {error.error}\n")
    return 0


def _format_project(project: Project) -> str:
    branch = f" [{project.branch}]" if project.branch else ""
    return f"{project.name}\t{project.kind.value}{branch}\t{project.path}"


async def _list(config: AppConfig, args: argparse.Namespace) -> int:
    container = AppContainer.build(config)
    await container.start()
    try:
        sort = SortSpec.parse(args.sort)
        filters = ProjectFilters.from_params({"kind": args.kind})
        if args.query:
            # Filter the full ranking, then truncate to the limit.
            matches = container.index.search(
                args.query, limit=container.index.stats()["projectCount"]
            )
            projects = [project for project in matches if filters.accepts(project)][: args.limit]
            if sort is not None:
                projects = sort_projects(projects, sort)
        else:
            page = container.index.get_all(filters=filters, sort=sort, page_size=args.limit)
            projects = page.projects
    finally:
        await container.stop()

    if args.json:
        sys.stdout.write(json.dumps([p.to_json_dict() for p in projects], indent=2) + "\n")
    else:
        for project in projects:
            sys.stdout.write(_format_project(project) + "\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    config = _config_from_args(args)
    setup_logging(config.log_level)

    if args.command in {"scan", "list"}:
        command = _scan if args.command == "scan" else _list
        try:
            return asyncio.run(command(config, args))
        except ValueError as exc:
            sys.stderr.write(f"{exc}\n")
            return 2

    if args.command == "serve":
        from codeshelf.api.app import run

        run(host=args.host, port=args.port, config=config)
        return 0

    raise ValueError(f"Unsupported command: {args.command}")


if __name__ == "__main__":
    raise SystemExit(main())

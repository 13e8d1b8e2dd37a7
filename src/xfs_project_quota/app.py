from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path

from xfs_project_quota.collectors.mount_collector import MountCollector
from xfs_project_quota.models.errors import QuotaError, ValidationError
from xfs_project_quota.models.project import Project
from xfs_project_quota.services.config_service import ConfigPaths, ConfigService
from xfs_project_quota.services.quota_service import QuotaService
from xfs_project_quota.services.report_service import ReportService

log = logging.getLogger("xfs_project_quota")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xfs-project-quota",
        description="Manage XFS project quotas through xfs_quota and /etc/{projects,projid}.",
    )
    parser.add_argument("--config", help="path of a JSON settings file")
    parser.add_argument("-m", "--mountpoint", help="mountpoint of the XFS filesystem (default: inferred)")
    parser.add_argument("-v", "--verbose", action="count", default=0)

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("mounts", help="list XFS mounts with project quota enabled")
    sub.add_parser("list", help="list projects known to the filesystem")

    p = sub.add_parser("config", help="print the effective settings")
    p.add_argument("--write-defaults", action="store_true", help="write the effective settings to the config file")

    p = sub.add_parser("report", help="usage report of all projects")
    p.add_argument("--inodes", action="store_true", help="include inode columns")
    p.add_argument("--html", metavar="PATH", help="also write the report as HTML")

    p = sub.add_parser("show", help="usage report of one project")
    p.add_argument("project", help="project id or name")

    p = sub.add_parser("batch", help="set up or clean up the projects listed in a file")
    p.add_argument("action", choices=("setup", "cleanup"))
    p.add_argument("file", help="one project per line: <id> <name> <path>")

    for name in ("setup", "cleanup", "limit-space", "limit-inodes"):
        p = sub.add_parser(name)
        p.add_argument("id", type=int)
        p.add_argument("name")
        p.add_argument("path")
        if name.startswith("limit-"):
            p.add_argument("soft", type=int)
            p.add_argument("hard", type=int)
    return parser


def _configure_logging(verbose: int) -> None:
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = getattr(logging, os.environ.get("LOG_LEVEL", "WARNING").upper(), logging.WARNING)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _mountpoint(args: argparse.Namespace, path: str | None) -> str:
    if args.mountpoint:
        return os.path.abspath(args.mountpoint)
    found = MountCollector().mountpoint_for(path or os.getcwd())
    if found is None:
        raise SystemExit("xfs-project-quota: cannot infer the mountpoint, pass --mountpoint")
    return found


def _read_batch_file(args: argparse.Namespace) -> list[Project]:
    projects: list[Project] = []
    with open(args.file, "r", encoding="utf-8") as f:
        for line in f:
            parts = line.split(None, 2)
            if len(parts) != 3 or line.lstrip().startswith("#"):
                continue
            if not parts[0].isdigit():
                raise ValidationError(f"Expected a numeric project id in {args.file}: {line.strip()!r}")
            path = os.path.abspath(parts[2].strip())
            projects.append(Project.of(int(parts[0]), parts[1], path, _mountpoint(args, path)))
    return projects


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    config = ConfigService(ConfigPaths(path=Path(args.config))) if args.config else ConfigService()
    reporter = ReportService()

    try:
        service = QuotaService(settings=config.settings())

        if args.command == "config":
            settings = config.settings().to_config()
            if args.write_defaults:
                config.save(settings)
                log.info("Settings written to %s", config.paths.path)
            sys.stdout.write(json.dumps(settings, indent=2, sort_keys=True) + "\n")
            return 0

        if args.command == "mounts":
            sys.stdout.write(reporter.render_mounts(MountCollector().xfs_project_mounts()))
            return 0

        if args.command == "list":
            sys.stdout.write(reporter.render_projects(service.list_projects(_mountpoint(args, None)).values()))
            return 0

        if args.command == "report":
            reports = service.get_report(_mountpoint(args, None), include_inodes=args.inodes)
            text_out = reporter.render_text(reports.values())
            sys.stdout.write(text_out)
            if args.html:
                log.info("Report written to %s", reporter.write_html(args.html, text_out))
            return 0

        if args.command == "show":
            mountpoint = _mountpoint(args, None)
            if args.project.isdigit():
                project = service.find_project_by_id(int(args.project), mountpoint)
            else:
                project = service.find_project_by_name(args.project, mountpoint)
            if project is None:
                sys.stderr.write(f"xfs-project-quota: no such project: {args.project}\n")
                return 1
            report = service.get_report_for_project(project, include_inodes=True)
            if report is None:
                sys.stdout.write(f"{project} is not set up\n")
            else:
                sys.stdout.write(reporter.render_text([report], title=str(project)))
            return 0

        if args.command == "batch":
            projects = _read_batch_file(args)
            if args.action == "setup":
                result = service.setup_projects(projects)
            else:
                result = service.cleanup_projects(projects)
            sys.stdout.write(reporter.render_batch(args.action, result))
            return 0 if result.ok else 1

        path = os.path.abspath(args.path)
        project = Project.of(args.id, args.name, path, _mountpoint(args, path))

        if args.command == "setup":
            service.setup_project(project)
        elif args.command == "cleanup":
            service.cleanup_project(project)
        elif args.command == "limit-space":
            service.set_quota_for_space(project, args.soft, args.hard)
        elif args.command == "limit-inodes":
            service.set_quota_for_inodes(project, args.soft, args.hard)
        return 0
    except (QuotaError, OSError) as e:
        log.debug("%s failed", args.command, exc_info=True)
        sys.stderr.write(f"xfs-project-quota: {e}\n")
        return 1


def run() -> None:
    raise SystemExit(main())

"""Parsers for the text output of ``xfs_quota`` subcommands.

Each ``parse_*_line`` function maps one stripped line to a record, or to
``None`` when the line does not have the shape of a data line (headers, blank
lines, summaries). A line that has the right shape but carries a malformed
number is corrupt data and raises :class:`OutputParseError`.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping

from xfs_project_quota.models.errors import OutputParseError, UnknownProjectId
from xfs_project_quota.models.project import NAME_PATTERN, Project, ProjectReport

_rx_project_descr = re.compile(rf"^\(project\s+(\d+),\s*({NAME_PATTERN})\)$")
_rx_project_id = re.compile(r"^#(\d+)$")
_rx_count = re.compile(r"[0-9]+")


def _lines(text: str) -> Iterator[str]:
    for line in text.splitlines():
        yield line.strip()


def _count(value: str, line: str) -> int:
    if not _rx_count.fullmatch(value):
        raise OutputParseError(f"Expected a non-negative integer, got {value!r}", line)
    return int(value)


def _report(project: Project, parts: list[str], line: str, inodes: bool) -> ProjectReport:
    used = _count(parts[1], line)
    soft = _count(parts[2], line)
    hard = _count(parts[3], line)
    if inodes:
        return ProjectReport(project=project, used_inodes=used, soft_limit_inodes=soft, hard_limit_inodes=hard)
    return ProjectReport(project=project, used_blocks=used, soft_limit_blocks=soft, hard_limit_blocks=hard)


def parse_listing_line(line: str, mountpoint: str) -> Project | None:
    """Parse a line of ``print``: ``<path> <device> (project <id>, <name>)``."""
    parts = line.split(None, 2)
    if len(parts) != 3:
        return None

    m = _rx_project_descr.match(parts[2].strip())
    if not m:
        return None
    return Project.of(int(m.group(1)), m.group(2), parts[0], mountpoint)


def parse_listing(text: str, mountpoint: str) -> dict[int, Project]:
    projects: dict[int, Project] = {}
    for line in _lines(text):
        p = parse_listing_line(line, mountpoint)
        if p is not None:
            projects.setdefault(p.id, p)
    return projects


def parse_report_line(line: str, known: Mapping[int, Project], inodes: bool = False) -> ProjectReport | None:
    """Parse a line of ``report -pnN``: ``#<id> <used> <soft> <hard> <grace...>``."""
    parts = line.split(None, 4)
    if len(parts) != 5:
        return None

    m = _rx_project_id.match(parts[0])
    if not m:
        return None

    project_id = int(m.group(1))
    project = known.get(project_id)
    if project is None:
        raise UnknownProjectId(project_id)
    return _report(project, parts, line, inodes)


def parse_report(text: str, known: Mapping[int, Project], inodes: bool = False) -> dict[int, ProjectReport]:
    reports: dict[int, ProjectReport] = {}
    for line in _lines(text):
        r = parse_report_line(line, known, inodes=inodes)
        if r is not None:
            reports[r.project.id] = r
    return reports


def parse_quota_line(line: str, project: Project, inodes: bool = False) -> ProjectReport | None:
    """Parse a line of ``quota -v -N -p <id>``: ``<device> <used> <soft> <hard> <rest...>``."""
    if not line:
        return None
    parts = line.split(None, 4)
    if len(parts) != 5:
        return None
    return _report(project, parts, line, inodes)


def parse_quota(text: str, project: Project, inodes: bool = False) -> ProjectReport | None:
    for line in _lines(text):
        r = parse_quota_line(line, project, inodes=inodes)
        if r is not None:
            return r
    return None

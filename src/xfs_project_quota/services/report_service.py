from __future__ import annotations

import html
import os
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from xfs_project_quota.models.common import BatchResult, MountInfo
from xfs_project_quota.models.project import Project, ProjectReport


def _fmt(v: int | None) -> str:
    return "-" if v is None else str(v)


class ReportService:
    def render_projects(self, projects: Iterable[Project]) -> str:
        lines = [f"{'ID':>6}  {'NAME':<24} PATH"]
        for p in sorted(projects, key=lambda x: x.id):
            lines.append(f"{p.id:>6}  {p.name:<24} {p.path}")
        return "\n".join(lines) + "\n"

    def render_mounts(self, mounts: Iterable[MountInfo]) -> str:
        lines = [f"{'MOUNTPOINT':<28} {'FSTYPE':<8} {'PQUOTA':<6} DEVICE"]
        for m in mounts:
            lines.append(f"{m.mountpoint:<28} {m.fstype:<8} {'yes' if m.project_quota else 'no':<6} {m.device}")
        return "\n".join(lines) + "\n"

    def render_text(self, reports: Iterable[ProjectReport], title: str | None = None) -> str:
        now = datetime.now().strftime("%F %T")
        lines: list[str] = [title or f"Project quota report @ {now}", ""]
        lines.append(
            f"{'ID':>6}  {'NAME':<24} {'USED(K)':>10} {'SOFT(K)':>10} {'HARD(K)':>10} "
            f"{'FILES':>8} {'ISOFT':>8} {'IHARD':>8}"
        )
        for r in sorted(reports, key=lambda x: x.project.id):
            lines.append(
                f"{r.project.id:>6}  {r.project.name:<24} {_fmt(r.used_blocks):>10} "
                f"{_fmt(r.soft_limit_blocks):>10} {_fmt(r.hard_limit_blocks):>10} "
                f"{_fmt(r.used_inodes):>8} {_fmt(r.soft_limit_inodes):>8} {_fmt(r.hard_limit_inodes):>8}"
            )
        return "\n".join(lines).strip() + "\n"

    def render_batch(self, op: str, result: BatchResult) -> str:
        lines = [f"{op}: {result.status} ({len(result.done)} done, {result.failure_count} failed)"]
        for f in result.failures:
            lines.append(f"  - #{f.project.id} {f.project.name}: {f.error_type}: {f.error}")
        return "\n".join(lines) + "\n"

    def write_html(self, path: str | os.PathLike[str], text_out: str) -> str:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(self.render_html(text_out), encoding="utf-8")
        return str(p)

    def render_html(self, text_out: str) -> str:
        escaped = html.escape(text_out)
        return (
            "<!doctype html>"
            "<html><head><meta charset='utf-8'>"
            "<meta name='viewport' content='width=device-width, initial-scale=1'>"
            "<title>Project Quota Report</title>"
            "<style>body{font-family:ui-monospace,Menlo,Consolas,monospace;margin:24px;}"
            "pre{white-space:pre-wrap;line-height:1.35;}"
            "</style></head><body>"
            "<h1>Project Quota Report</h1>"
            f"<pre>{escaped}</pre>"
            "</body></html>"
        )

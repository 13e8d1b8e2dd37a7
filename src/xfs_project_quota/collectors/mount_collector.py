from __future__ import annotations

import os

import psutil

from xfs_project_quota.models.common import MountInfo
from xfs_project_quota.models.project import is_subpath

PROJECT_QUOTA_OPTIONS = frozenset({"prjquota", "pquota", "pqnoenforce", "pqenforce"})


class MountCollector:
    def __init__(self, all_mounts: bool = False) -> None:
        self.all_mounts = bool(all_mounts)

    def mounts(self) -> list[MountInfo]:
        rows: list[MountInfo] = []
        for p in psutil.disk_partitions(all=self.all_mounts):
            opts = tuple(o.strip() for o in str(p.opts).split(",") if o.strip())
            rows.append(
                MountInfo(
                    device=str(p.device),
                    mountpoint=str(p.mountpoint),
                    fstype=str(p.fstype),
                    options=opts,
                    project_quota=any(o in PROJECT_QUOTA_OPTIONS for o in opts),
                )
            )
        return rows

    def xfs_project_mounts(self) -> list[MountInfo]:
        return [m for m in self.mounts() if m.fstype == "xfs" and m.project_quota]

    def mountpoint_for(self, path: str) -> str | None:
        path = os.path.abspath(path)
        best: str | None = None
        for m in self.mounts():
            if not is_subpath(path, m.mountpoint):
                continue
            if best is None or len(m.mountpoint) > len(best):
                best = m.mountpoint
        return best

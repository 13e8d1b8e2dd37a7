from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from xfs_project_quota.models.project import Project


@dataclass(frozen=True)
class ProjectFailure:
    project: Project
    error: str
    error_type: str


@dataclass(frozen=True)
class BatchResult:
    ts: datetime
    status: str
    done: list[Project] = field(default_factory=list)
    failures: list[ProjectFailure] = field(default_factory=list)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class MountInfo:
    device: str
    mountpoint: str
    fstype: str
    options: tuple[str, ...]
    project_quota: bool

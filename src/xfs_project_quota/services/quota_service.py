from __future__ import annotations

import logging
import os
from collections.abc import Callable, Iterable
from datetime import datetime

from xfs_project_quota.collectors.output_parsers import parse_listing, parse_quota, parse_report
from xfs_project_quota.collectors.quota_command import QuotaCommandRunner
from xfs_project_quota.models.common import BatchResult, ProjectFailure
from xfs_project_quota.models.errors import ConsistencyError, ProjectNotSetup, ValidationError
from xfs_project_quota.models.project import Project, ProjectReport
from xfs_project_quota.services.config_service import QuotaSettings
from xfs_project_quota.services.file_lock import FileLock
from xfs_project_quota.services.registry_service import ProjectRegistry

log = logging.getLogger(__name__)


def _check_limits(soft: int, hard: int, unit: str) -> None:
    for v in (soft, hard):
        if isinstance(v, bool) or not isinstance(v, int) or v < 0:
            raise ValidationError(f"Expected a non-negative integer limit, got {v!r}")
    if soft > hard:
        raise ValidationError(
            f"The soft limit (={soft}{unit}) must be lower than or equal to the hard limit (={hard}{unit})"
        )


class QuotaService:
    """Project setup, cleanup and limits on top of ``xfs_quota`` and the registry files.

    A project moves through the states *unknown* (not listed by ``print``),
    *listed*, *accounted* (a quota report with non-zero usage exists) and
    *limited*. Setup and cleanup only take the steps that are still missing,
    so both are safe to repeat.
    """

    def __init__(
        self,
        runner: QuotaCommandRunner | None = None,
        registry: ProjectRegistry | None = None,
        settings: QuotaSettings | None = None,
    ) -> None:
        self.settings = settings or QuotaSettings()
        s = self.settings
        self.runner = runner or QuotaCommandRunner(
            sudo=s.sudo,
            tool=s.quota_tool,
            timeout_s=s.command_timeout_s,
        )
        self.registry = registry or ProjectRegistry(
            s.projects_file,
            s.projid_file,
            FileLock(s.lock_file, retry_interval_s=s.lock_retry_interval_s, max_retries=s.lock_max_retries),
        )

    # Queries

    def list_projects(self, mountpoint: str) -> dict[int, Project]:
        """List known (not necessarily set up) projects of an XFS filesystem."""
        return parse_listing(self.runner.print_projects(mountpoint), mountpoint)

    def get_report(self, mountpoint: str, include_inodes: bool = False) -> dict[int, ProjectReport]:
        known = self.list_projects(mountpoint)
        reports = parse_report(self.runner.report(mountpoint), known)
        if include_inodes:
            inode_reports = parse_report(self.runner.report(mountpoint, inodes=True), known, inodes=True)
            for project_id, r in inode_reports.items():
                reports[project_id] = reports[project_id].merge(r) if project_id in reports else r
        return reports

    def find_project_by_id(self, project_id: int, mountpoint: str) -> Project | None:
        return self._find_project(str(int(project_id)), mountpoint)

    def find_project_by_name(self, name: str, mountpoint: str) -> Project | None:
        if not name or not name.strip():
            raise ValidationError("Expected a non-blank project name")
        return self._find_project(name, mountpoint)

    def get_report_for_project(self, project: Project, include_inodes: bool = False) -> ProjectReport | None:
        report = parse_quota(self.runner.quota(project), project)
        if include_inodes:
            inodes = parse_quota(self.runner.quota(project, inodes=True), project, inodes=True)
            if inodes is not None:
                report = report.merge(inodes) if report is not None else inodes
        return report

    def get_report_by_id(self, project_id: int, mountpoint: str) -> ProjectReport | None:
        project = self.find_project_by_id(project_id, mountpoint)
        return None if project is None else self.get_report_for_project(project)

    def get_report_by_name(self, name: str, mountpoint: str) -> ProjectReport | None:
        project = self.find_project_by_name(name, mountpoint)
        return None if project is None else self.get_report_for_project(project)

    def _find_project(self, identifier: str, mountpoint: str) -> Project | None:
        listing = parse_listing(self.runner.print_projects(mountpoint, scope=identifier), mountpoint)
        return next(iter(listing.values()), None)

    # Workflows

    def setup_project(self, project: Project) -> None:
        """Register the project if needed and turn on accounting for it.

        The project's directory must already exist. A project that is
        already set up is left as it is.
        """
        if not os.path.isdir(project.mountpoint):
            raise ValidationError(f"The mountpoint is not a directory: {project.mountpoint}")
        if not os.path.isdir(project.path):
            raise ValidationError(f"The project's root directory does not exist: {project.path}")

        listed = self.find_project_by_id(project.id, project.mountpoint)
        if listed is None:
            self.registry.register(project)
            listed = self.find_project_by_id(project.id, project.mountpoint)
            if listed is None:
                raise ConsistencyError(
                    f"The project #{project.id} is not listed by {self.runner.tool} after registering it"
                )

        # a project counts as set up once it reports non-zero usage
        report = self.get_report_for_project(listed)
        if report is None or not report.used_blocks:
            log.info("Enabling accounting for %s", listed)
            self.runner.enable_accounting(listed)
        else:
            log.debug("The project #%d is already set up", listed.id)

    def cleanup_project(self, project: Project) -> None:
        """Stop accounting for the project and remove its definitions.

        The project's directory is left in place.
        """
        if not os.path.isdir(project.mountpoint):
            raise ValidationError(f"The mountpoint is not a directory: {project.mountpoint}")

        if os.path.isdir(project.path) and self.get_report_for_project(project) is not None:
            log.info("Disabling accounting for %s", project)
            self.runner.disable_accounting(project)

        if self.find_project_by_id(project.id, project.mountpoint) is not None:
            self.registry.deregister(project)

    def set_quota_for_space(self, project: Project, soft_kb: int, hard_kb: int) -> None:
        """Set block limits, in 1K blocks; zero means no limit."""
        _check_limits(soft_kb, hard_kb, "K")
        self._check_setup(project)
        self.runner.limit_space(project, soft_kb, hard_kb)

    def set_quota_for_inodes(self, project: Project, soft: int, hard: int) -> None:
        _check_limits(soft, hard, "")
        self._check_setup(project)
        self.runner.limit_inodes(project, soft, hard)

    def _check_setup(self, project: Project) -> None:
        if not os.path.isdir(project.path):
            raise ProjectNotSetup(f"The project's root directory does not exist: {project.path}")
        if self.get_report_for_project(project) is None:
            raise ProjectNotSetup(f"The project {project} is not set up; set it up before applying quota")

    # Batches

    def setup_projects(self, projects: Iterable[Project]) -> BatchResult:
        return self._batch("setup", self.setup_project, projects)

    def cleanup_projects(self, projects: Iterable[Project]) -> BatchResult:
        return self._batch("cleanup", self.cleanup_project, projects)

    def _batch(self, op: str, fn: Callable[[Project], None], projects: Iterable[Project]) -> BatchResult:
        ts = datetime.now()
        done: list[Project] = []
        failures: list[ProjectFailure] = []
        for p in projects:
            try:
                fn(p)
            except Exception as e:
                log.warning("%s failed for %s: %s", op, p, e, exc_info=True)
                failures.append(ProjectFailure(project=p, error=str(e), error_type=type(e).__name__))
            else:
                done.append(p)

        status = "OK" if not failures else "WARN"
        return BatchResult(ts=ts, status=status, done=done, failures=failures)

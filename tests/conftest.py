"""
Pytest fixtures: a fake ``xfs_quota`` that keeps its state in memory and reads
project definitions from temporary registry files, the way the real tool reads
/etc/projects and /etc/projid.
"""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from xfs_project_quota.collectors.quota_command import CommandOutput, QuotaCommandRunner
from xfs_project_quota.services.config_service import QuotaSettings
from xfs_project_quota.services.file_lock import FileLock
from xfs_project_quota.services.quota_service import QuotaService
from xfs_project_quota.services.registry_service import ProjectRegistry

DEVICE = "/dev/sdb1"


@dataclass
class Accounting:
    used_blocks: int = 4
    bsoft: int = 0
    bhard: int = 0
    used_inodes: int = 1
    isoft: int = 0
    ihard: int = 0


@dataclass
class FakeQuotaTool:
    registry: ProjectRegistry
    accounted: dict[int, Accounting] = field(default_factory=dict)
    calls: list[list[str]] = field(default_factory=list)
    fail_on: set[str] = field(default_factory=set)
    timeout_on: set[str] = field(default_factory=set)

    def subcommands(self) -> list[str]:
        return [argv[argv.index("-c") + 1] for argv in self.calls]

    def __call__(self, argv: list[str], timeout: float) -> CommandOutput:
        self.calls.append(list(argv))
        sub = argv[argv.index("-c") + 1]
        scope = argv[argv.index("-d") + 1] if "-d" in argv else None
        mountpoint = argv[-1]

        verb = sub.split()[0]
        if verb in self.timeout_on or sub in self.timeout_on:
            raise subprocess.TimeoutExpired(argv, timeout)
        if verb in self.fail_on or sub in self.fail_on:
            return CommandOutput(returncode=1, stdout="", stderr=f"{sub}: failed\n")
        return CommandOutput(returncode=0, stdout=self._stdout(sub, scope, mountpoint), stderr="")

    def _stdout(self, sub: str, scope: str | None, mountpoint: str) -> str:
        if sub == "print":
            return self._print(scope, mountpoint)
        if sub.startswith("report"):
            inodes = "i" in sub.split()[1]
            lines = []
            for pid, a in sorted(self.accounted.items()):
                if inodes:
                    lines.append(f"#{pid:<10} {a.used_inodes:>10} {a.isoft:>10} {a.ihard:>10}     00 [--------]")
                else:
                    lines.append(f"#{pid:<10} {a.used_blocks:>10} {a.bsoft:>10} {a.bhard:>10}     00 [--------]")
            return "\n".join(lines) + "\n\n"
        if sub.startswith("quota"):
            pid = int(sub.split()[-1])
            a = self.accounted.get(pid)
            if a is None:
                return ""
            if "-i" in sub.split():
                return f"{DEVICE} {a.used_inodes} {a.isoft} {a.ihard} 00 [--------] {mountpoint}\n"
            return f"{DEVICE} {a.used_blocks} {a.bsoft} {a.bhard} 00 [--------] {mountpoint}\n"
        if sub.startswith("project -s"):
            self.accounted.setdefault(int(sub.split()[-1]), Accounting())
            return f"Setting up project {sub.split()[-1]} (path {mountpoint})...\nProcessed 1 paths\n"
        if sub.startswith("project -C"):
            self.accounted.pop(int(sub.split()[-1]), None)
            return "Processed 1 paths\n"
        if sub.startswith("limit"):
            pid = int(sub.split()[-1])
            a = self.accounted.setdefault(pid, Accounting())
            for k, v in re.findall(r"(\w+)=(\d+)K?", sub):
                setattr(a, k, int(v))
            return ""
        raise AssertionError(f"unexpected subcommand: {sub}")

    def _print(self, scope: str | None, mountpoint: str) -> str:
        paths = self.registry.load_paths()
        names = self.registry.load_names()
        lines = ["Filesystem          Pathname"]
        if scope is None:
            lines.append(f"{mountpoint}          {DEVICE} (pquota)")
        for pid, path in paths.items():
            name = names.get(pid)
            if name is None:
                continue
            if scope is not None and scope not in (str(pid), name):
                continue
            lines.append(f"{path}  {DEVICE} (project {pid}, {name})")
        return "\n".join(lines) + "\n"


@pytest.fixture
def mountpoint(tmp_path: Path) -> Path:
    mnt = tmp_path / "mnt"
    (mnt / "projects").mkdir(parents=True)
    return mnt


@pytest.fixture
def etc(tmp_path: Path) -> Path:
    d = tmp_path / "etc"
    d.mkdir()
    (d / "projects").write_text("", encoding="utf-8")
    (d / "projid").write_text("", encoding="utf-8")
    return d


@pytest.fixture
def settings(tmp_path: Path, etc: Path) -> QuotaSettings:
    return QuotaSettings(
        projects_file=str(etc / "projects"),
        projid_file=str(etc / "projid"),
        lock_file=str(tmp_path / "projects.lock"),
        lock_retry_interval_s=0.01,
        lock_max_retries=5,
    )


@pytest.fixture
def registry(settings: QuotaSettings) -> ProjectRegistry:
    lock = FileLock(
        settings.lock_file,
        retry_interval_s=settings.lock_retry_interval_s,
        max_retries=settings.lock_max_retries,
    )
    return ProjectRegistry(settings.projects_file, settings.projid_file, lock)


@pytest.fixture
def fake_tool(registry: ProjectRegistry) -> FakeQuotaTool:
    return FakeQuotaTool(registry=registry)


@pytest.fixture
def runner(fake_tool: FakeQuotaTool) -> QuotaCommandRunner:
    return QuotaCommandRunner(executor=fake_tool)


@pytest.fixture
def service(runner: QuotaCommandRunner, registry: ProjectRegistry, settings: QuotaSettings) -> QuotaService:
    return QuotaService(runner=runner, registry=registry, settings=settings)

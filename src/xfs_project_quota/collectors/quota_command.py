from __future__ import annotations

import logging
import shlex
import subprocess
from dataclasses import dataclass
from typing import Protocol

from xfs_project_quota.models.errors import CommandFailed, CommandTimeout
from xfs_project_quota.models.project import Project

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 2.0


@dataclass(frozen=True)
class CommandOutput:
    returncode: int
    stdout: str
    stderr: str


class CommandExecutor(Protocol):
    def __call__(self, argv: list[str], timeout: float) -> CommandOutput: ...


def subprocess_executor(argv: list[str], timeout: float) -> CommandOutput:
    # stderr is kept apart from stdout; raises subprocess.TimeoutExpired
    res = subprocess.run(
        argv,
        capture_output=True,
        text=True,
        timeout=timeout,
        check=False,
    )
    return CommandOutput(returncode=res.returncode, stdout=res.stdout, stderr=res.stderr)


class QuotaCommandRunner:
    def __init__(
        self,
        executor: CommandExecutor | None = None,
        sudo: str = "sudo",
        tool: str = "xfs_quota",
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self.executor = executor or subprocess_executor
        self.sudo = sudo
        self.tool = tool
        self.timeout_s = float(timeout_s)

    def build_command(self, subcommand: str, scope: str | None, mountpoint: str) -> list[str]:
        argv: list[str] = [self.sudo] if self.sudo else []
        argv += [self.tool, "-x", "-c", subcommand]
        if scope is not None:
            argv += ["-d", str(scope)]
        argv.append(str(mountpoint))
        return argv

    def run(self, subcommand: str, scope: str | None, mountpoint: str) -> str:
        argv = self.build_command(subcommand, scope, mountpoint)
        log.debug("Spawning `%s`", shlex.join(argv))

        try:
            out = self.executor(argv, self.timeout_s)
        except subprocess.TimeoutExpired as e:
            raise CommandTimeout(subcommand, self.timeout_s) from e

        log.debug("`%s` exited with code %d", subcommand, out.returncode)
        if out.returncode != 0:
            if out.stderr:
                log.debug("stderr of `%s`: %s", subcommand, out.stderr.strip())
            raise CommandFailed(subcommand, out.returncode, out.stderr)
        return out.stdout

    def print_projects(self, mountpoint: str, scope: str | None = None) -> str:
        return self.run("print", scope, mountpoint)

    def report(self, mountpoint: str, inodes: bool = False) -> str:
        return self.run("report -pinN" if inodes else "report -pnN", None, mountpoint)

    def quota(self, project: Project, inodes: bool = False) -> str:
        kind = "-i" if inodes else "-b"
        return self.run(f"quota {kind} -v -N -p {project.id}", None, project.mountpoint)

    def enable_accounting(self, project: Project) -> str:
        return self.run(f"project -s {project.id}", None, project.mountpoint)

    def disable_accounting(self, project: Project) -> str:
        return self.run(f"project -C {project.id}", None, project.mountpoint)

    def limit_space(self, project: Project, soft_kb: int, hard_kb: int) -> str:
        cmd = f"limit -p bsoft={int(soft_kb)}K bhard={int(hard_kb)}K {project.id}"
        return self.run(cmd, None, project.mountpoint)

    def limit_inodes(self, project: Project, soft: int, hard: int) -> str:
        cmd = f"limit -p isoft={int(soft)} ihard={int(hard)} {project.id}"
        return self.run(cmd, None, project.mountpoint)

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Callable
from pathlib import Path

from xfs_project_quota.models.errors import RegistryFormatError
from xfs_project_quota.models.project import Project
from xfs_project_quota.services.file_lock import FileLock

log = logging.getLogger(__name__)

RegistryEditor = Callable[[Project], bool]


def _projects_line(project_id: int, path: str) -> str:
    return f"{project_id}:{path}\n"


def _projid_line(project_id: int, name: str) -> str:
    return f"{name}:{project_id}\n"


def _read_pairs(p: Path) -> list[tuple[str, str]]:
    try:
        with open(p, "r", encoding="utf-8") as f:
            lines = f.readlines()
    except FileNotFoundError:
        return []

    pairs: list[tuple[str, str]] = []
    for line in lines:
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        fields = line.split(":")
        if len(fields) != 2:
            continue
        pairs.append((fields[0].strip(), fields[1].strip()))
    return pairs


def _parse_id(value: str, p: Path) -> int:
    try:
        return int(value)
    except ValueError:
        raise RegistryFormatError(f"Malformed project id {value!r} in {p}") from None


def _rewrite(p: Path, lines: list[str]) -> None:
    tmp = p.with_name(p.name + ".tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        f.writelines(lines)
    try:
        os.chmod(tmp, stat.S_IMODE(p.stat().st_mode))
    except FileNotFoundError:
        pass
    tmp.replace(p)


def _ends_without_newline(p: Path) -> bool:
    try:
        with open(p, "rb") as f:
            f.seek(0, os.SEEK_END)
            if f.tell() == 0:
                return False
            f.seek(-1, os.SEEK_END)
            return f.read(1) != b"\n"
    except FileNotFoundError:
        return False


def _append(p: Path, line: str) -> None:
    if _ends_without_newline(p):
        line = "\n" + line
    with open(p, "a", encoding="utf-8") as f:
        f.write(line)


class ProjectRegistry:
    """The pair of project definition files read by ``xfs_quota``.

    ``projects_file`` holds ``<id>:<path>`` lines, ``projid_file`` holds
    ``<name>:<id>`` lines. Every edit runs under ``lock``; the two files are
    written one after the other, not as an atomic pair.
    """

    def __init__(
        self,
        projects_file: str | os.PathLike[str] = "/etc/projects",
        projid_file: str | os.PathLike[str] = "/etc/projid",
        lock: FileLock | None = None,
    ) -> None:
        self.projects_file = Path(projects_file)
        self.projid_file = Path(projid_file)
        self.lock = lock or FileLock("/tmp/projects.lock")

    def load_paths(self) -> dict[int, str]:
        paths: dict[int, str] = {}
        for project_id, path in _read_pairs(self.projects_file):
            paths.setdefault(_parse_id(project_id, self.projects_file), path)
        return paths

    def load_names(self) -> dict[int, str]:
        names: dict[int, str] = {}
        for name, project_id in _read_pairs(self.projid_file):
            names.setdefault(_parse_id(project_id, self.projid_file), name)
        return names

    def edit(self, editor: RegistryEditor, project: Project) -> bool:
        with self.lock:
            return editor(project)

    def register(self, project: Project) -> bool:
        return self.edit(self._register, project)

    def deregister(self, project: Project) -> bool:
        return self.edit(self._deregister, project)

    def _load(self) -> tuple[dict[int, str], dict[int, str]]:
        paths = self.load_paths()
        names = self.load_names()
        if paths.keys() != names.keys():
            log.warning(
                "The project definition files are expected to hold the same set of project ids: "
                "%s has %s, %s has %s",
                self.projects_file, sorted(paths), self.projid_file, sorted(names),
            )
        return paths, names

    def _register(self, project: Project) -> bool:
        log.info("Adding definition for %s under %s", project, self.projects_file)
        paths, names = self._load()

        if project.id not in names:
            _append(self.projects_file, _projects_line(project.id, project.path))
            _append(self.projid_file, _projid_line(project.id, project.name))
            return True

        log.info("The project #%d is already defined under %s", project.id, self.projects_file)
        if names[project.id] != project.name:
            log.warning(
                "A project cannot be renamed: project #%d is named %s (!= %s)",
                project.id, names[project.id], project.name,
            )
        if paths.get(project.id) != project.path:
            log.warning(
                "A project's path cannot be reassigned: project #%d is mapped to %s (!= %s)",
                project.id, paths.get(project.id), project.path,
            )
        return False

    def _deregister(self, project: Project) -> bool:
        log.info("Removing definition of %s from %s", project, self.projects_file)
        paths, names = self._load()

        if project.id not in names:
            log.info(
                "The project #%d cannot be deregistered because it is not defined under %s",
                project.id, self.projid_file,
            )
            return False

        _rewrite(
            self.projects_file,
            [_projects_line(k, v) for k, v in paths.items() if k != project.id],
        )
        _rewrite(
            self.projid_file,
            [_projid_line(k, v) for k, v in names.items() if k != project.id],
        )
        return True

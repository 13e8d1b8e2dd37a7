from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass, replace

from xfs_project_quota.models.errors import ValidationError

MAX_PROJECT_ID = 9999
BLOCK_SIZE = 1024

# names must survive both "<name>:<id>" in projid and "(project <id>, <name>)" in `print`
NAME_PATTERN = r"[^\s:(),]+"

_rx_name = re.compile(NAME_PATTERN)
_rx_bad_path_char = re.compile(r"[:\s]")


def is_subpath(path: str, parent: str) -> bool:
    """Component-wise containment: ``/data/x`` is inside ``/data``, ``/data2`` is not."""
    path = posixpath.normpath(path)
    parent = posixpath.normpath(parent)
    if parent == "/":
        return path.startswith("/")
    return path == parent or path.startswith(parent + "/")


@dataclass(frozen=True)
class Project:
    """A directory tree on an XFS filesystem tracked under a project id."""

    id: int
    name: str
    path: str
    mountpoint: str

    def __post_init__(self) -> None:
        if isinstance(self.id, bool) or not isinstance(self.id, int):
            raise ValidationError(f"Expected an integer project id, got {self.id!r}")
        if not 1 <= self.id <= MAX_PROJECT_ID:
            raise ValidationError(f"The project id must be between 1 and {MAX_PROJECT_ID}: {self.id}")
        if not self.name:
            raise ValidationError("Expected a non-empty project name")
        if not _rx_name.fullmatch(self.name):
            raise ValidationError(
                f"The project name must not contain ':', parentheses, commas or whitespace: {self.name!r}"
            )
        if not self.path:
            raise ValidationError("Expected a path for the root directory of the project")
        # one "<id>:<path>" record per line, and a single field in the listing of `print`
        if _rx_bad_path_char.search(str(self.path)):
            raise ValidationError(f"The root directory of the project must not contain ':' or whitespace: {self.path!r}")
        if not posixpath.isabs(self.path):
            raise ValidationError(f"The root directory of the project must be an absolute path: {self.path}")
        if not self.mountpoint:
            raise ValidationError("Expected a path for the mountpoint of the XFS filesystem")
        if not posixpath.isabs(self.mountpoint):
            raise ValidationError(f"The mountpoint must be an absolute path: {self.mountpoint}")

        object.__setattr__(self, "path", posixpath.normpath(self.path))
        object.__setattr__(self, "mountpoint", posixpath.normpath(self.mountpoint))

        if not is_subpath(self.path, self.mountpoint):
            raise ValidationError(
                f"The root directory of the project must be inside the XFS filesystem: "
                f"{self.path} (mountpoint {self.mountpoint})"
            )

    @classmethod
    def of(cls, project_id: int, name: str, path: str, mountpoint: str) -> Project:
        return cls(id=project_id, name=name, path=str(path), mountpoint=str(mountpoint))

    def __str__(self) -> str:
        return f"Project(id={self.id}, name={self.name}, path={self.path}, mountpoint={self.mountpoint})"


def _to_bytes(blocks: int | None) -> int | None:
    return None if blocks is None else blocks * BLOCK_SIZE


@dataclass(frozen=True)
class ProjectReport:
    """Usage and limits of a single project as reported by ``xfs_quota``.

    Block values are in 1K blocks. A zero ``used_blocks`` means either that the
    project is not set up or that it has not allocated a block yet; a zero limit
    means either "not set up" or "no limit defined". A project that is set up
    uses at least one inode (its root directory).

    Columns that were not queried are ``None``.
    """

    project: Project
    used_blocks: int | None = None
    soft_limit_blocks: int | None = None
    hard_limit_blocks: int | None = None
    used_inodes: int | None = None
    soft_limit_inodes: int | None = None
    hard_limit_inodes: int | None = None

    @property
    def used_bytes(self) -> int | None:
        return _to_bytes(self.used_blocks)

    @property
    def soft_limit_bytes(self) -> int | None:
        return _to_bytes(self.soft_limit_blocks)

    @property
    def hard_limit_bytes(self) -> int | None:
        return _to_bytes(self.hard_limit_blocks)

    @property
    def number_of_files(self) -> int | None:
        return self.used_inodes

    def merge(self, other: ProjectReport) -> ProjectReport:
        if other.project.id != self.project.id:
            raise ValueError(f"Cannot merge reports of projects #{self.project.id} and #{other.project.id}")
        changes = {
            k: getattr(other, k)
            for k in (
                "used_blocks",
                "soft_limit_blocks",
                "hard_limit_blocks",
                "used_inodes",
                "soft_limit_inodes",
                "hard_limit_inodes",
            )
            if getattr(other, k) is not None
        }
        return replace(self, **changes)

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from xfs_project_quota.models.errors import ValidationError

log = logging.getLogger(__name__)

CONFIG_ENV = "XFS_PROJECT_QUOTA_CONFIG"


@dataclass(frozen=True)
class QuotaSettings:
    projects_file: str = "/etc/projects"
    projid_file: str = "/etc/projid"
    lock_file: str = "/tmp/projects.lock"
    lock_retry_interval_s: float = 0.25
    lock_max_retries: int = 5
    command_timeout_s: float = 2.0
    sudo: str = "sudo"
    quota_tool: str = "xfs_quota"

    @classmethod
    def from_config(cls, cfg: dict[str, Any]) -> QuotaSettings:
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in cfg:
                continue
            default = getattr(cls, f.name)
            try:
                kwargs[f.name] = type(default)(cfg[f.name])
            except (TypeError, ValueError) as e:
                raise ValidationError(f"Invalid value for setting {f.name!r}: {cfg[f.name]!r}") from e
        return cls(**kwargs)

    def to_config(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class ConfigPaths:
    path: Path


class ConfigService:
    def __init__(self, paths: ConfigPaths | None = None) -> None:
        self.paths = paths or ConfigPaths(path=self.default_path())

    @staticmethod
    def default_path() -> Path:
        override = os.environ.get(CONFIG_ENV)
        if override:
            return Path(override)
        xdg = os.environ.get("XDG_CONFIG_HOME")
        if xdg:
            base = Path(xdg)
        else:
            base = Path.home() / ".config"
        return base / "xfs_project_quota" / "config.json"

    def load(self) -> dict[str, Any]:
        p = self.paths.path
        if not p.exists():
            return {}
        try:
            with open(p, "r", encoding="utf-8") as f:
                obj = json.load(f)
        except (OSError, ValueError) as e:
            log.warning("Ignoring unreadable config %s: %s", p, e)
            return {}
        if not isinstance(obj, dict):
            log.warning("Ignoring config %s: expected a JSON object", p)
            return {}
        return obj

    def settings(self) -> QuotaSettings:
        return QuotaSettings.from_config(self.load())

    def save(self, cfg: dict[str, Any]) -> None:
        p = self.paths.path
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(p.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(cfg, f, ensure_ascii=False, indent=2, sort_keys=True)
        tmp.replace(p)

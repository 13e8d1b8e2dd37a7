from __future__ import annotations

import logging
import threading

import pytest

from xfs_project_quota.models.errors import LockTimeout, RegistryFormatError
from xfs_project_quota.models.project import Project
from xfs_project_quota.services.file_lock import FileLock
from xfs_project_quota.services.registry_service import ProjectRegistry


def _project(mnt, project_id=42, name="alice"):
    return Project.of(project_id, name, str(mnt / "projects" / name), str(mnt))


def _read(etc):
    return (etc / "projects").read_text(encoding="utf-8"), (etc / "projid").read_text(encoding="utf-8")


def test_register_appends_one_line_each(registry, etc, mountpoint):
    p = _project(mountpoint)
    assert registry.register(p) is True
    projects, projid = _read(etc)
    assert projects == f"42:{p.path}\n"
    assert projid == "alice:42\n"


def test_register_twice_is_noop(registry, etc, mountpoint):
    p = _project(mountpoint)
    registry.register(p)
    before = _read(etc)
    assert registry.register(p) is False
    assert _read(etc) == before


def test_register_rename_is_warned_not_applied(registry, etc, mountpoint, caplog):
    registry.register(_project(mountpoint))
    before = _read(etc)
    with caplog.at_level(logging.WARNING):
        assert registry.register(Project.of(42, "bob", str(mountpoint / "projects" / "bob"), str(mountpoint))) is False
    assert _read(etc) == before
    assert "cannot be renamed" in caplog.text
    assert "cannot be reassigned" in caplog.text


def test_deregister_then_register_roundtrip(registry, etc, mountpoint):
    p = _project(mountpoint)
    registry.register(p)
    original = _read(etc)

    assert registry.deregister(p) is True
    assert _read(etc) == ("", "")

    registry.register(p)
    assert _read(etc) == original


def test_deregister_keeps_order_of_others(registry, etc, mountpoint):
    for pid, name in [(1, "a"), (2, "b"), (3, "c")]:
        registry.register(_project(mountpoint, pid, name))

    registry.deregister(_project(mountpoint, 2, "b"))
    projects, projid = _read(etc)
    assert projects.splitlines() == [f"1:{mountpoint}/projects/a", f"3:{mountpoint}/projects/c"]
    assert projid.splitlines() == ["a:1", "c:3"]


def test_deregister_unknown_is_noop(registry, etc, mountpoint):
    registry.register(_project(mountpoint, 1, "a"))
    before = _read(etc)
    assert registry.deregister(_project(mountpoint, 2, "b")) is False
    assert _read(etc) == before


def test_deregister_preserves_file_mode(registry, etc, mountpoint):
    registry.register(_project(mountpoint))
    (etc / "projects").chmod(0o640)
    registry.deregister(_project(mountpoint))
    assert (etc / "projects").stat().st_mode & 0o777 == 0o640


def test_load_first_duplicate_wins(registry, etc):
    (etc / "projects").write_text("# comment\n\n1:/mnt/a\n1:/mnt/b\nnot-a-pair\n2:/mnt/c\n", encoding="utf-8")
    (etc / "projid").write_text("a:1\nb:1\nc:2\n", encoding="utf-8")
    assert registry.load_paths() == {1: "/mnt/a", 2: "/mnt/c"}
    assert registry.load_names() == {1: "a", 2: "c"}
    assert list(registry.load_paths()) == [1, 2]


def test_load_malformed_id(registry, etc):
    (etc / "projid").write_text("a:one\n", encoding="utf-8")
    with pytest.raises(RegistryFormatError):
        registry.load_names()


def test_missing_files_read_as_empty(tmp_path, mountpoint):
    reg = ProjectRegistry(tmp_path / "nope" / "projects", tmp_path / "nope" / "projid", FileLock(tmp_path / "l"))
    assert reg.load_paths() == {}
    assert reg.load_names() == {}


def test_register_creates_missing_files(tmp_path, mountpoint):
    reg = ProjectRegistry(tmp_path / "projects", tmp_path / "projid", FileLock(tmp_path / "l"))
    reg.register(_project(mountpoint))
    assert (tmp_path / "projid").read_text(encoding="utf-8") == "alice:42\n"


def test_register_after_line_without_newline(registry, etc, mountpoint):
    (etc / "projects").write_text("1:/mnt/a", encoding="utf-8")
    (etc / "projid").write_text("a:1", encoding="utf-8")
    registry.register(_project(mountpoint))
    assert _read(etc)[1] == "a:1\nalice:42\n"


def test_diverging_files_only_warn(registry, etc, mountpoint, caplog):
    (etc / "projects").write_text("7:/mnt/x\n", encoding="utf-8")
    with caplog.at_level(logging.WARNING):
        assert registry.register(_project(mountpoint)) is True
    assert "same set of project ids" in caplog.text
    assert _read(etc)[1] == "alice:42\n"


def test_edit_runs_under_lock(registry, mountpoint, settings):
    seen = []

    def editor(project):
        seen.append(registry.lock.held)
        return True

    assert registry.edit(editor, _project(mountpoint)) is True
    assert seen == [True]
    assert not registry.lock.held


def test_register_fails_when_lock_never_released(registry, etc, mountpoint, settings):
    open(settings.lock_file, "w").close()
    with pytest.raises(LockTimeout):
        registry.register(_project(mountpoint))
    assert _read(etc) == ("", "")


def test_concurrent_registers_do_not_interleave(settings, etc, mountpoint):
    def make_registry():
        lock = FileLock(settings.lock_file, retry_interval_s=0.005, max_retries=400)
        return ProjectRegistry(settings.projects_file, settings.projid_file, lock)

    projects = [_project(mountpoint, pid, f"p{pid}") for pid in range(1, 21)]
    threads = [threading.Thread(target=make_registry().register, args=(p,)) for p in projects]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    projects_txt, projid_txt = _read(etc)
    path_ids = [int(line.split(":")[0]) for line in projects_txt.splitlines()]
    name_ids = [int(line.split(":")[1]) for line in projid_txt.splitlines()]
    assert sorted(path_ids) == list(range(1, 21))
    # each register appends to both files inside one critical section
    assert path_ids == name_ids

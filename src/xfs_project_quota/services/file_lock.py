from __future__ import annotations

import logging
import os
import time
from pathlib import Path
from types import TracebackType

from xfs_project_quota.models.errors import LockTimeout

log = logging.getLogger(__name__)


class FileLock:
    """Cross-process mutual exclusion through an exclusively created marker file.

    The marker is created with ``O_CREAT | O_EXCL`` (absence means unlocked).
    On contention the acquisition sleeps ``retry_interval_s`` and tries again,
    at most ``max_retries`` times, then raises :class:`LockTimeout`. The marker
    is removed on every exit path of the ``with`` block.
    """

    def __init__(
        self,
        path: str | os.PathLike[str],
        retry_interval_s: float = 0.25,
        max_retries: int = 5,
        mode: int = 0o600,
    ) -> None:
        self.path = Path(path)
        self.retry_interval_s = float(retry_interval_s)
        self.max_retries = int(max_retries)
        self.mode = int(mode)
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        retries = 0
        while True:
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, self.mode)
            except FileExistsError:
                retries += 1
                if retries > self.max_retries:
                    raise LockTimeout(str(self.path), retries) from None
                log.debug("Lock %s is busy, retrying in %.2fs (%d/%d)",
                          self.path, self.retry_interval_s, retries, self.max_retries)
                time.sleep(self.retry_interval_s)
                continue
            os.close(fd)
            self._held = True
            return

    def release(self) -> None:
        if not self._held:
            return
        self._held = False
        os.unlink(self.path)

    def __enter__(self) -> FileLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()

"""Directory lock giving one process exclusive ownership of a store."""

from __future__ import annotations

import errno
import logging
import os
from pathlib import Path

from ..core.errors import StoreLockedError

logger = logging.getLogger(__name__)


def _pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except OSError as e:
        return e.errno == errno.EPERM
    return True


class DirectoryLock:
    """Pid lock file created with O_EXCL.

    Args:
        path: Lock file path (typically <data_dir>/LOCK)

    A lock left behind by a dead process is taken over.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._held = False

    def acquire(self) -> None:
        for _ in range(2):
            try:
                fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                owner = self._read_owner()
                if owner == os.getpid() or _pid_alive(owner):
                    raise StoreLockedError(
                        f"{self.path.parent} is in use by process {owner}"
                    ) from None
                logger.warning(f"Removing stale lock {self.path} (pid {owner})")
                self.path.unlink(missing_ok=True)
                continue
            with os.fdopen(fd, "w") as f:
                f.write(str(os.getpid()))
            self._held = True
            logger.debug(f"Acquired {self.path}")
            return
        raise StoreLockedError(f"Could not acquire {self.path}")

    def _read_owner(self) -> int:
        try:
            return int(self.path.read_text().strip() or 0)
        except (OSError, ValueError):
            return 0

    def release(self) -> None:
        if self._held:
            self.path.unlink(missing_ok=True)
            self._held = False
            logger.debug(f"Released {self.path}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

"""PID lock file that keeps a second controller off the same data directory."""

import logging
import os
from pathlib import Path
from typing import Callable, Optional

from dtcontrol.core.exceptions import AlreadyRunningError
from dtcontrol.core.liveness import is_alive as _default_is_alive

logger = logging.getLogger(__name__)


def atomic_write(target: Path, content: str):
    """Write content to a file atomically via a temp file + rename."""
    tmp_path = target.with_suffix(target.suffix + '.tmp')
    tmp_path.write_text(content)
    tmp_path.replace(target)


class InstanceLock:
    """Lock file holding the decimal PID of the controlling process.

    A file naming a live PID means another controller owns the data directory.
    A missing file, a garbled one, or one naming a dead PID is reclaimed.
    """

    def __init__(self, lock_path: Path, is_alive: Callable[[int], bool] = _default_is_alive):
        self.lock_path = Path(lock_path)
        self._is_alive = is_alive
        self.owner_pid: Optional[int] = None

    def read_owner_pid(self) -> Optional[int]:
        """Return the PID recorded in the lock file, or None if there is none."""
        try:
            text = self.lock_path.read_text().strip()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read lock file %s: %s", self.lock_path, e)
            return None
        try:
            return int(text)
        except ValueError:
            logger.warning("Ignoring garbled lock file %s: %r", self.lock_path, text[:32])
            return None

    def acquire(self) -> None:
        """Claim the lock for the current process.

        Raises AlreadyRunningError, without touching the file, when the
        recorded owner is still alive. A file naming our own PID was left by
        an earlier run that reused it and is reclaimed.
        """
        pid = self.read_owner_pid()
        if pid == os.getpid():
            logger.info("Reclaiming lock file %s left by an earlier run with our pid %d", self.lock_path, pid)
        elif pid is not None:
            if self._is_alive(pid):
                raise AlreadyRunningError(pid, self.lock_path)
            logger.info("Reclaiming stale lock file %s (pid %d is no longer running)", self.lock_path, pid)

        self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        if self.lock_path.exists():
            atomic_write(self.lock_path, str(os.getpid()))
        else:
            self._create_exclusive()
        self.owner_pid = os.getpid()
        logger.debug("Acquired lock %s for pid %d", self.lock_path, self.owner_pid)

    def _create_exclusive(self) -> None:
        """Create the lock file, failing if another controller created it first."""
        try:
            fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise AlreadyRunningError(self.read_owner_pid(), self.lock_path) from None
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))

    def release(self):
        """Remove the lock file. Safe to call when it is already gone."""
        self.lock_path.unlink(missing_ok=True)
        if self.owner_pid is not None:
            logger.debug("Released lock %s", self.lock_path)
        self.owner_pid = None

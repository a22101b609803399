"""Per-service deployment lock."""

import fcntl
import logging
import os
import re
from pathlib import Path
from typing import IO

from ecs_rollout.core.deployments.aws_ecs.errors import DeploymentLockedError

logger = logging.getLogger(__name__)


class DeploymentLock:
    """Exclusive lock that serialises rollouts of one service on this host.

    Uses a non-blocking ``flock`` on ``<lock_dir>/<service>.lock``. The lock
    is released when the context exits or the process dies.
    """

    def __init__(self, service_name: str, lock_dir: Path) -> None:
        self.service_name = service_name
        self.lock_dir = Path(lock_dir)
        safe_name = re.sub(r"[^A-Za-z0-9_-]", "_", service_name)
        self.lock_file_path = self.lock_dir / f"{safe_name}.lock"
        self._lock_file: IO[str] | None = None

    def __enter__(self) -> "DeploymentLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            DeploymentLockedError: If another process already holds it.
        """
        self.lock_dir.mkdir(parents=True, exist_ok=True)
        lock_file = open(self.lock_file_path, "a+", encoding="utf-8")
        try:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            lock_file.close()
            raise DeploymentLockedError(
                f"Another rollout of {self.service_name} is in progress "
                f"(lock {self.lock_file_path})."
            ) from exc

        lock_file.seek(0)
        lock_file.truncate()
        lock_file.write(f"{os.getpid()}\n")
        lock_file.flush()
        self._lock_file = lock_file
        logger.debug("Acquired deployment lock %s", self.lock_file_path)

    def release(self) -> None:
        """Release the lock if held."""
        if self._lock_file is None:
            return
        try:
            fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
        finally:
            self._lock_file.close()
            self._lock_file = None
        logger.debug("Released deployment lock %s", self.lock_file_path)

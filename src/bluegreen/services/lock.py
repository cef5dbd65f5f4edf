"""Per-service deployment lock."""

import json
import os
import tempfile
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from bluegreen.errors import PreflightError
from bluegreen.errors_catalog import actionable_error


class DeploymentLock:
    """Lock file that serializes releases of one service on this host.

    The holder's pid is written to a temporary file first and then hard-linked
    into place, so the lock file never exists without its contents. A lock
    file that cannot be read is treated as held until it is older than
    `unreadable_grace_seconds`.
    """

    def __init__(self, lock_dir: str, service_name: str, logger, unreadable_grace_seconds: float = 300.0):
        self.service_name = service_name
        self.logger = logger
        self.path = os.path.join(lock_dir, f"{service_name}.lock")
        self.unreadable_grace_seconds = unreadable_grace_seconds
        self.acquired = False

    def acquire(self):
        lock_dir = os.path.dirname(self.path) or "."
        os.makedirs(lock_dir, exist_ok=True)

        fd, temp_path = tempfile.mkstemp(prefix=f".{self.service_name}.", suffix=".lock", dir=lock_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(
                    {"pid": os.getpid(), "acquired_at": datetime.now(timezone.utc).isoformat()},
                    file_obj,
                )
            for _ in range(2):
                try:
                    os.link(temp_path, self.path)
                except FileExistsError:
                    self._clear_if_stale()
                    continue
                self.acquired = True
                self.logger.debug("Acquired deployment lock %s", self.path)
                return
        finally:
            os.remove(temp_path)

        raise PreflightError(f"Could not acquire deployment lock {self.path}.")

    def release(self):
        if not self.acquired:
            return
        try:
            os.remove(self.path)
        except OSError as exc:
            self.logger.warning("Could not remove deployment lock %s: %s", self.path, exc)
        self.acquired = False

    def _clear_if_stale(self):
        holder = self._read_holder()
        pid = holder.get("pid") if holder else None

        if pid is None:
            age = self._age_seconds()
            if age is not None and age < self.unreadable_grace_seconds:
                self._raise_locked("unknown")
        elif self._pid_alive(pid):
            self._raise_locked(pid)

        self.logger.warning("Removing stale deployment lock %s (pid %s)", self.path, pid)
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass

    def _raise_locked(self, pid):
        raise PreflightError(
            actionable_error(
                "deployment_locked",
                service=self.service_name,
                pid=pid,
                path=self.path,
            )
        )

    def _age_seconds(self) -> Optional[float]:
        try:
            return time.time() - os.path.getmtime(self.path)
        except OSError:
            return None

    def _read_holder(self) -> Optional[Dict[str, Any]]:
        try:
            with open(self.path, "r", encoding="utf-8") as file_obj:
                data = json.load(file_obj)
        except (OSError, json.JSONDecodeError):
            return None
        return data if isinstance(data, dict) else None

    @staticmethod
    def _pid_alive(pid: int) -> bool:
        try:
            os.kill(int(pid), 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        except (OSError, ValueError):
            return False
        return True

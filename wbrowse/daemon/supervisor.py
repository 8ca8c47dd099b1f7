"""Spawn-and-liveness supervision of session daemons.

The CLI never talks to a socket before ``ensure_session`` returned: it makes
sure exactly one daemon serves the session, spawning it when needed and
clearing out sockets left behind by a crashed daemon.
"""

import fcntl
import logging
import os
import shutil
import signal
import subprocess
import sys
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List

from wbrowse.core.errors import (
    NotFoundError,
    RemoteError,
    SpawnTimeoutError,
    ValidationError,
)
from wbrowse.daemon.client import DELETE_TIMEOUT, DaemonClient, socket_is_live
from wbrowse.daemon.paths import (
    get_lock_path,
    get_log_path,
    get_pid_path,
    get_session_dir,
    get_sessions_root,
    get_socket_path,
    read_pid,
    validate_session_name,
)

logger = logging.getLogger(__name__)

SPAWN_TIMEOUT = 10.0
POLL_INTERVAL = 0.1
LOG_TAIL_LINES = 20


def _tail(path, lines: int = LOG_TAIL_LINES) -> str:
    try:
        content = path.read_text(errors="replace")
    except OSError:
        return ""
    return "\n".join(content.splitlines()[-lines:])


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Someone else's process reused the PID
        return False
    return True


class SessionSupervisor:
    """
    Makes sure a live daemon serves a session.

    Args:
        spawn_timeout: Seconds to wait for a spawned daemon's socket
        poll_interval: Seconds between readiness probes
        popen: Process factory (``subprocess.Popen`` signature)
    """

    def __init__(
        self,
        spawn_timeout: float = SPAWN_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
        popen: Callable[..., Any] = subprocess.Popen,
    ):
        self.spawn_timeout = spawn_timeout
        self.poll_interval = poll_interval
        self._popen = popen

    def is_running(self, name: str) -> bool:
        return socket_is_live(get_socket_path(name))

    @contextmanager
    def _spawn_lock(self, name: str) -> Iterator[None]:
        """Exclusive lock so concurrent ``wb`` calls spawn one daemon."""
        lock_path = get_lock_path(name)
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with open(lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def ensure_session(self, name: str, debug: bool = False) -> None:
        """
        Return once a daemon for ``name`` accepts connections.

        Raises:
            ValidationError: If the session name is invalid
            SpawnTimeoutError: If the daemon failed to come up twice
        """
        validate_session_name(name)
        with self._spawn_lock(name):
            try:
                self._ensure_locked(name, debug)
            except SpawnTimeoutError as e:
                logger.warning(f"Retrying spawn of session {name}: {e}")
                self._ensure_locked(name, debug)

    def _ensure_locked(self, name: str, debug: bool) -> None:
        socket_path = get_socket_path(name)
        if socket_path.exists():
            if socket_is_live(socket_path):
                return
            logger.info(f"Removing stale socket for session {name}")
            socket_path.unlink(missing_ok=True)
            get_pid_path(name).unlink(missing_ok=True)
        self._spawn(name, debug)

    def _spawn(self, name: str, debug: bool) -> None:
        command = [sys.executable, "-m", "wbrowse.daemon.server", "--session", name]
        if debug:
            command.append("--debug")

        log_path = get_log_path(name)
        logger.debug(f"Spawning daemon: {' '.join(command)}")
        with open(log_path, "ab") as log_file:
            process = self._popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=log_file,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )

        socket_path = get_socket_path(name)
        deadline = time.monotonic() + self.spawn_timeout
        while True:
            if socket_path.exists() and socket_is_live(socket_path):
                return

            code = process.poll()
            if code is not None:
                raise SpawnTimeoutError(
                    f"Daemon for session {name} exited with code {code} before "
                    f"becoming ready. Last log lines:\n{_tail(log_path)}"
                )

            if time.monotonic() >= deadline:
                # A late daemon would race the retry for the browser profile
                process.terminate()
                raise SpawnTimeoutError(
                    f"Daemon for session {name} not ready after "
                    f"{self.spawn_timeout:.0f}s. Last log lines:\n{_tail(log_path)}"
                )

            time.sleep(self.poll_interval)

    def list_sessions(self) -> List[Dict[str, Any]]:
        """Every session directory under the root, with a probed liveness flag."""
        root = get_sessions_root()
        if not root.is_dir():
            return []

        sessions = []
        for entry in sorted(root.iterdir()):
            if not entry.is_dir():
                continue
            try:
                running = self.is_running(entry.name)
            except ValidationError:
                continue
            sessions.append({"name": entry.name, "running": running})
        return sessions

    def delete_session(self, name: str, timeout: float = DELETE_TIMEOUT) -> None:
        """
        Shut the daemon down and remove the session directory.

        Raises:
            NotFoundError: If the session does not exist
        """
        session_dir = get_session_dir(name)
        if not session_dir.is_dir():
            raise NotFoundError(f"Session {name} does not exist")

        pid = read_pid(name)
        if self.is_running(name):
            try:
                acknowledged = DaemonClient(name, timeout=timeout).delete_session()
            except RemoteError as e:
                logger.warning(f"Session {name} refused deletion: {e}")
                acknowledged = False
            if not acknowledged:
                logger.info(f"Session {name} did not acknowledge deletion")

        if pid is not None:
            self._wait_for_exit(pid, timeout)

        shutil.rmtree(session_dir, ignore_errors=True)
        logger.info(f"Deleted session {name}")

    def _wait_for_exit(self, pid: int, timeout: float) -> None:
        deadline = time.monotonic() + timeout
        while _pid_alive(pid):
            if time.monotonic() >= deadline:
                logger.warning(f"Daemon {pid} still alive after {timeout:.0f}s, sending SIGTERM")
                try:
                    os.kill(pid, signal.SIGTERM)
                except ProcessLookupError:
                    return
                break
            time.sleep(self.poll_interval)

        # Give SIGTERM the same bound, then stop waiting
        deadline = time.monotonic() + timeout
        while _pid_alive(pid) and time.monotonic() < deadline:
            time.sleep(self.poll_interval)

"""Filesystem layout for sessions.

Each session lives in its own directory under the sessions root::

    <root>/<name>/sock         Unix socket the daemon listens on
    <root>/<name>/data/        persistent browser profile
    <root>/<name>/daemon.pid   daemon PID, written before the socket opens
    <root>/<name>/daemon.log   daemon stdout/stderr
    <root>/<name>/spawn.lock   serializes concurrent spawns
"""

import os
import re
from pathlib import Path

from wbrowse.core.errors import ValidationError

_SESSION_NAME = re.compile(r"[A-Za-z0-9_-][A-Za-z0-9_.-]*")
MAX_SESSION_NAME = 64
# sockaddr_un.sun_path is 108 bytes including the trailing NUL
MAX_SOCKET_PATH = 107


def get_sessions_root() -> Path:
    """Sessions root, overridable with WB_SESSION_DIR."""
    override = os.environ.get("WB_SESSION_DIR")
    if override:
        return Path(override)
    return Path.home() / ".wbrowse" / "sessions"


def validate_session_name(name: str) -> str:
    if not isinstance(name, str) or not _SESSION_NAME.fullmatch(name):
        raise ValidationError(
            f"Invalid session name {name!r}: use letters, digits, '_', '-' or '.'"
        )
    if len(name) > MAX_SESSION_NAME:
        raise ValidationError(
            f"Invalid session name {name!r}: at most {MAX_SESSION_NAME} characters"
        )
    return name


def get_session_dir(name: str) -> Path:
    return get_sessions_root() / validate_session_name(name)


def get_socket_path(name: str) -> Path:
    path = get_session_dir(name) / "sock"
    if len(os.fsencode(path)) > MAX_SOCKET_PATH:
        raise ValidationError(
            f"Socket path {path} is longer than {MAX_SOCKET_PATH} bytes; "
            "use a shorter session name or WB_SESSION_DIR"
        )
    return path


def get_data_dir(name: str) -> Path:
    return get_session_dir(name) / "data"


def get_pid_path(name: str) -> Path:
    return get_session_dir(name) / "daemon.pid"


def get_log_path(name: str) -> Path:
    return get_session_dir(name) / "daemon.log"


def get_lock_path(name: str) -> Path:
    return get_session_dir(name) / "spawn.lock"


def read_pid(name: str):
    """Return the recorded daemon PID, or None if missing or unreadable."""
    try:
        return int(get_pid_path(name).read_text().strip())
    except (OSError, ValueError):
        return None

"""Daemon architecture for wbrowse.

One long-running process per session owns the browser, so tabs, cookies
and network capture survive across short-lived ``wb`` invocations.

Architecture:
- SessionSupervisor: spawns the session daemon on demand, cleans stale sockets
- DaemonClient: blocking client that talks to a daemon over its Unix socket
- DaemonServer: asyncio Unix socket server (see daemon.server)
- SessionState / Dispatcher: session data and its single command queue
"""

from wbrowse.daemon.client import DaemonClient
from wbrowse.daemon.supervisor import SessionSupervisor
from wbrowse.daemon.protocol import (
    FrameDecoder,
    serialize_request,
    serialize_response,
    deserialize_response,
)

__all__ = [
    "DaemonClient",
    "SessionSupervisor",
    "FrameDecoder",
    "serialize_request",
    "serialize_response",
    "deserialize_response",
]

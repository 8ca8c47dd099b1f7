"""Lightweight client for daemon communication.

This module provides a thin client that connects to a session daemon via its
Unix socket. It only imports the standard library plus the protocol helpers,
so ``wb`` starts fast even though the daemon pulls in Playwright.

Usage:
    client = DaemonClient("default")
    client.new_tab("docs", "https://example.com")
    print(client.dump())
    client.close()
"""

import socket
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from wbrowse.core.errors import (
    RemoteError,
    RequestTimeoutError,
    TransportError,
)
from wbrowse.core.models import Cookie
from wbrowse.daemon.paths import get_socket_path
from wbrowse.daemon.protocol import (
    FrameDecoder,
    deserialize_response,
    serialize_request,
)

DEFAULT_TIMEOUT = 60.0
DELETE_TIMEOUT = 5.0
RECV_CHUNK = 65536


def socket_is_live(path: Path, timeout: float = 1.0) -> bool:
    """True if something accepts connections on the Unix socket at ``path``."""
    probe = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    probe.settimeout(timeout)
    try:
        probe.connect(str(path))
        return True
    except OSError:
        return False
    finally:
        probe.close()


class DaemonClient:
    """
    Blocking client for one session daemon.

    The connection is opened lazily and reused. Only one request may be in
    flight at a time; a second concurrent ``send`` raises TransportError
    instead of interleaving frames.
    """

    def __init__(self, session_name: str = "default", timeout: float = DEFAULT_TIMEOUT):
        """
        Initialize client.

        Args:
            session_name: Session whose daemon to talk to
            timeout: Seconds to wait for each response
        """
        self.session_name = session_name
        self.socket_path = get_socket_path(session_name)
        self.timeout = timeout
        self._sock: Optional[socket.socket] = None
        self._decoder = FrameDecoder()
        self._in_flight = threading.Lock()

    def __enter__(self) -> "DaemonClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None
                self._decoder = FrameDecoder()

    def _connect(self) -> socket.socket:
        if self._sock is None:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.connect(str(self.socket_path))
            except OSError as e:
                sock.close()
                raise TransportError(
                    f"Cannot connect to session {self.session_name}: {e}"
                ) from e
            self._sock = sock
        return self._sock

    def send(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Any:
        """
        Send one request and wait for its response.

        Returns:
            The ``result`` value of the response

        Raises:
            RequestTimeoutError: If no response arrives within the timeout
            TransportError: On connect/write/read failure or a bad frame
            RemoteError: If the daemon answered with an error
        """
        if not self._in_flight.acquire(blocking=False):
            raise TransportError("Another request is already in flight on this client")
        try:
            return self._roundtrip(method, params, timeout or self.timeout)
        finally:
            self._in_flight.release()

    def _roundtrip(self, method: str, params: Optional[Dict[str, Any]], timeout: float) -> Any:
        sock = self._connect()
        deadline = time.monotonic() + timeout
        try:
            sock.settimeout(timeout)
            sock.sendall(serialize_request(method, params))

            while True:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise socket.timeout()
                sock.settimeout(remaining)
                chunk = sock.recv(RECV_CHUNK)
                if not chunk:
                    raise TransportError(
                        f"Connection closed by session {self.session_name} before a response"
                    )
                messages = self._decoder.feed(chunk)
                if messages:
                    # Strictly one request in flight, so one response back
                    return deserialize_response(messages[0])
        except socket.timeout as e:
            # The stream may still carry the late response: start over next time
            self.close()
            raise RequestTimeoutError(
                f"{method} timed out after {timeout:.1f}s"
            ) from e
        except RemoteError:
            raise
        except TransportError:
            self.close()
            raise
        except OSError as e:
            self.close()
            raise TransportError(f"Socket error during {method}: {e}") from e

    def _expect(self, method: str, value: Any, kind: type, what: str) -> Any:
        if isinstance(value, bool) and kind is not bool:
            raise TransportError(f"Unexpected {method} result: expected {what}")
        if not isinstance(value, kind):
            raise TransportError(f"Unexpected {method} result: expected {what}")
        return value

    def _expect_none(self, method: str, value: Any) -> None:
        if value is not None:
            raise TransportError(f"Unexpected {method} result: expected null")

    def runtime_seconds(self) -> float:
        return float(self._expect("runtimeSeconds", self.send("runtimeSeconds"), (int, float), "a number"))

    def list_tabs(self) -> List[str]:
        tabs = self._expect("listTabs", self.send("listTabs"), list, "a list")
        if not all(isinstance(name, str) for name in tabs):
            raise TransportError("Unexpected listTabs result: expected tab names")
        return tabs

    def get_current_tab(self) -> Dict[str, Any]:
        tab = self._expect("getCurrentTab", self.send("getCurrentTab"), dict, "a tab")
        if "tabName" not in tab or "url" not in tab:
            raise TransportError("Unexpected getCurrentTab result: missing tabName/url")
        return tab

    def set_current_tab(self, tab_name: str) -> None:
        self._expect_none("setCurrentTab", self.send("setCurrentTab", {"tabName": tab_name}))

    def add_cookies(self, cookies: List[Cookie]) -> None:
        payload = [cookie.to_dict() for cookie in cookies]
        self._expect_none("addCookies", self.send("addCookies", {"cookies": payload}))

    def new_tab(self, tab_name: str, url: str) -> Dict[str, Any]:
        tab = self._expect("newTab", self.send("newTab", {"tabName": tab_name, "url": url}), dict, "a tab")
        if "url" not in tab:
            raise TransportError("Unexpected newTab result: missing url")
        return tab

    def close_tab(self, tab_name: str) -> None:
        self._expect_none("closeTab", self.send("closeTab", {"tabName": tab_name}))

    def dump(self, html: bool = False, offset: int = 0) -> str:
        return self._expect("dump", self.send("dump", {"html": html, "offset": offset}), str, "a string")

    def go(self, url: str) -> None:
        self._expect_none("go", self.send("go", {"url": url}))

    def interact(self, instructions: str) -> Dict[str, Any]:
        result = self._expect(
            "interact",
            self.send("interact", {"instructions": instructions}),
            dict,
            "an object",
        )
        if not isinstance(result.get("description"), str) or not isinstance(result.get("url"), str):
            raise TransportError("Unexpected interact result: missing description/url")
        return result

    def start_network_record(self) -> None:
        self._expect_none("startNetworkRecord", self.send("startNetworkRecord"))

    def stop_network_record(self) -> List[Dict[str, Any]]:
        events = self._expect("stopNetworkRecord", self.send("stopNetworkRecord"), list, "a list")
        if not all(isinstance(event, dict) and "type" in event for event in events):
            raise TransportError("Unexpected stopNetworkRecord result: expected events")
        return events

    def delete_session(self) -> bool:
        """
        Ask the daemon to tear the session down.

        Returns True if the daemon acknowledged, False if it closed the
        connection or timed out first. Either way the daemon is on its way out.
        """
        try:
            self._expect_none("deleteSession", self.send("deleteSession", timeout=DELETE_TIMEOUT))
            return True
        except (TransportError, RequestTimeoutError):
            return False
        finally:
            self.close()

"""Newline-delimited JSON protocol for daemon IPC.

Every message is one compact JSON object followed by ``\\n``. JSON encoding
escapes raw newlines inside strings, so a newline only ever ends a frame.

Request format:
    {
        "method": "newTab" | "go" | "dump" | ...,
        "params": {...}          # Method-specific object, {} when unused
    }

Response format:
    {"result": <value or null>}  # Success
    {"error": "message"}         # Failure

FrameDecoder turns a byte stream into messages. Several frames in one chunk
are all returned; a frame that is not a JSON object raises FrameError
instead of waiting for more bytes.
"""

import json
from typing import Any, Dict, List, Optional

from wbrowse.core.errors import FrameError, RemoteError

SESSION_METHODS = (
    "runtimeSeconds",
    "listTabs",
    "getCurrentTab",
    "setCurrentTab",
    "addCookies",
    "newTab",
    "closeTab",
    "dump",
    "go",
    "interact",
    "deleteSession",
    "startNetworkRecord",
    "stopNetworkRecord",
)

DELIMITER = b"\n"
MAX_FRAME_BYTES = 16 * 1024 * 1024


def encode_frame(message: Dict[str, Any]) -> bytes:
    """Encode one message as a single newline-terminated frame."""
    return json.dumps(message, separators=(",", ":")).encode("utf-8") + DELIMITER


def serialize_request(method: str, params: Optional[Dict[str, Any]] = None) -> bytes:
    """
    Serialize request to bytes for socket transmission.

    Args:
        method: One of SESSION_METHODS
        params: Method parameters (defaults to an empty object)

    Returns:
        UTF-8 encoded, newline-terminated JSON frame
    """
    return encode_frame({"method": method, "params": params if params is not None else {}})


def serialize_response(result: Any = None, error: Optional[str] = None) -> bytes:
    """
    Serialize response to bytes for socket transmission.

    Exactly one of ``result``/``error`` ends up on the wire; ``error`` wins
    when set.
    """
    if error is not None:
        return encode_frame({"error": str(error)})
    return encode_frame({"result": result})


def deserialize_response(message: Dict[str, Any]) -> Any:
    """
    Unwrap a decoded response message.

    Returns:
        The ``result`` value

    Raises:
        RemoteError: If the daemon answered with an error
        FrameError: If the message is neither a result nor an error
    """
    if "error" in message and isinstance(message["error"], str):
        raise RemoteError(message["error"])
    if "result" in message:
        return message["result"]
    raise FrameError(f"Invalid response from daemon: {message!r}")


class FrameDecoder:
    """
    Stateful decoder for one connection.

    Feed raw chunks as they arrive; complete messages come back in order.
    """

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES):
        self.max_frame_bytes = max_frame_bytes
        self._buffer = bytearray()

    @property
    def pending(self) -> int:
        """Number of buffered bytes that do not form a full frame yet."""
        return len(self._buffer)

    def feed(self, data: bytes) -> List[Dict[str, Any]]:
        """
        Buffer ``data`` and return every complete message it finishes.

        Raises:
            FrameError: On invalid JSON, a non-object document, or a frame
                larger than ``max_frame_bytes``. Messages decoded from the
                same chunk before the bad frame are on ``error.decoded``.
        """
        self._buffer.extend(data)
        messages = []
        while True:
            index = self._buffer.find(DELIMITER)
            if index < 0:
                break
            line = bytes(self._buffer[:index])
            del self._buffer[: index + 1]
            if not line.strip():
                continue
            try:
                messages.append(self._decode(line))
            except FrameError as e:
                self._buffer.clear()
                raise FrameError(str(e), decoded=messages) from e

        if len(self._buffer) > self.max_frame_bytes:
            size = len(self._buffer)
            self._buffer.clear()
            raise FrameError(
                f"Frame exceeds {self.max_frame_bytes} bytes ({size} buffered)",
                decoded=messages,
            )
        return messages

    def close(self) -> None:
        """
        Signal end of stream.

        Raises:
            FrameError: If a truncated frame is still buffered
        """
        if self._buffer.strip():
            size = len(self._buffer)
            self._buffer.clear()
            raise FrameError(f"Connection closed with a truncated frame ({size} bytes)")
        self._buffer.clear()

    @staticmethod
    def _decode(line: bytes) -> Dict[str, Any]:
        try:
            message = json.loads(line.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise FrameError(f"Invalid JSON frame: {e}") from e
        if not isinstance(message, dict):
            raise FrameError(f"Frame must be a JSON object, got {type(message).__name__}")
        return message

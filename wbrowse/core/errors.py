"""Error taxonomy shared by the client, the daemon and the engine layer.

Every failure that can cross the socket is a BrowseError subclass. The daemon
converts them to ``{"error": str(exc)}`` responses; the client turns error
responses back into RemoteError.
"""


class BrowseError(Exception):
    """Base class for all wbrowse errors."""


class ValidationError(BrowseError):
    """Unknown method or malformed params, rejected before touching state."""


class NotFoundError(BrowseError):
    """A tab or session does not exist."""


class AlreadyExistsError(BrowseError):
    """A tab with the requested name is already open."""


class NoCurrentTabError(BrowseError):
    """The operation needs a current tab and none is set."""

    def __init__(self, message: str = "No current tab set"):
        super().__init__(message)


class SpawnTimeoutError(BrowseError):
    """The daemon did not become reachable in time."""


class RequestTimeoutError(BrowseError):
    """No response arrived before the client gave up waiting."""


class TransportError(BrowseError):
    """Connect, write, read or decode failure on the socket."""


class FrameError(TransportError):
    """A frame on the wire is truncated, oversized or not a JSON object."""

    def __init__(self, message: str, decoded=None):
        super().__init__(message)
        # Complete messages that preceded the bad frame in the same chunk
        self.decoded = list(decoded or [])


class EngineError(BrowseError):
    """Opaque failure raised by the automation engine."""


class RemoteError(BrowseError):
    """Error string returned by the daemon for a request."""

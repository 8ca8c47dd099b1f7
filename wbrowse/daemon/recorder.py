"""Network capture for the current tab.

One capture at a time per session. Starting a new capture while one is
active detaches the old listeners and discards the old log.
"""

import itertools
import logging
import time
from typing import Any, Dict, List, Optional, Tuple

from wbrowse.core.models import NetworkEvent, RequestEvent, ResponseEvent
from wbrowse.engine.base import Page

logger = logging.getLogger(__name__)


def _headers(raw: Any) -> Dict[str, str]:
    headers = getattr(raw, "headers", None) or {}
    return {str(k): str(v) for k, v in dict(headers).items()}


def _post_data(request: Any) -> Optional[str]:
    """Request body as text; bytes that are not UTF-8 become U+FFFD."""
    buffer = getattr(request, "post_data_buffer", None)
    if buffer is not None:
        return bytes(buffer).decode("utf-8", errors="replace")
    try:
        return getattr(request, "post_data", None)
    except UnicodeDecodeError as e:
        logger.debug(f"Undecodable body for {request.url}: {e}")
        return None


class NetworkRecorder:
    """
    Accumulates RequestEvent/ResponseEvent entries from one page.

    Request ids are assigned per raw request object, so a response is
    matched to its request through ``response.request``. Responses whose
    request was not seen during this capture are dropped.
    """

    def __init__(self):
        self.events: List[NetworkEvent] = []
        self.page: Optional[Page] = None
        self._ids: Dict[int, Tuple[Any, str]] = {}
        self._counter = itertools.count(1)
        self._last_timestamp = 0.0

    @property
    def active(self) -> bool:
        return self.page is not None

    def start(self, page: Page) -> None:
        if self.active:
            logger.warning("Network capture already active; discarding previous log")
            self.detach()
        self.events = []
        self._ids = {}
        self._counter = itertools.count(1)
        self._last_timestamp = 0.0
        self.page = page
        page.on("request", self._on_request)
        page.on("response", self._on_response)
        logger.info("Network capture started")

    def stop(self) -> List[NetworkEvent]:
        """Detach listeners and return a snapshot of the log."""
        self.detach()
        logger.info(f"Network capture stopped with {len(self.events)} events")
        return list(self.events)

    def detach(self) -> None:
        if self.page is None:
            return
        self.page.remove_listener("request", self._on_request)
        self.page.remove_listener("response", self._on_response)
        self.page = None
        self._ids = {}

    def _timestamp(self) -> float:
        # Wall clock can step backwards; the log must not.
        now = max(time.time(), self._last_timestamp)
        self._last_timestamp = now
        return now

    def _on_request(self, request: Any) -> None:
        request_id = str(next(self._counter))
        self._ids[id(request)] = (request, request_id)
        self.events.append(
            RequestEvent(
                request_id=request_id,
                timestamp=self._timestamp(),
                url=request.url,
                method=request.method,
                headers=_headers(request),
                body=_post_data(request),
            )
        )

    def _on_response(self, response: Any) -> None:
        entry = self._ids.get(id(getattr(response, "request", None)))
        if entry is None:
            logger.debug(f"Dropping response without captured request: {response.url}")
            return
        self.events.append(
            ResponseEvent(
                request_id=entry[1],
                timestamp=self._timestamp(),
                url=response.url,
                status=response.status,
                headers=_headers(response),
            )
        )

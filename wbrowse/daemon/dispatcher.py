"""Request validation and serialized execution of session commands.

Every request is checked (method name, then params shape) before anything
touches the session. Valid commands go onto one asyncio.Queue drained by a
single worker task, so session operations run one at a time in arrival
order across all connections, even while one of them awaits the engine.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from wbrowse.core.errors import BrowseError, ValidationError
from wbrowse.core.models import Cookie
from wbrowse.daemon.protocol import SESSION_METHODS
from wbrowse.daemon.state import SessionState

logger = logging.getLogger(__name__)

Command = Tuple[str, Dict[str, Any], "asyncio.Future[Dict[str, Any]]"]


def _invalid(method: str, reason: str) -> ValidationError:
    return ValidationError(f"Invalid parameters for {method}: {reason}")


def _require_str(method: str, params: Dict[str, Any], key: str) -> str:
    value = params.get(key)
    if not isinstance(value, str):
        raise _invalid(method, f"'{key}' must be a string")
    return value


def _tab_params(method: str, params: Dict[str, Any]) -> Dict[str, Any]:
    return {"tab_name": _require_str(method, params, "tabName")}


def _new_tab_params(method: str, params: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "tab_name": _require_str(method, params, "tabName"),
        "url": _require_str(method, params, "url"),
    }


def _dump_params(method: str, params: Dict[str, Any]) -> Dict[str, Any]:
    html = params.get("html")
    if not isinstance(html, bool):
        raise _invalid(method, "'html' must be a boolean")
    offset = params.get("offset", 0)
    if offset is None:
        offset = 0
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise _invalid(method, "'offset' must be a non-negative integer")
    return {"html": html, "offset": offset}


def _go_params(method: str, params: Dict[str, Any]) -> Dict[str, Any]:
    return {"url": _require_str(method, params, "url")}


def _interact_params(method: str, params: Dict[str, Any]) -> Dict[str, Any]:
    return {"instructions": _require_str(method, params, "instructions")}


def _cookie_params(method: str, params: Dict[str, Any]) -> Dict[str, Any]:
    cookies = params.get("cookies")
    if not isinstance(cookies, list):
        raise _invalid(method, "'cookies' must be a list")
    try:
        return {"cookies": [Cookie.from_dict(cookie) for cookie in cookies]}
    except ValidationError as e:
        raise _invalid(method, str(e)) from e


_PARAM_VALIDATORS: Dict[str, Callable[[str, Dict[str, Any]], Dict[str, Any]]] = {
    "setCurrentTab": _tab_params,
    "closeTab": _tab_params,
    "newTab": _new_tab_params,
    "dump": _dump_params,
    "go": _go_params,
    "interact": _interact_params,
    "addCookies": _cookie_params,
}


def validate_request(method: Any, params: Any) -> Dict[str, Any]:
    """
    Check a request and return the keyword arguments for its operation.

    Raises:
        ValidationError: If the method is unknown or params are malformed
    """
    if not isinstance(method, str) or method not in SESSION_METHODS:
        raise ValidationError(f"Invalid method {method!r}")
    if not isinstance(params, dict):
        raise _invalid(method, "params must be an object")
    validator = _PARAM_VALIDATORS.get(method)
    return validator(method, params) if validator else {}


class Dispatcher:
    """
    Single-writer front end to the session.

    Args:
        state: The daemon's session
    """

    def __init__(self, state: SessionState):
        self.state = state
        self.delete_requested = False
        self._queue: "asyncio.Queue[Command]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self._current: Optional["asyncio.Future[Dict[str, Any]]"] = None
        self._handlers: Dict[str, Callable[..., Awaitable[Any]]] = {
            "runtimeSeconds": self._runtime_seconds,
            "listTabs": self._list_tabs,
            "getCurrentTab": self._get_current_tab,
            "setCurrentTab": self._set_current_tab,
            "addCookies": self._add_cookies,
            "newTab": self._new_tab,
            "closeTab": self._close_tab,
            "dump": self._dump,
            "go": self._go,
            "interact": self._interact,
            "deleteSession": self._delete_session,
            "startNetworkRecord": self._start_network_record,
            "stopNetworkRecord": self._stop_network_record,
        }
        missing = set(SESSION_METHODS) - set(self._handlers)
        if missing:
            raise RuntimeError(f"No handler for methods: {', '.join(sorted(missing))}")

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="wbd-command-worker")

    async def stop(self) -> None:
        """Stop the worker and fail commands still waiting in the queue."""
        if self._worker is not None:
            self._worker.cancel()
            try:
                await self._worker
            except asyncio.CancelledError:
                pass
            self._worker = None

        if self._current is not None and not self._current.done():
            self._current.set_result({"error": "Session is shutting down"})
        self._current = None
        while not self._queue.empty():
            _, _, future = self._queue.get_nowait()
            if not future.done():
                future.set_result({"error": "Session is shutting down"})

    async def dispatch(self, method: Any, params: Any) -> Dict[str, Any]:
        """
        Validate, enqueue and await one request.

        Returns:
            Response message: ``{"result": ...}`` or ``{"error": ...}``
        """
        try:
            kwargs = validate_request(method, params)
        except ValidationError as e:
            logger.info(f"Rejected request: {e}")
            return {"error": str(e)}

        if self.delete_requested:
            return {"error": "Session is being deleted"}
        if not self.running:
            return {"error": "Session is shutting down"}

        future: "asyncio.Future[Dict[str, Any]]" = asyncio.get_running_loop().create_future()
        await self._queue.put((method, kwargs, future))
        return await future

    async def _run(self) -> None:
        while True:
            method, kwargs, future = await self._queue.get()
            self._current = future
            try:
                response = await self._execute(method, kwargs)
            finally:
                self._queue.task_done()
            self._current = None
            if not future.done():
                future.set_result(response)

    async def _execute(self, method: str, kwargs: Dict[str, Any]) -> Dict[str, Any]:
        try:
            result = await self._handlers[method](**kwargs)
            return {"result": result}
        except BrowseError as e:
            logger.info(f"{method} failed: {e}")
            return {"error": str(e)}
        except Exception as e:
            logger.exception(f"Unexpected error in {method}: {e}")
            return {"error": f"Internal error: {e}"}

    async def _runtime_seconds(self) -> float:
        return self.state.runtime_seconds()

    async def _list_tabs(self):
        return self.state.list_tabs()

    async def _get_current_tab(self):
        return self.state.get_current_tab()

    async def _set_current_tab(self, tab_name: str) -> None:
        self.state.set_current_tab(tab_name)

    async def _add_cookies(self, cookies) -> None:
        await self.state.add_cookies(cookies)

    async def _new_tab(self, tab_name: str, url: str):
        tab = await self.state.new_tab(tab_name, url)
        return tab.to_dict()

    async def _close_tab(self, tab_name: str) -> None:
        await self.state.close_tab(tab_name)

    async def _dump(self, html: bool, offset: int) -> str:
        return await self.state.dump(html=html, offset=offset)

    async def _go(self, url: str) -> None:
        await self.state.go(url)

    async def _interact(self, instructions: str):
        result = await self.state.interact(instructions)
        return result.to_dict()

    async def _delete_session(self) -> None:
        # The server tears the daemon down once this response is written.
        logger.info("Session deletion requested")
        self.delete_requested = True

    async def _start_network_record(self) -> None:
        self.state.start_network_record()

    async def _stop_network_record(self):
        return self.state.stop_network_record()

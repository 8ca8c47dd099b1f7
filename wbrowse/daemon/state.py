"""In-memory session state held by the daemon.

One SessionState per daemon process. It owns the open tabs, their engine
pages, the current-tab pointer and the network recorder. Operations raise
BrowseError subclasses; every engine exception is converted to EngineError
here so nothing else leaks out.

Concurrency: this class is NOT safe for interleaved use. The daemon feeds
it from a single command worker (see dispatcher.py), so operations never
overlap even when one awaits the engine.
"""

import logging
import time
from typing import Any, Awaitable, Dict, List, Optional, TypeVar

from wbrowse.core.errors import (
    AlreadyExistsError,
    BrowseError,
    EngineError,
    NoCurrentTabError,
    NotFoundError,
)
from wbrowse.core.models import (
    Cookie,
    DumpAction,
    InteractAction,
    InteractResult,
    NavigateAction,
    Tab,
)
from wbrowse.daemon.recorder import NetworkRecorder
from wbrowse.engine.base import Engine, Page
from wbrowse.engine.text import html_to_text

logger = logging.getLogger(__name__)

DUMP_CHUNK = 8196

T = TypeVar("T")


async def _engine_call(what: str, awaitable: Awaitable[T]) -> T:
    try:
        return await awaitable
    except BrowseError:
        raise
    except Exception as e:
        raise EngineError(f"{what} failed: {e}") from e


class SessionState:
    """
    Tabs, pages, current tab and network capture for one session.

    Args:
        name: Session name
        engine: Launched automation engine
    """

    def __init__(self, name: str, engine: Engine):
        self.name = name
        self.engine = engine
        self.start_time = time.time()

        self.tabs: Dict[str, Tab] = {}
        self.pages: Dict[str, Page] = {}
        self.current_tab: Optional[str] = None
        self.recorder = NetworkRecorder()

    def _require_current(self) -> str:
        if self.current_tab is None:
            raise NoCurrentTabError()
        return self.current_tab

    def _require_tab(self, tab_name: str) -> Tab:
        tab = self.tabs.get(tab_name)
        if tab is None:
            raise NotFoundError(f"Tab {tab_name} does not exist")
        return tab

    def runtime_seconds(self) -> float:
        return time.time() - self.start_time

    def list_tabs(self) -> List[str]:
        return list(self.tabs)

    def get_current_tab(self) -> Dict[str, Any]:
        tab_name = self._require_current()
        return self._require_tab(tab_name).to_dict(tab_name=tab_name)

    def set_current_tab(self, tab_name: str) -> None:
        self._require_tab(tab_name)
        self.current_tab = tab_name

    async def add_cookies(self, cookies: List[Cookie]) -> None:
        await _engine_call("Adding cookies", self.engine.add_cookies(cookies))
        logger.info(f"Added {len(cookies)} cookies")

    async def new_tab(self, tab_name: str, url: str) -> Tab:
        """
        Open a page, navigate it, then register the tab.

        Nothing is registered if navigation fails, and the half-created
        page is closed.
        """
        if tab_name in self.tabs:
            raise AlreadyExistsError(f"Tab {tab_name} already exists")

        page = await _engine_call("Opening page", self.engine.new_page())
        try:
            await _engine_call(f"Navigating to {url}", page.goto(url))
        except EngineError:
            try:
                await page.close()
            except Exception as e:
                logger.warning(f"Failed to release page for tab {tab_name}: {e}")
            raise

        tab = Tab(url=page.url() or url)
        if not self.tabs:
            self.current_tab = tab_name
        self.pages[tab_name] = page
        self.tabs[tab_name] = tab
        logger.info(f"Opened tab {tab_name} at {tab.url}")
        return tab

    async def close_tab(self, tab_name: str) -> None:
        self._require_tab(tab_name)
        page = self.pages.pop(tab_name)
        del self.tabs[tab_name]
        if self.current_tab == tab_name:
            self.current_tab = None
        if self.recorder.page is page:
            self.recorder.detach()

        try:
            await page.close()
        except Exception as e:
            logger.warning(f"Error closing page for tab {tab_name}: {e}")
        logger.info(f"Closed tab {tab_name}")

    async def go(self, url: str) -> None:
        tab_name = self._require_current()
        page = self.pages[tab_name]
        await _engine_call(f"Navigating to {url}", page.goto(url))

        tab = self.tabs[tab_name]
        # Store the page url: the navigation may have been redirected
        tab.url = page.url()
        tab.record(NavigateAction(url=url))

    async def dump(self, html: bool = False, offset: int = 0) -> str:
        tab_name = self._require_current()
        page = self.pages[tab_name]
        content = await _engine_call("Reading page content", page.content())
        text = content if html else html_to_text(content)

        self.tabs[tab_name].record(DumpAction(html=html, offset=offset))
        return text[offset:offset + DUMP_CHUNK]

    async def interact(self, instructions: str) -> InteractResult:
        tab_name = self._require_current()
        page = self.pages[tab_name]
        result = await _engine_call("Interaction", self.engine.act(page, instructions))
        if not result.success:
            raise EngineError(f"Failed to interact: {instructions} ({result.description})")

        tab = self.tabs[tab_name]
        tab.record(InteractAction(instructions=instructions))
        # The interaction may have navigated (e.g. clicking a link)
        tab.url = page.url()
        return InteractResult(description=result.description, url=tab.url)

    def start_network_record(self) -> None:
        tab_name = self._require_current()
        self.recorder.start(self.pages[tab_name])

    def stop_network_record(self) -> List[Dict[str, Any]]:
        self._require_current()
        return [event.to_dict() for event in self.recorder.stop()]

    async def shutdown(self) -> None:
        """Close every page and the engine."""
        self.recorder.detach()
        for tab_name, page in list(self.pages.items()):
            try:
                await page.close()
            except Exception as e:
                logger.warning(f"Error closing page for tab {tab_name}: {e}")
        self.pages.clear()
        self.tabs.clear()
        self.current_tab = None
        await self.engine.close()

    def get_stats(self) -> Dict[str, Any]:
        """Session statistics for logging."""
        return {
            "session": self.name,
            "uptime_seconds": self.runtime_seconds(),
            "open_tabs": len(self.tabs),
            "current_tab": self.current_tab,
            "capturing": self.recorder.active,
        }

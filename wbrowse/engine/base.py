"""Abstract automation-engine interface consumed by the daemon session.

The session never talks to Playwright directly. Everything it needs from a
browser goes through Engine and Page, so tests can swap in fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List

from wbrowse.core.models import Cookie


@dataclass
class ActResult:
    """Outcome of a natural-language interaction."""
    success: bool
    description: str


class Page(ABC):
    """
    One browser page, owned by exactly one tab.

    Network listeners follow Playwright's event model: ``on("request", cb)``
    delivers objects with ``url``, ``method``, ``headers`` and ``post_data``;
    ``on("response", cb)`` delivers objects with ``url``, ``status``,
    ``headers`` and ``request``.
    """

    @abstractmethod
    async def goto(self, url: str) -> None:
        """Navigate to ``url``. Raises on failure or a non-OK response."""

    @abstractmethod
    async def content(self) -> str:
        """Return the page HTML."""

    @abstractmethod
    def url(self) -> str:
        """Return the current URL (after any redirects)."""

    @abstractmethod
    async def close(self) -> None:
        pass

    @abstractmethod
    def on(self, event: str, callback: Callable[[Any], None]) -> None:
        pass

    @abstractmethod
    def remove_listener(self, event: str, callback: Callable[[Any], None]) -> None:
        pass


class Engine(ABC):
    """Browser backend for one session."""

    @abstractmethod
    async def launch(self) -> None:
        """Start the browser. Failure here aborts daemon startup."""

    @abstractmethod
    async def new_page(self) -> Page:
        pass

    @abstractmethod
    async def add_cookies(self, cookies: List[Cookie]) -> None:
        pass

    @abstractmethod
    async def act(self, page: Page, instructions: str) -> ActResult:
        """Carry out ``instructions`` on ``page`` (AI-driven)."""

    @abstractmethod
    async def close(self) -> None:
        """Release the browser and any helper process."""

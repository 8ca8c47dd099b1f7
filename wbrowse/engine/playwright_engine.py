"""Playwright-backed engine: local Chromium or Lightpanda over CDP."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Callable, List, Optional

from playwright.async_api import async_playwright

from wbrowse.core.configs import DaemonConfig
from wbrowse.core.errors import EngineError
from wbrowse.core.models import Cookie
from wbrowse.engine.actor import Actor, MistralActor, UnconfiguredActor
from wbrowse.engine.base import ActResult, Engine, Page
from wbrowse.engine.lightpanda import LightpandaProcess, get_lightpanda_cdp_url

logger = logging.getLogger(__name__)

CHROME_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
]
NAVIGATION_TIMEOUT_MS = 30_000


class PlaywrightPage(Page):
    """Adapter around ``playwright.async_api.Page``."""

    def __init__(self, page: Any):
        self.raw = page

    async def goto(self, url: str) -> None:
        response = await self.raw.goto(url, timeout=NAVIGATION_TIMEOUT_MS)
        # None means a same-document navigation (e.g. only the hash changed)
        if response is not None and not response.ok:
            raise EngineError(f"Failed to navigate to {url} (HTTP {response.status})")

    async def content(self) -> str:
        return await self.raw.content()

    def url(self) -> str:
        return self.raw.url

    async def close(self) -> None:
        await self.raw.close()

    def on(self, event: str, callback: Callable[[Any], None]) -> None:
        self.raw.on(event, callback)

    def remove_listener(self, event: str, callback: Callable[[Any], None]) -> None:
        self.raw.remove_listener(event, callback)


class PlaywrightEngine(Engine):
    """
    Engine for one session.

    chrome: a persistent Chromium context whose profile lives in the
    session's ``data/`` directory, so cookies and storage survive restarts.
    lightpanda: spawns Lightpanda and attaches over CDP.
    """

    def __init__(
        self,
        config: DaemonConfig,
        data_dir: Path,
        debug: bool = False,
        actor: Optional[Actor] = None,
    ):
        self.config = config
        self.data_dir = data_dir
        self.debug = debug
        self.actor = actor or self._build_actor(config)

        self._playwright = None
        self._browser = None
        self._context = None
        self._lightpanda: Optional[LightpandaProcess] = None

    @staticmethod
    def _build_actor(config: DaemonConfig) -> Actor:
        if config.mistral_api_key:
            return MistralActor(api_key=config.mistral_api_key, model=config.llm_model)
        return UnconfiguredActor()

    async def launch(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._playwright = await async_playwright().start()

        if self.config.browser == "lightpanda":
            self._lightpanda = LightpandaProcess()
            await self._lightpanda.start()
            self._browser = await self._playwright.chromium.connect_over_cdp(
                get_lightpanda_cdp_url()
            )
            if self._browser.contexts:
                self._context = self._browser.contexts[0]
            else:
                self._context = await self._browser.new_context()
        else:
            self._context = await self._playwright.chromium.launch_persistent_context(
                user_data_dir=str(self.data_dir),
                headless=self.config.headless and not self.debug,
                args=CHROME_ARGS,
            )

        logger.info(f"Engine launched ({self.config.browser})")

    def _require_context(self):
        if self._context is None:
            raise EngineError("Engine is not launched")
        return self._context

    async def new_page(self) -> Page:
        page = await self._require_context().new_page()
        return PlaywrightPage(page)

    async def add_cookies(self, cookies: List[Cookie]) -> None:
        await self._require_context().add_cookies([cookie.to_dict() for cookie in cookies])

    async def act(self, page: Page, instructions: str) -> ActResult:
        if not isinstance(page, PlaywrightPage):
            raise EngineError("Interact needs a Playwright page")
        return await self.actor.act(page.raw, instructions)

    async def close(self) -> None:
        if self._context is not None and self._browser is None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        if self._lightpanda is not None:
            await self._lightpanda.stop()
        self._context = None
        self._browser = None
        self._playwright = None
        self._lightpanda = None
        logger.info("Engine closed")


async def grab_cookies(output: Path) -> int:
    """
    Open a headed browser and write its cookies to ``output`` on close.

    Log in to whatever sites are needed, then close the window. The file
    can be fed to ``wb session create --cookies``.

    Returns:
        Number of cookies written
    """
    async with async_playwright() as playwright:
        browser = await playwright.chromium.launch(headless=False)
        context = await browser.new_context()
        page = await context.new_page()

        closed = asyncio.Event()
        page.on("close", lambda _: closed.set())
        await closed.wait()

        cookies = await context.cookies()
        await browser.close()

    output.write_text(json.dumps(cookies, indent=2))
    return len(cookies)

"""
Browser Manager - Playwright session bootstrap
Launches Chromium (persistent when a user data directory is given), wires the
capture listener onto every page and exposes each page through the small
session interface the archiver consumes.
"""

from typing import Any, Dict, List, Optional

from fake_useragent import UserAgent
from loguru import logger
from playwright.async_api import async_playwright, Browser, BrowserContext, Page

from .capture_listener import CaptureListener
from .config import ArchiverConfig
from .utils import wait_ms

BROWSER_ARGS = [
    '--no-sandbox',
    '--disable-setuid-sandbox',
    '--disable-blink-features=AutomationControlled',
]
VIEWPORT = {'width': 1280, 'height': 800}
EXTRA_HEADERS = {'Accept-Language': 'en-US,en;q=0.9'}


class BrowserSession:
    """One browsing context's page, seen through the archiver's session interface"""

    def __init__(self, page: Page, name: str = "primary", settle_delay_ms: int = 2000, settle_jitter_ms: int = 1000):
        self.page = page
        self.name = name
        self.settle_delay_ms = settle_delay_ms
        self.settle_jitter_ms = settle_jitter_ms

    async def navigate(self, url: str) -> None:
        """Go to url and return once network activity has quiesced (no timeout)"""
        logger.debug(f"[{self.name}] navigating to {url}")
        await self.page.goto(url, wait_until="networkidle", timeout=0)
        await wait_ms(self.settle_delay_ms, self.settle_jitter_ms)

    async def current_cookies(self, url: str) -> List[Dict[str, Any]]:
        return await self.page.context.cookies(url)

    async def current_user_agent(self) -> str:
        return await self.page.evaluate("() => navigator.userAgent")

    def current_url(self) -> str:
        return self.page.url

    async def evaluate_in_page(self, script: str) -> Any:
        return await self.page.evaluate(script)


class BrowserManager:
    """Owns the Playwright browser, the primary context and the optional incognito context"""

    def __init__(self, config: ArchiverConfig, listener: CaptureListener):
        self.config = config
        self.listener = listener
        self.ua = UserAgent()
        self.playwright = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.incognito_browser: Optional[Browser] = None
        self.incognito_context: Optional[BrowserContext] = None
        self.session: Optional[BrowserSession] = None
        self.incognito_session: Optional[BrowserSession] = None

    def _context_options(self) -> Dict[str, Any]:
        return {
            'user_agent': self.ua.chrome,
            'viewport': VIEWPORT,
            'extra_http_headers': EXTRA_HEADERS,
        }

    async def start(self) -> BrowserSession:
        """Launch the browser and open the primary, authenticated page"""
        self.playwright = await async_playwright().start()

        if self.config.user_data_dir:
            # Persistent profile keeps the login between runs
            self.context = await self.playwright.chromium.launch_persistent_context(
                self.config.user_data_dir,
                headless=self.config.headless,
                args=BROWSER_ARGS,
                **self._context_options(),
            )
            page = self.context.pages[0] if self.context.pages else await self.context.new_page()
        else:
            self.browser = await self.playwright.chromium.launch(headless=self.config.headless, args=BROWSER_ARGS)
            self.context = await self.browser.new_context(**self._context_options())
            page = await self.context.new_page()

        self.session = self._wire(page, "primary")
        logger.info(f"✓ Browser started (headless={self.config.headless})")
        return self.session

    async def get_incognito_session(self) -> BrowserSession:
        """Isolated context with its own cookie jar, created on first use"""
        if self.incognito_session:
            return self.incognito_session
        if self.playwright is None:
            raise RuntimeError("Browser not started. Call start() first.")

        browser = self.browser
        if browser is None:
            # Persistent contexts have no browser object to spawn siblings from
            self.incognito_browser = await self.playwright.chromium.launch(headless=self.config.headless, args=BROWSER_ARGS)
            browser = self.incognito_browser
        self.incognito_context = await browser.new_context(**self._context_options())
        page = await self.incognito_context.new_page()
        self.incognito_session = self._wire(page, "incognito")
        logger.debug("✓ Incognito context created")
        return self.incognito_session

    def _wire(self, page: Page, name: str) -> BrowserSession:
        self.listener.attach(page)
        if self.config.debug:
            page.on("request", lambda request: logger.debug(f"➡️ {request.method} {request.url}"))
            page.on("response", lambda response: logger.debug(f"⬅️ {response.status} {response.url}"))
        return BrowserSession(
            page,
            name=name,
            settle_delay_ms=self.config.settle_delay_ms,
            settle_jitter_ms=self.config.settle_jitter_ms,
        )

    async def logout(self) -> None:
        """Log the primary session out of Instagram"""
        if not self.session:
            return
        logger.info("🔒 Logging out of Instagram...")
        await self.session.page.goto(f"{self.config.base_url}accounts/logout/", wait_until="networkidle", timeout=0)
        await wait_ms(2000)
        logger.info("🔒 Successfully logged out.")

    async def stop(self) -> None:
        """Clean up browser resources"""
        if self.config.logout and self.session:
            try:
                await self.logout()
            except Exception as e:
                logger.warning(f"⚠️ Logout failed: {e}")
        if self.incognito_context:
            await self.incognito_context.close()
        if self.incognito_browser:
            await self.incognito_browser.close()
        if self.context:
            await self.context.close()
        if self.browser:
            await self.browser.close()
        if self.playwright:
            await self.playwright.stop()
        self.session = None
        self.incognito_session = None

"""
Playwright Page Backend
=======================
``PlaywrightPage`` adapts a sync Playwright ``Page`` to the page-query
capability; ``BrowserSession`` owns the browser for a whole run.

The session is a context manager so the browser is released on every
exit path::

    with BrowserSession(headless=True) as session:
        page = session.new_page()
        page.navigate("https://navi.cnki.net/knavi/#")

Timeouts never abort: waits that expire return False and the caller
proceeds with whatever has rendered.
"""

import logging
from typing import List, Optional

from playwright.sync_api import sync_playwright, Page, Browser, BrowserContext, ElementHandle
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeout

from .errors import NavigationError
from .strategies import Css, HasText, PageNumber, Strategy

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

# Hides the most obvious automation markers.
_INIT_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
Object.defineProperty(navigator, 'languages', {get: () => ['zh-CN', 'zh', 'en']});
window.chrome = window.chrome || {runtime: {}};
"""


def to_selector(strategy: Strategy) -> str:
    """Translate a strategy into a Playwright selector string."""
    if isinstance(strategy, HasText):
        text = strategy.text.replace('"', '\\"')
        return f'{strategy.selector}:has-text("{text}")'
    if isinstance(strategy, (Css, PageNumber)):
        return strategy.selector
    raise TypeError(f"Unsupported strategy: {strategy!r}")


class PlaywrightPage:
    """Page-query implementation over a live Playwright page."""

    def __init__(self, page: Page, timeout_ms: int = 30000, popup_wait_ms: int = 3000):
        self._page = page
        self.timeout_ms = timeout_ms
        self.popup_wait_ms = popup_wait_ms
        self._page.set_default_timeout(timeout_ms)

    @property
    def url(self) -> str:
        return self._page.url

    def title(self) -> str:
        return self._page.title()

    def body_text(self) -> str:
        try:
            return self._page.inner_text("body")
        except PlaywrightError:
            return self._page.text_content("body") or ""

    # ---- Queries ----
    def find(self, strategy: Strategy, within: Optional[ElementHandle] = None) -> Optional[ElementHandle]:
        root = within or self._page
        return root.query_selector(to_selector(strategy))

    def find_all(self, strategy: Strategy, within: Optional[ElementHandle] = None) -> List[ElementHandle]:
        root = within or self._page
        return root.query_selector_all(to_selector(strategy))

    def text(self, element: ElementHandle) -> str:
        try:
            return element.text_content() or ""
        except PlaywrightError:
            return ""

    def attribute(self, element: ElementHandle, name: str) -> Optional[str]:
        try:
            return element.get_attribute(name)
        except PlaywrightError:
            return None

    def is_visible(self, element: ElementHandle) -> bool:
        try:
            return element.is_visible()
        except PlaywrightError:
            return False

    def is_enabled(self, element: ElementHandle) -> bool:
        try:
            return element.is_enabled()
        except PlaywrightError:
            return False

    # ---- Actions ----
    def click(self, element: ElementHandle) -> Optional["PlaywrightPage"]:
        context = self._page.context
        before = list(context.pages)
        element.click(timeout=self.timeout_ms)
        self._page.wait_for_timeout(self.popup_wait_ms)
        opened = [p for p in context.pages if p not in before]
        if opened:
            logger.debug(f"[PAGE] click opened popup {opened[-1].url}")
            return PlaywrightPage(opened[-1], self.timeout_ms, self.popup_wait_ms)
        return None

    def fill(self, element: ElementHandle, value: str) -> None:
        element.fill(value)

    def press(self, element: ElementHandle, key: str) -> None:
        element.press(key)

    def select_option(self, element: ElementHandle, value: str) -> None:
        element.select_option(value)

    def navigate(self, url: str) -> None:
        try:
            response = self._page.goto(url, wait_until="domcontentloaded", timeout=self.timeout_ms)
        except PlaywrightTimeout as exc:
            raise NavigationError(url, "timeout") from exc
        except PlaywrightError as exc:
            raise NavigationError(url, str(exc).splitlines()[0]) from exc
        if response is not None and response.status >= 500:
            raise NavigationError(url, f"HTTP {response.status}")

    def reload(self) -> None:
        self._page.reload(wait_until="networkidle", timeout=self.timeout_ms)

    def wait_settled(self, timeout_ms: int) -> bool:
        try:
            self._page.wait_for_load_state("networkidle", timeout=timeout_ms)
            return True
        except PlaywrightTimeout:
            return False

    def close(self) -> None:
        try:
            self._page.close()
        except PlaywrightError as exc:
            logger.debug(f"[PAGE] close failed: {exc}")


class BrowserSession:
    """One Chromium browser + context for the whole run."""

    def __init__(self, headless: bool = True, user_agent: str = DEFAULT_USER_AGENT,
                 timeout_ms: int = 30000, viewport_width: int = 1366, viewport_height: int = 768):
        self.headless = headless
        self.user_agent = user_agent
        self.timeout_ms = timeout_ms
        self.viewport_width = viewport_width
        self.viewport_height = viewport_height
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    def __enter__(self) -> "BrowserSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def open(self) -> None:
        if self._playwright is not None:
            return
        self._playwright = sync_playwright().start()
        self._browser = self._playwright.chromium.launch(
            headless=self.headless,
            args=[
                '--disable-blink-features=AutomationControlled',
                '--no-sandbox',
                '--disable-dev-shm-usage',
            ]
        )
        self._context = self._browser.new_context(
            user_agent=self.user_agent,
            viewport={'width': self.viewport_width, 'height': self.viewport_height},
            locale='zh-CN',
            timezone_id='Asia/Shanghai',
            extra_http_headers={'Accept-Language': 'zh-CN,zh;q=0.9,en;q=0.8'},
        )
        self._context.add_init_script(_INIT_SCRIPT)
        logger.info(f"Playwright browser started (headless={self.headless})")

    def new_page(self) -> PlaywrightPage:
        if self._context is None:
            self.open()
        return PlaywrightPage(self._context.new_page(), timeout_ms=self.timeout_ms)

    def close(self) -> None:
        """Release context, browser and driver. Safe to call twice."""
        for name in ("_context", "_browser"):
            handle = getattr(self, name)
            if handle is not None:
                try:
                    handle.close()
                except PlaywrightError as exc:
                    logger.debug(f"Closing {name.strip('_')} failed: {exc}")
                setattr(self, name, None)
        if self._playwright is not None:
            try:
                self._playwright.stop()
            except PlaywrightError as exc:
                logger.debug(f"Stopping Playwright failed: {exc}")
            self._playwright = None
            logger.info("Playwright browser closed")

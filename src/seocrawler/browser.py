"""
Headless browser abstraction for the rendered extraction pass.

The extractor depends only on the PageRenderer / BrowserHandle /
BrowserProvider interfaces defined here; the Playwright implementation is
one provider, and tests substitute doubles that return canned HTML.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Literal, Optional

from pydantic import BaseModel, Field

from seocrawler.config import CrawlConfig
from seocrawler.constants import BLOCKED_RESOURCE_TYPES, DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

DEFAULT_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
]


class NavigationError(Exception):
    """Raised when a page cannot be navigated to (timeout, network, crash)."""
    def __init__(self, message: str, url: str = None, wait_until: str = None):
        self.message = message
        self.url = url
        self.wait_until = wait_until
        super().__init__(message)


class BrowserConfig(BaseModel):
    """
    Configuration for the Playwright browser provider.

    All fields are validated by Pydantic.
    """

    headless: bool = Field(
        default=True,
        description="Run browser in headless mode (no visible UI)"
    )

    browser_type: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser engine to use for rendering"
    )

    block_resources: List[str] = Field(
        default_factory=lambda: list(BLOCKED_RESOURCE_TYPES),
        description="Resource types to block (e.g., 'image', 'font', 'stylesheet')"
    )

    launch_args: List[str] = Field(
        default_factory=lambda: list(DEFAULT_LAUNCH_ARGS),
        description="Additional browser launch arguments"
    )

    user_agent: str = Field(
        default=DEFAULT_USER_AGENT,
        description="User agent of the rendering context"
    )

    viewport_width: int = Field(default=1366, ge=320, le=3840)
    viewport_height: int = Field(default=768, ge=320, le=2160)

    ignore_https_errors: bool = Field(
        default=True,
        description="Render pages with invalid certificates instead of failing"
    )

    @classmethod
    def from_crawl_config(cls, config: CrawlConfig) -> "BrowserConfig":
        """Browser settings for one crawl run."""
        return cls(headless=config.headless, user_agent=config.user_agent)


class PageRenderer(ABC):
    """A single browser page, opened for one URL and closed afterwards."""

    @abstractmethod
    async def navigate(self, url: str, wait_until: str, timeout: float) -> Optional[int]:
        """Navigate to url; return the HTTP status if known.

        Raises:
            NavigationError: If navigation fails or times out
        """

    @abstractmethod
    async def evaluate(self, script: str) -> Any:
        """Evaluate a JavaScript expression in the page."""

    @abstractmethod
    async def content(self) -> str:
        """Current serialized DOM."""

    @abstractmethod
    async def close(self) -> None:
        pass

    @property
    def url(self) -> Optional[str]:
        """URL the page ended up on after redirects."""
        return None

    @property
    def page_errors(self) -> List[str]:
        """Uncaught client-side script errors seen so far."""
        return []


class BrowserHandle(ABC):
    @abstractmethod
    async def new_page(self) -> PageRenderer:
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class BrowserProvider(ABC):
    @abstractmethod
    async def launch(self) -> BrowserHandle:
        pass


class PlaywrightPageRenderer(PageRenderer):
    def __init__(self, page):
        self._page = page
        self._errors: List[str] = []
        page.on("pageerror", lambda err: self._errors.append(str(err)))

    async def navigate(self, url: str, wait_until: str, timeout: float) -> Optional[int]:
        try:
            response = await self._page.goto(url, wait_until=wait_until, timeout=timeout * 1000)
        except Exception as e:
            raise NavigationError(str(e), url=url, wait_until=wait_until) from e
        return response.status if response else None

    async def evaluate(self, script: str) -> Any:
        return await self._page.evaluate(script)

    async def content(self) -> str:
        return await self._page.content()

    async def close(self) -> None:
        await self._page.close()

    @property
    def url(self) -> Optional[str]:
        return self._page.url

    @property
    def page_errors(self) -> List[str]:
        return list(self._errors)


class PlaywrightBrowserHandle(BrowserHandle):
    """One launched browser with a single context shared by per-URL pages."""

    def __init__(self, playwright, browser, context, config: BrowserConfig):
        self._playwright = playwright
        self._browser = browser
        self._context = context
        self._config = config
        self._closed = False

    async def new_page(self) -> PageRenderer:
        page = await self._context.new_page()

        if self._config.block_resources:
            blocked = set(self._config.block_resources)
            await page.route(
                "**/*",
                lambda route: (
                    route.abort()
                    if route.request.resource_type in blocked
                    else route.continue_()
                )
            )

        return PlaywrightPageRenderer(page)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        logger.info("Closing browser")
        try:
            await self._context.close()
            await self._browser.close()
        finally:
            await self._playwright.stop()


class PlaywrightBrowserProvider(BrowserProvider):
    def __init__(self, config: Optional[BrowserConfig] = None):
        self._config = config or BrowserConfig()

    async def launch(self) -> BrowserHandle:
        from playwright.async_api import async_playwright

        logger.info(f"Launching {self._config.browser_type} browser (headless={self._config.headless})")

        playwright = await async_playwright().start()
        try:
            launcher = getattr(playwright, self._config.browser_type)
            browser = await launcher.launch(
                headless=self._config.headless,
                args=self._config.launch_args,
            )
            context = await browser.new_context(
                user_agent=self._config.user_agent,
                viewport={
                    "width": self._config.viewport_width,
                    "height": self._config.viewport_height,
                },
                ignore_https_errors=self._config.ignore_https_errors,
                java_script_enabled=True,
            )
        except Exception:
            await playwright.stop()
            raise

        logger.info("Browser launched successfully")
        return PlaywrightBrowserHandle(playwright, browser, context, self._config)

"""Shared fixtures and test doubles for the crawl pipeline tests."""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Union

import httpx
import pytest

from seocrawler.browser import BrowserHandle, BrowserProvider, NavigationError, PageRenderer
from seocrawler.config import CrawlConfig
from seocrawler.extractor import SALVAGE_SCRIPT, SETTLE_SCRIPT
from seocrawler.storage import SqliteStorage
from seocrawler.url_utils import normalize_url


@dataclass
class RenderedPage:
    """What the fake browser shows for one URL."""

    html: str = "<html><head></head><body></body></html>"
    final_url: Optional[str] = None
    page_errors: List[str] = field(default_factory=list)
    salvage: Optional[dict] = None
    fail_navigation: bool = False
    fail_waits: tuple = ()
    delay: float = 0.0


class FakeRenderer(PageRenderer):
    def __init__(self, browser: "FakeBrowser"):
        self.browser = browser
        self.navigations: List[tuple] = []
        self.timeouts: List[float] = []
        self._page: Optional[RenderedPage] = None
        self._url: Optional[str] = None

    async def navigate(self, url, wait_until, timeout):
        self.navigations.append((url, wait_until))
        self.timeouts.append(timeout)
        page = self.browser.pages.get(url, self.browser.default)
        if page.delay:
            await asyncio.sleep(page.delay)
        if page.fail_navigation or wait_until in page.fail_waits:
            raise NavigationError(f"Timeout {timeout}s exceeded", url=url, wait_until=wait_until)
        self._page = page
        self._url = page.final_url or url
        return 200

    async def evaluate(self, script):
        if script == SETTLE_SCRIPT:
            return True
        if script == SALVAGE_SCRIPT:
            if self._page.salvage is None:
                raise RuntimeError("Execution context was destroyed")
            return self._page.salvage
        return None

    async def content(self):
        return self._page.html

    async def close(self):
        self.browser.active -= 1
        self.browser.closed_pages += 1

    @property
    def url(self):
        return self._url

    @property
    def page_errors(self):
        return list(self._page.page_errors) if self._page else []


class FakeBrowser(BrowserHandle):
    """Serves RenderedPages by URL and records how it was used."""

    def __init__(self, pages: Optional[Dict[str, RenderedPage]] = None, default: Optional[RenderedPage] = None):
        self.pages = pages or {}
        self.default = default or RenderedPage()
        self.renderers: List[FakeRenderer] = []
        self.active = 0
        self.max_active = 0
        self.opened = 0
        self.closed_pages = 0
        self.closed = False

    async def new_page(self):
        self.active += 1
        self.opened += 1
        self.max_active = max(self.max_active, self.active)
        renderer = FakeRenderer(self)
        self.renderers.append(renderer)
        return renderer

    async def close(self):
        self.closed = True


class FakeBrowserProvider(BrowserProvider):
    def __init__(self, browser: Optional[FakeBrowser] = None, launch_error: Optional[Exception] = None):
        self.browser = browser or FakeBrowser()
        self.launch_error = launch_error
        self.launches = 0

    async def launch(self):
        self.launches += 1
        if self.launch_error:
            raise self.launch_error
        return self.browser


RouteValue = Union[str, int, httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class SiteRouter:
    """httpx MockTransport handler backed by a URL -> response table.

    GET routes map a URL to HTML (200), a status code, a ready Response, an
    exception to raise, or a callable. HEAD requests answer with the status
    in ``heads`` or ``head_default``. Lookups try the exact URL first and
    then its normalized form.
    """

    def __init__(
        self,
        routes: Optional[Dict[str, RouteValue]] = None,
        heads: Optional[Dict[str, int]] = None,
        head_default: int = 404,
    ):
        self.routes = routes or {}
        self.heads = heads or {}
        self.head_default = head_default
        self.requests: List[httpx.Request] = []

    def _lookup(self, table: dict, url: str):
        if url in table:
            return table[url]
        return table.get(normalize_url(url))

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)

        if request.method == "HEAD":
            status = self._lookup(self.heads, url)
            return httpx.Response(status if status is not None else self.head_default)

        value = self._lookup(self.routes, url)
        if value is None:
            return httpx.Response(404, text="Not Found")
        if isinstance(value, Exception):
            raise value
        if isinstance(value, httpx.Response):
            return value
        if isinstance(value, int):
            return httpx.Response(value)
        if callable(value):
            return value(request)
        return httpx.Response(200, text=value, headers={"Content-Type": "text/html"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def gets(self, url: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "GET" and normalize_url(str(r.url)) == normalize_url(url)]


def build_html(
    title: str = "",
    description: str = "",
    h1s: tuple = (),
    words: int = 0,
    links: tuple = (),
    json_ld: bool = False,
    images: tuple = (),
    extra_body: str = "",
) -> str:
    """Assemble a small HTML document from SEO signals."""
    head = []
    if title:
        head.append(f"<title>{title}</title>")
    if description:
        head.append(f'<meta name="description" content="{description}">')
    if json_ld:
        head.append('<script type="application/ld+json">{"@context": "https://schema.org"}</script>')

    body = [f"<h1>{h}</h1>" for h in h1s]
    if words:
        body.append("<p>" + " ".join(["word"] * words) + "</p>")
    body.extend(f'<a href="{href}">link</a>' for href in links)
    body.extend(f'<img src="{src}" alt="{alt}">' if alt is not None else f'<img src="{src}">' for src, alt in images)
    body.append(extra_body)

    return f"<html><head>{''.join(head)}</head><body>{''.join(body)}</body></html>"


@pytest.fixture
def html_page():
    return build_html


@pytest.fixture
def router_factory():
    return SiteRouter


@pytest.fixture
def browser_factory():
    def factory(pages=None, default=None):
        return FakeBrowser(pages=pages, default=default)
    return factory


@pytest.fixture
def rendered_page():
    return RenderedPage


@pytest.fixture
def provider_factory():
    return FakeBrowserProvider


@pytest.fixture
def fast_crawl_config():
    """Crawl config without settle waits or robots.txt lookups."""
    def factory(**overrides):
        values = dict(settle_min=0.0, settle_max=0.0, check_robots=False)
        values.update(overrides)
        return CrawlConfig(**values)
    return factory


@pytest.fixture
def storage(tmp_path):
    """SQLite storage in a temporary database file."""
    store = SqliteStorage(db_url=f"sqlite:///{tmp_path / 'seocrawler-test.db'}")
    yield store
    store.close()

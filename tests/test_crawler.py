"""Tests for the recursive crawler."""

from unittest.mock import patch

import httpx
import pytest

from seocrawler.context import CrawlContext
from seocrawler.crawler import PatternCounter, RecursiveCrawler
from seocrawler.models import ErrorKind

ROOT = "https://example.com/"


def _site(html_page, pages):
    """Map URL -> HTML for a site whose pages link to the given paths."""
    return {url: html_page(title=f"Page {url}", words=20, links=tuple(links)) for url, links in pages.items()}


async def _crawl(site, router_factory, browser_factory, rendered_page, provider_factory, config, **router_kwargs):
    router = router_factory(routes=dict(site), **router_kwargs)
    browser = browser_factory(pages={url: rendered_page(html=html, delay=0.01) for url, html in site.items()})
    provider = provider_factory(browser)

    async with CrawlContext.open(ROOT, config, transport=router.transport()) as context:
        results = await RecursiveCrawler(browser_provider=provider).crawl(context)
    return results, browser, router


class TestPatternCounter:
    """Test cases for PatternCounter."""

    def test_cap(self):
        counter = PatternCounter(cap=2)
        assert counter.increment("/blog/post-[id]") == 0
        assert counter.increment("/blog/post-[id]") == 1
        assert not counter.allows("/blog/post-[id]")
        assert counter.allows("/about")

    def test_most_common(self):
        counter = PatternCounter(cap=10)
        for _ in range(3):
            counter.increment("/a")
        counter.increment("/b")

        assert counter.most_common(1) == [("/a", 3)]


class TestRecursiveCrawler:
    """Test cases for RecursiveCrawler."""

    @pytest.mark.asyncio
    async def test_follows_links_breadth_first(
        self, router_factory, browser_factory, rendered_page, provider_factory, html_page, fast_crawl_config
    ):
        site = _site(html_page, {
            ROOT: ["/about", "/contact"],
            "https://example.com/about": ["/", "/team"],
            "https://example.com/contact": [],
            "https://example.com/team": ["/about"],
        })

        results, browser, _ = await _crawl(
            site, router_factory, browser_factory, rendered_page, provider_factory, fast_crawl_config()
        )

        urls = [r.url for r in results]
        assert urls[0] == ROOT
        assert set(urls) == set(site)
        assert len(urls) == len(set(urls))
        assert all(r.is_clean for r in results)
        assert browser.closed is True

    @pytest.mark.asyncio
    async def test_page_budget(
        self, router_factory, browser_factory, rendered_page, provider_factory, html_page, fast_crawl_config
    ):
        pages = {ROOT: [f"/page{i}/index" for i in range(20)]}
        for i in range(20):
            pages[f"https://example.com/page{i}/index"] = ["/"]
        site = _site(html_page, pages)

        results, _, _ = await _crawl(
            site, router_factory, browser_factory, rendered_page, provider_factory,
            fast_crawl_config(page_budget=7),
        )

        assert len(results) == 7

    @pytest.mark.asyncio
    async def test_concurrency_bound(
        self, router_factory, browser_factory, rendered_page, provider_factory, html_page, fast_crawl_config
    ):
        pages = {ROOT: [f"/section-{i}" for i in range(9)]}
        for i in range(9):
            pages[f"https://example.com/section-{i}"] = []
        site = _site(html_page, pages)

        results, browser, _ = await _crawl(
            site, router_factory, browser_factory, rendered_page, provider_factory,
            fast_crawl_config(concurrency=3),
        )

        assert len(results) == 10
        assert browser.max_active <= 3
        assert browser.max_active > 1

    @pytest.mark.asyncio
    async def test_pattern_cap(
        self, router_factory, browser_factory, rendered_page, provider_factory, html_page, fast_crawl_config
    ):
        pages = {ROOT: [f"/blog/post-{i}" for i in range(10)] + ["/about"]}
        for i in range(10):
            pages[f"https://example.com/blog/post-{i}"] = []
        pages["https://example.com/about"] = []
        site = _site(html_page, pages)

        results, _, _ = await _crawl(
            site, router_factory, browser_factory, rendered_page, provider_factory,
            fast_crawl_config(pattern_cap=3),
        )

        posts = [r for r in results if "/blog/post-" in r.url]
        assert len(posts) == 3
        assert "https://example.com/about" in [r.url for r in results]

    @pytest.mark.asyncio
    async def test_similar_pages_use_quick_mode(
        self, router_factory, browser_factory, rendered_page, provider_factory, html_page, fast_crawl_config
    ):
        pages = {ROOT: [f"/blog/post-{i}" for i in range(8)]}
        for i in range(8):
            pages[f"https://example.com/blog/post-{i}"] = []
        site = _site(html_page, pages)

        _, browser, _ = await _crawl(
            site, router_factory, browser_factory, rendered_page, provider_factory, fast_crawl_config()
        )

        first_waits = [r.navigations[0][1] for r in browser.renderers]
        assert first_waits.count("domcontentloaded") == 2

    @pytest.mark.asyncio
    async def test_external_and_invalid_links_ignored(
        self, router_factory, browser_factory, rendered_page, provider_factory, html_page, fast_crawl_config
    ):
        site = _site(html_page, {
            ROOT: ["https://other.org/page", "https://localhost/admin", "/ok"],
            "https://example.com/ok": [],
        })

        results, _, _ = await _crawl(
            site, router_factory, browser_factory, rendered_page, provider_factory, fast_crawl_config()
        )

        assert sorted(r.url for r in results) == [ROOT, "https://example.com/ok"]

    @pytest.mark.asyncio
    async def test_links_of_unreachable_pages_not_followed(
        self, router_factory, browser_factory, rendered_page, provider_factory, html_page, fast_crawl_config
    ):
        calls = []

        def flaky(request):
            # Static pass succeeds, the fallback refetch does not
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(200, text=html_page(links=("/secret",)))
            return httpx.Response(503)

        router = router_factory(routes={
            ROOT: html_page(title="Home", links=("/broken",)),
            "https://example.com/broken": flaky,
        })
        browser = browser_factory(pages={
            ROOT: rendered_page(html=html_page(title="Home", links=("/broken",))),
            "https://example.com/broken": rendered_page(fail_navigation=True),
        })

        async with CrawlContext.open(ROOT, fast_crawl_config(), transport=router.transport()) as context:
            results = await RecursiveCrawler(browser_provider=provider_factory(browser)).crawl(context)

        broken = next(r for r in results if r.url == "https://example.com/broken")
        assert broken.error_kind == ErrorKind.CONNECTION_ERROR
        assert broken.internal_links == ("https://example.com/secret",)
        assert "https://example.com/secret" not in [r.url for r in results]

    @pytest.mark.asyncio
    async def test_language_links_pruned(
        self, router_factory, browser_factory, rendered_page, provider_factory, html_page, fast_crawl_config
    ):
        site = _site(html_page, {
            ROOT: ["/ro/a", "/ro/b", "/ro/c", "/en-guide"],
            "https://example.com/ro/a": [],
            "https://example.com/ro/b": [],
            "https://example.com/ro/c": [],
            "https://example.com/en-guide": [],
        })

        results, _, _ = await _crawl(
            site, router_factory, browser_factory, rendered_page, provider_factory, fast_crawl_config()
        )

        urls = {r.url for r in results}
        assert "https://example.com/en-guide" not in urls
        assert {"https://example.com/ro/a", "https://example.com/ro/b", "https://example.com/ro/c"} <= urls

    @pytest.mark.asyncio
    async def test_extractor_exception_becomes_connection_error(
        self, router_factory, browser_factory, provider_factory, fast_crawl_config
    ):
        class ExplodingExtractor:
            async def extract(self, url, browser, context, quick=False):
                raise RuntimeError("boom")

        router = router_factory()
        browser = browser_factory()

        async with CrawlContext.open(ROOT, fast_crawl_config(), transport=router.transport()) as context:
            results = await RecursiveCrawler(ExplodingExtractor(), provider_factory(browser)).crawl(context)

        assert len(results) == 1
        assert results[0].error_kind == ErrorKind.CONNECTION_ERROR
        assert results[0].error == "boom"
        assert browser.closed is True

    @pytest.mark.asyncio
    async def test_launch_failure_propagates(self, router_factory, provider_factory, fast_crawl_config):
        router = router_factory()
        provider = provider_factory(launch_error=RuntimeError("Executable doesn't exist"))

        async with CrawlContext.open(ROOT, fast_crawl_config(), transport=router.transport()) as context:
            with pytest.raises(RuntimeError, match="Executable"):
                await RecursiveCrawler(browser_provider=provider).crawl(context)

    @pytest.mark.asyncio
    async def test_robots_checked_when_enabled(
        self, router_factory, browser_factory, rendered_page, provider_factory, html_page, fast_crawl_config
    ):
        site = _site(html_page, {ROOT: ["/a"], "https://example.com/a": []})
        site["https://example.com/robots.txt"] = "User-agent: *\nAllow: /"

        _, _, router = await _crawl(
            site, router_factory, browser_factory, rendered_page, provider_factory,
            fast_crawl_config(check_robots=True),
        )

        assert len(router.gets("https://example.com/robots.txt")) == 1

    @pytest.mark.asyncio
    async def test_default_provider_uses_crawl_config(self, router_factory, provider_factory, fast_crawl_config):
        """Without an injected provider, the browser follows the run's headless flag and user agent."""
        router = router_factory()
        config = fast_crawl_config(headless=False, user_agent="SeoCrawlerTest/1.0")

        with patch("seocrawler.crawler.PlaywrightBrowserProvider") as provider_cls:
            provider_cls.return_value = provider_factory(launch_error=RuntimeError("no browser"))
            async with CrawlContext.open(ROOT, config, transport=router.transport()) as context:
                with pytest.raises(RuntimeError):
                    await RecursiveCrawler().crawl(context)

        browser_config = provider_cls.call_args.args[0]
        assert browser_config.headless is False
        assert browser_config.user_agent == "SeoCrawlerTest/1.0"

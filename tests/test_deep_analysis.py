"""Tests for deep analysis steps."""

import pytest

from seocrawler.deep_analysis import DeepAnalysisStep, DeepAnalyzer, SitemapDiscoveryStep
from seocrawler.storage import SiteNotFoundError

SITEMAP_INDEX = """<?xml version="1.0" encoding="UTF-8"?>
<sitemapindex xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <sitemap><loc>https://example.com/sitemap-pages.xml</loc></sitemap>
  <sitemap><loc>https://example.com/sitemap-blog.xml</loc></sitemap>
</sitemapindex>"""

PAGES_SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/</loc></url>
  <url><loc>https://example.com/about</loc></url>
</urlset>"""

BLOG_SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/blog/post-1</loc></url>
</urlset>"""


class TestSitemapDiscoveryStep:
    """Test cases for SitemapDiscoveryStep."""

    @pytest.mark.asyncio
    async def test_follows_robots_and_index(self, storage, router_factory):
        router = router_factory(routes={
            "https://example.com/robots.txt": "User-agent: *\nSitemap: https://example.com/sitemap_index.xml\n",
            "https://example.com/sitemap_index.xml": SITEMAP_INDEX,
            "https://example.com/sitemap-pages.xml": PAGES_SITEMAP,
            "https://example.com/sitemap-blog.xml": BLOG_SITEMAP,
        })
        site = storage.create_site("example.com", "https://example.com/")

        result = await SitemapDiscoveryStep(transport=router.transport()).run(site, storage)

        assert result["url_count"] == 3
        assert "https://example.com/sitemap-blog.xml" in result["sitemaps"]
        assert result["sample_urls"][0] == "https://example.com/"
        assert storage.get_deep_results(site.id)[0]["data"]["url_count"] == 3

    @pytest.mark.asyncio
    async def test_no_sitemap(self, storage, router_factory):
        site = storage.create_site("example.com", "https://example.com/")

        result = await SitemapDiscoveryStep(transport=router_factory().transport()).run(site, storage)

        assert result == {"sitemaps": [], "url_count": 0, "sample_urls": []}

    @pytest.mark.asyncio
    async def test_invalid_xml_skipped(self, storage, router_factory):
        router = router_factory(routes={"https://example.com/sitemap.xml": "<urlset><url>"})
        site = storage.create_site("example.com", "https://example.com/")

        result = await SitemapDiscoveryStep(transport=router.transport()).run(site, storage)

        assert result["url_count"] == 0

    @pytest.mark.asyncio
    async def test_max_urls(self, storage, router_factory):
        router = router_factory(routes={"https://example.com/sitemap.xml": PAGES_SITEMAP})
        site = storage.create_site("example.com", "https://example.com/")

        result = await SitemapDiscoveryStep(transport=router.transport(), max_urls=1).run(site, storage)

        assert result["url_count"] == 1


class TestDeepAnalyzer:
    """Test cases for DeepAnalyzer."""

    @pytest.mark.asyncio
    async def test_failing_step_is_isolated(self, storage):
        class BrokenStep(DeepAnalysisStep):
            name = "broken"

            async def run(self, site, storage):
                raise RuntimeError("lighthouse unavailable")

        class CountingStep(DeepAnalysisStep):
            name = "counting"

            async def run(self, site, storage):
                storage.save_deep_result(site.id, self.name, {"ok": True})
                return {"ok": True}

        site = storage.create_site("example.com")

        summary = await DeepAnalyzer(storage, [BrokenStep(), CountingStep()]).run(site.id)

        assert summary.succeeded == ["counting"]
        assert summary.failed == {"broken": "lighthouse unavailable"}
        assert summary.success is False
        assert storage.get_deep_results(site.id)[0]["step"] == "counting"

    @pytest.mark.asyncio
    async def test_unknown_site(self, storage):
        with pytest.raises(SiteNotFoundError):
            await DeepAnalyzer(storage, []).run(12345)

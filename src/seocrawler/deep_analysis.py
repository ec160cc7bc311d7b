"""Best-effort deep analysis run after a general crawl.

Each step is independent and additive: a failing step is logged and
recorded in the summary, never failing the job.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from xml.etree import ElementTree as ET

import httpx

from seocrawler.constants import DEFAULT_HEADERS, DEFAULT_USER_AGENT, MAX_SITEMAP_DEPTH, STATIC_FETCH_TIMEOUT_SECONDS
from seocrawler.models import DeepAnalysisSummary, SiteRecord
from seocrawler.storage import Storage
from seocrawler.url_utils import origin

logger = logging.getLogger(__name__)


class DeepAnalysisStep(ABC):
    """One additive analysis over an already registered site."""

    name: str = "step"

    @abstractmethod
    async def run(self, site: SiteRecord, storage: Storage) -> Dict[str, Any]:
        """Run the step and return what it found."""


class SitemapDiscoveryStep(DeepAnalysisStep):
    """Finds the site's sitemaps and counts the URLs they list.

    Sitemaps come from ``Sitemap:`` lines of robots.txt plus the
    conventional ``/sitemap.xml``; sitemap indexes are followed up to
    MAX_SITEMAP_DEPTH levels deep.
    """

    name = "sitemap_discovery"

    # XML namespace used in sitemaps
    NAMESPACE = '{http://www.sitemaps.org/schemas/sitemap/0.9}'

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_urls: int = 50000,
        sample_size: int = 20,
    ):
        self.transport = transport
        self.max_urls = max_urls
        self.sample_size = sample_size

    async def run(self, site: SiteRecord, storage: Storage) -> Dict[str, Any]:
        base = origin(site.root_url)
        urls: List[str] = []
        fetched: List[str] = []

        async with httpx.AsyncClient(
            headers={"User-Agent": DEFAULT_USER_AGENT, **DEFAULT_HEADERS},
            timeout=STATIC_FETCH_TIMEOUT_SECONDS,
            follow_redirects=True,
            transport=self.transport,
        ) as client:
            candidates = await self._sitemaps_from_robots(client, base)
            if f"{base}/sitemap.xml" not in candidates:
                candidates.append(f"{base}/sitemap.xml")

            for sitemap_url in candidates:
                await self._collect(client, sitemap_url, urls, fetched, depth=0)

        result = {
            "sitemaps": fetched,
            "url_count": len(urls),
            "sample_urls": urls[:self.sample_size],
        }
        storage.save_deep_result(site.id, self.name, result)
        logger.info(f"🗺️  Found {len(fetched)} sitemaps listing {len(urls)} URLs for {site.domain}")
        return result

    async def _sitemaps_from_robots(self, client: httpx.AsyncClient, base: str) -> List[str]:
        try:
            response = await client.get(f"{base}/robots.txt")
        except httpx.HTTPError as e:
            logger.debug(f"Could not load robots.txt from {base}: {e}")
            return []
        if response.status_code != 200:
            return []

        sitemaps = []
        for line in response.text.splitlines():
            key, _, value = line.partition(':')
            if key.strip().lower() == 'sitemap' and value.strip():
                sitemaps.append(value.strip())
        return sitemaps

    async def _collect(
        self,
        client: httpx.AsyncClient,
        sitemap_url: str,
        urls: List[str],
        fetched: List[str],
        depth: int,
    ) -> None:
        """Recursively fetch and parse sitemaps."""
        if depth > MAX_SITEMAP_DEPTH or sitemap_url in fetched or len(urls) >= self.max_urls:
            return

        try:
            response = await client.get(sitemap_url)
            response.raise_for_status()
            root = ET.fromstring(response.content)
        except (httpx.HTTPError, ET.ParseError) as e:
            logger.debug(f"Skipping sitemap {sitemap_url}: {e}")
            return

        fetched.append(sitemap_url)
        root_tag = root.tag.split('}')[-1] if '}' in root.tag else root.tag

        if root_tag == 'sitemapindex':
            for loc in root.iter(f'{self.NAMESPACE}loc'):
                if loc.text:
                    await self._collect(client, loc.text.strip(), urls, fetched, depth + 1)
        elif root_tag == 'urlset':
            for loc in root.iter(f'{self.NAMESPACE}loc'):
                if loc.text and len(urls) < self.max_urls:
                    urls.append(loc.text.strip())
        else:
            logger.warning(f"Unknown sitemap root element: {root_tag}")


class DeepAnalyzer:
    """Runs deep analysis steps for a site, isolating each step's failure."""

    def __init__(self, storage: Storage, steps: Optional[List[DeepAnalysisStep]] = None):
        self.storage = storage
        self.steps = steps if steps is not None else [SitemapDiscoveryStep()]

    async def run(self, site_id: int) -> DeepAnalysisSummary:
        """Run every step for a site.

        Raises:
            SiteNotFoundError: If the site does not exist
        """
        site = self.storage.get_site(site_id)
        summary = DeepAnalysisSummary(site_id=site_id)
        logger.info(f"🚀 Starting deep analysis for {site.domain}")

        for step in self.steps:
            try:
                await step.run(site, self.storage)
                summary.succeeded.append(step.name)
            except Exception as e:
                logger.error(f"❌ Deep analysis step '{step.name}' failed for {site.domain}: {e}")
                summary.failed[step.name] = str(e)

        logger.info(
            f"✅ Deep analysis finished for {site.domain} "
            f"({len(summary.succeeded)} succeeded, {len(summary.failed)} failed)"
        )
        return summary

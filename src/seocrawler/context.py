"""Per-crawl state shared by the resolver, prober, extractor and crawler."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

import httpx

from seocrawler.config import CrawlConfig, ScoringConfig
from seocrawler.constants import DEFAULT_HEADERS, MAX_REDIRECTS
from seocrawler.language import SiteLanguageResolver
from seocrawler.url_prober import UrlVariantProber
from seocrawler.url_utils import normalize_url, site_host

logger = logging.getLogger(__name__)


@dataclass
class CrawlContext:
    """Everything one crawl run owns.

    A context is created fresh for each job and threaded through every
    component call, so no detector state can leak from one site to another.
    """

    root_url: str
    config: CrawlConfig
    client: httpx.AsyncClient
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    resolver: SiteLanguageResolver = field(default_factory=SiteLanguageResolver)
    prober: Optional[UrlVariantProber] = None
    common_paths_seeded: bool = False

    def __post_init__(self):
        self.root_url = normalize_url(self.root_url)
        if self.prober is None:
            self.prober = UrlVariantProber(self.resolver, self.client, timeout=self.config.probe_timeout)

    @property
    def base_host(self) -> str:
        return site_host(self.root_url)

    def is_root(self, url: str) -> bool:
        return normalize_url(url) == self.root_url

    @classmethod
    @asynccontextmanager
    async def open(
        cls,
        root_url: str,
        config: Optional[CrawlConfig] = None,
        scoring: Optional[ScoringConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> AsyncIterator["CrawlContext"]:
        """Create a context with its own HTTP client, closed on exit.

        Args:
            root_url: Root URL of the site to crawl
            config: Crawl configuration (defaults from environment)
            scoring: Scoring constants
            transport: Optional httpx transport, e.g. a MockTransport in tests
        """
        config = config or CrawlConfig.from_env()
        headers = {"User-Agent": config.user_agent, **DEFAULT_HEADERS}

        async with httpx.AsyncClient(
            headers=headers,
            timeout=config.static_timeout,
            follow_redirects=True,
            max_redirects=MAX_REDIRECTS,
            transport=transport,
        ) as client:
            context = cls(
                root_url=root_url,
                config=config,
                client=client,
                scoring=scoring or ScoringConfig(),
            )
            logger.debug(f"Opened crawl context for {context.root_url}")
            yield context

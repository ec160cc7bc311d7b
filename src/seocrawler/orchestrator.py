"""Job runner: drives a crawl, scores its pages and persists the site report."""

import asyncio
import logging
from typing import List, Optional, Union

import httpx

from seocrawler.browser import BrowserProvider
from seocrawler.config import CrawlConfig, ScoringConfig
from seocrawler.constants import DEFAULT_CONCURRENCY, QUALITATIVE_CONTENT_SAMPLE_CHARS
from seocrawler.context import CrawlContext
from seocrawler.crawler import RecursiveCrawler
from seocrawler.deep_analysis import DeepAnalyzer
from seocrawler.extractor import PageExtractor
from seocrawler.models import (
    AggregatedReport,
    CrawlJob,
    DeepAnalysisSummary,
    JobKind,
    PageResult,
    PageSignals,
    QualitativeScore,
    ScoredPage,
    SiteRecord,
    SiteState,
)
from seocrawler.qualitative import AI_ERROR_RECOMMENDATION, QualitativeScorer, build_qualitative_scorer
from seocrawler.report import build_report, summarize, zero_page_report
from seocrawler.storage import Storage

logger = logging.getLogger(__name__)


class JobRunner:
    """Runs general-crawl and deep-analysis jobs for registered sites.

    The runner is the only component that moves a site through its crawl
    states: CRAWLING at the start of a general crawl, then COMPLETED, or
    FAILED on any unhandled error (which is re-raised for the queue).
    """

    def __init__(
        self,
        storage: Storage,
        qualitative_scorer: Optional[QualitativeScorer] = None,
        browser_provider: Optional[BrowserProvider] = None,
        extractor: Optional[PageExtractor] = None,
        deep_analyzer: Optional[DeepAnalyzer] = None,
        scoring: Optional[ScoringConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        scoring_concurrency: int = DEFAULT_CONCURRENCY,
    ):
        """Initialize the job runner.

        Args:
            storage: Where sites, pages and reports live
            qualitative_scorer: Content quality collaborator (defaults from settings)
            browser_provider: Headless browser provider (defaults to Playwright)
            extractor: Page extractor shared by every crawl
            deep_analyzer: Deep analysis runner (defaults to the built-in steps)
            scoring: Scoring constants and blend weights
            transport: Optional httpx transport for crawl HTTP traffic
            scoring_concurrency: Concurrent qualitative scorer calls
        """
        self.storage = storage
        self.scoring = scoring or ScoringConfig.from_env()
        self.qualitative_scorer = qualitative_scorer or build_qualitative_scorer(
            neutral_score=self.scoring.neutral_qualitative_score
        )
        self.browser_provider = browser_provider
        self.extractor = extractor or PageExtractor()
        self.deep_analyzer = deep_analyzer or DeepAnalyzer(storage)
        self.transport = transport
        self.scoring_concurrency = scoring_concurrency

    async def run(self, job: CrawlJob) -> Union[AggregatedReport, DeepAnalysisSummary]:
        if job.kind == JobKind.GENERAL_CRAWL:
            return await self.run_general_crawl(job)
        if job.kind == JobKind.DEEP_ANALYSIS:
            return await self.run_deep_analysis(job)
        raise ValueError(f"Unknown job kind: {job.kind}")

    async def run_general_crawl(self, job: CrawlJob) -> AggregatedReport:
        """Crawl a site, score its pages and save pages and report.

        Raises:
            SiteNotFoundError: If the site does not exist
            BaseException: Anything that aborts the crawl, cancellation included;
                the site is marked FAILED first
        """
        site = self.storage.get_site(job.site_id)
        root_url = job.root_url or site.root_url
        logger.info(f"Processing general crawl for {site.domain}")

        self.storage.set_site_state(site.id, SiteState.CRAWLING)
        try:
            config = CrawlConfig.from_options(job.options)
            crawler = RecursiveCrawler(self.extractor, self.browser_provider)

            async with CrawlContext.open(root_url, config, self.scoring, self.transport) as context:
                pages = await crawler.crawl(context)

            scored = await self._score_pages(pages)
            if scored:
                self.storage.replace_pages(site.id, scored, batch_size=config.storage_batch_size)
                report = await self._build_report(site, scored)
            else:
                logger.warning(f"No valid pages found for {site.domain}. Saving empty report.")
                self.storage.delete_pages(site.id)
                report = zero_page_report()

            self.storage.save_report(site.id, report)
            self.storage.set_site_state(site.id, SiteState.COMPLETED)
            logger.info(f"✅ General crawl finished for {site.domain} (score={report.overall_score})")
            return report

        except BaseException as e:
            # Cancellation (worker shutdown) must not leave the site CRAWLING
            logger.error(f"❌ General crawl FAILED for {site.domain}: {e!r}")
            try:
                self.storage.set_site_state(site.id, SiteState.FAILED)
            except Exception as state_error:
                logger.error(f"Could not mark site {site.id} as failed: {state_error}")
            raise

    async def run_deep_analysis(self, job: CrawlJob) -> DeepAnalysisSummary:
        logger.info(f"Processing deep analysis for site {job.site_id}")
        return await self.deep_analyzer.run(job.site_id)

    async def _score_pages(self, pages: List[PageResult]) -> List[ScoredPage]:
        """Combine quantitative and qualitative scores; fatal pages are dropped."""
        semaphore = asyncio.Semaphore(self.scoring_concurrency)
        candidates = [p for p in pages if not p.is_fatal]
        dropped = len(pages) - len(candidates)
        if dropped:
            logger.info(f"Skipping {dropped} pages without usable content")

        logger.info(f"Starting analysis for {len(candidates)} pages...")
        return list(await asyncio.gather(*(self._score_page(p, semaphore) for p in candidates)))

    async def _score_page(self, page: PageResult, semaphore: asyncio.Semaphore) -> ScoredPage:
        if page.is_degraded:
            return ScoredPage(
                page=page,
                seo_score=self.scoring.degraded_page_score,
                quantitative_score=page.score,
            )

        signals = PageSignals.from_page(page, QUALITATIVE_CONTENT_SAMPLE_CHARS)
        async with semaphore:
            try:
                qualitative = await self.qualitative_scorer.score(signals)
            except Exception as e:
                logger.warning(f"Qualitative scoring failed for {page.url}: {e}. Using neutral score.")
                qualitative = QualitativeScore(score=self.scoring.neutral_qualitative_score)

        quantitative = page.score or 0
        combined = round(
            quantitative * self.scoring.quantitative_weight
            + qualitative.score * self.scoring.qualitative_weight
        )
        return ScoredPage(
            page=page,
            seo_score=max(0, min(100, combined)),
            quantitative_score=quantitative,
            ai_recommendations=list(qualitative.recommendations),
        )

    async def _build_report(self, site: SiteRecord, scored: List[ScoredPage]) -> AggregatedReport:
        summary = summarize(site.domain, scored)
        try:
            recommendations = await self.qualitative_scorer.site_recommendations(summary)
        except Exception as e:
            logger.error(f"Failed to generate site recommendations for {site.domain}: {e}")
            recommendations = [AI_ERROR_RECOMMENDATION]
        return build_report(summary, recommendations)

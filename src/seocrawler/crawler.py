"""Recursive breadth-first crawler with a page budget and per-pattern caps."""

import asyncio
import logging
from collections import deque
from typing import Optional

from seocrawler.browser import BrowserConfig, BrowserProvider, PlaywrightBrowserProvider
from seocrawler.constants import PATTERN_SUMMARY_LIMIT, SIMILAR_PAGE_THRESHOLD
from seocrawler.context import CrawlContext
from seocrawler.extractor import PageExtractor
from seocrawler.models import ErrorKind, PageResult
from seocrawler.url_utils import is_same_site, is_valid_url, normalize_url, origin, url_pattern

logger = logging.getLogger(__name__)


class PatternCounter:
    """Counts crawled URLs per path pattern and enforces a cap per pattern.

    Counts only ever grow; a counter lives for one crawl run.
    """

    def __init__(self, cap: int):
        self.cap = cap
        self.counts: dict[str, int] = {}

    def count(self, pattern: str) -> int:
        return self.counts.get(pattern, 0)

    def allows(self, pattern: str) -> bool:
        return self.count(pattern) < self.cap

    def increment(self, pattern: str) -> int:
        """Record one more URL for pattern; return the count before it."""
        previous = self.count(pattern)
        self.counts[pattern] = previous + 1
        return previous

    def most_common(self, limit: int = PATTERN_SUMMARY_LIMIT) -> list[tuple[str, int]]:
        return sorted(self.counts.items(), key=lambda item: item[1], reverse=True)[:limit]


class RecursiveCrawler:
    """Walks a site's frontier in sequential batches of concurrent extractions.

    Each run owns its frontier, visited set, pattern counter and browser.
    Batches never exceed the configured concurrency, the budget and pattern
    cap are checked before dispatch, and the browser is closed however the
    run ends.
    """

    def __init__(
        self,
        extractor: Optional[PageExtractor] = None,
        browser_provider: Optional[BrowserProvider] = None,
    ):
        self.extractor = extractor or PageExtractor()
        # None: a Playwright provider is built per run from the crawl config
        self.browser_provider = browser_provider

    async def crawl(self, context: CrawlContext) -> list[PageResult]:
        """Crawl the site of context.root_url.

        Args:
            context: Fresh per-job crawl context

        Returns:
            Every PageResult of the run, failed pages included

        Raises:
            Exception: If the browser cannot be launched
        """
        config = context.config
        root = context.root_url
        frontier = deque([root])
        visited = {root}
        counter = PatternCounter(config.pattern_cap)
        results: list[PageResult] = []

        logger.info(
            f"🕷️  Starting crawl of {root} "
            f"(budget={config.page_budget}, concurrency={config.concurrency}, pattern cap={config.pattern_cap})"
        )

        provider = self.browser_provider or PlaywrightBrowserProvider(BrowserConfig.from_crawl_config(config))
        browser = await provider.launch()
        try:
            if config.check_robots:
                await self._check_robots(context)

            while frontier and len(results) < config.page_budget:
                batch = self._next_batch(frontier, counter, config.concurrency, config.page_budget - len(results))
                if not batch:
                    continue

                logger.info(
                    f"Processing batch of {len(batch)}. Queue: {len(frontier)}. "
                    f"Found: {sum(1 for r in results if r.is_clean)}"
                )
                outcomes = await asyncio.gather(
                    *(self.extractor.extract(url, browser, context, quick=quick) for url, quick in batch),
                    return_exceptions=True,
                )

                for (url, _), outcome in zip(batch, outcomes):
                    result = self._as_result(url, outcome)
                    results.append(result)

                    if result.error_kind == ErrorKind.CONNECTION_ERROR:
                        logger.warning(f"⚠️  Not following links of {url} (CONNECTION_ERROR)")
                        continue
                    self._enqueue_links(result, context, frontier, visited)

            self._log_pattern_summary(counter, config.pattern_cap)
            valid = sum(1 for r in results if r.is_clean or r.is_degraded)
            logger.info(f"✅ Finished crawl of {root}. Processed {len(results)} pages, {valid} valid.")
            return results

        finally:
            await browser.close()

    def _next_batch(
        self,
        frontier: deque,
        counter: PatternCounter,
        concurrency: int,
        remaining_budget: int,
    ) -> list[tuple[str, bool]]:
        """Pop up to `concurrency` URLs whose pattern is still under the cap.

        URLs over the cap are dropped without using budget. Returns pairs of
        (url, quick) where quick marks a URL with many similar pages before it.
        """
        batch = []
        limit = min(concurrency, remaining_budget)

        while frontier and len(batch) < limit:
            url = frontier.popleft()
            pattern = url_pattern(url)
            if not counter.allows(pattern):
                logger.debug(f"Skipping {url}: pattern limit reached ({counter.count(pattern)}) for {pattern}")
                continue

            previous = counter.increment(pattern)
            if previous == 0:
                logger.debug(f"📊 New URL pattern: {pattern}")
            batch.append((url, previous > SIMILAR_PAGE_THRESHOLD))

        return batch

    @staticmethod
    def _as_result(url: str, outcome) -> PageResult:
        if isinstance(outcome, PageResult):
            return outcome
        if isinstance(outcome, Exception):
            logger.error(f"Unexpected extraction error for {url}: {outcome}")
            return PageResult(url=url, error_kind=ErrorKind.CONNECTION_ERROR, error=str(outcome))
        # CancelledError and other BaseExceptions
        raise outcome

    def _enqueue_links(
        self,
        result: PageResult,
        context: CrawlContext,
        frontier: deque,
        visited: set,
    ) -> None:
        resolver = context.resolver
        for link in result.internal_links:
            normalized = normalize_url(link)
            if normalized in visited:
                continue
            if not is_valid_url(normalized):
                logger.warning(f"🚫 Invalid URL skipped: {normalized}")
                continue
            if not is_same_site(normalized, context.base_host):
                continue
            if resolver.pattern_detected and not resolver.has_language(normalized) and not context.is_root(normalized):
                logger.debug(f"Skipping URL without language '{resolver.primary_language}': {normalized}")
                continue

            visited.add(normalized)
            frontier.append(normalized)

    async def _check_robots(self, context: CrawlContext) -> None:
        """Log whether robots.txt is reachable; its rules are not applied."""
        robots_url = f"{origin(context.root_url)}/robots.txt"
        try:
            response = await context.client.get(robots_url, timeout=context.config.static_timeout)
            if response.status_code == 200:
                logger.info(f"✅ robots.txt found for {context.root_url}")
            else:
                logger.info(f"No robots.txt at {robots_url} (status: {response.status_code})")
        except Exception as e:
            logger.warning(f"⚠️  Could not load robots.txt for {context.root_url}: {e}")

    @staticmethod
    def _log_pattern_summary(counter: PatternCounter, cap: int) -> None:
        if not counter.counts:
            return
        logger.info("📊 Pattern summary:")
        for pattern, count in counter.most_common():
            status = "LIMITED" if count >= cap else "ALLOWED"
            logger.info(f"📊 {status} {pattern}: {count} URLs")

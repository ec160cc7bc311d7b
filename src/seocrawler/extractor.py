"""
Page fetch/extract engine.

Resolves one URL into a PageResult: a lightweight static fetch discovers
links, a rendered pass in the shared browser extracts content, and ordered
fallback steps (partial salvage, static refetch) take over when rendering
fails. Extraction never raises; every outcome is a PageResult.
"""
import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from bs4 import BeautifulSoup

from seocrawler.browser import BrowserHandle, NavigationError, PageRenderer
from seocrawler.constants import (
    APP_CRASH_MARKERS,
    COMMON_SECTION_PATHS,
    DEGRADED_PAGE_SUGGESTION,
    ISSUE_PREFIX_TECHNICAL,
    MAX_CONTENT_CHARS,
    MIN_PARTIAL_TEXT_CHARS,
    NAVIGATION_LINK_SELECTORS,
    NON_CONTENT_TAGS,
    SETTLE_POLL_INTERVAL_SECONDS,
)
from seocrawler.context import CrawlContext
from seocrawler.models import ErrorKind, Heading, PageResult
from seocrawler.scorer import PageScorer
from seocrawler.url_utils import normalize_url, resolve_link

logger = logging.getLogger(__name__)

# Navigation attempts, strictest first
NAVIGATION_WAIT_STRATEGIES = ["networkidle", "domcontentloaded", "commit"]

SETTLE_SCRIPT = """() => {
    const busy = document.querySelector(
        '[class*="spinner"], [class*="loader"], [class*="loading"], [aria-busy="true"]'
    );
    const root = document.querySelector('#__next, #root, #app, [data-reactroot], main') || document.body;
    return !busy && !!root && (root.innerText || '').trim().length > 0;
}"""

SALVAGE_SCRIPT = """() => ({
    text: document.body ? (document.body.innerText || '') : '',
    links: Array.from(document.querySelectorAll('a[href]')).map(a => a.href),
})"""

WHITESPACE_RE = re.compile(r'\s+')


def visible_text(soup: BeautifulSoup, limit: int = MAX_CONTENT_CHARS) -> str:
    """Body text with non-content tags removed and whitespace collapsed.

    The soup is modified in place.
    """
    body = soup.body or soup
    for tag in body.find_all(NON_CONTENT_TAGS):
        tag.decompose()
    return WHITESPACE_RE.sub(' ', body.get_text(' ')).strip()[:limit]


def extract_headings(soup: BeautifulSoup) -> tuple[Heading, ...]:
    headings = []
    for tag in soup.find_all(["h1", "h2", "h3"]):
        text = tag.get_text(" ", strip=True)
        if text:
            headings.append(Heading(level=int(tag.name[1]), text=text))
    return tuple(headings)


@dataclass
class ExtractionState:
    """Mutable scratch state of one extract() call, read by the steps."""

    url: str
    quick: bool = False
    static_html: Optional[str] = None
    static_final_url: Optional[str] = None
    static_links: List[str] = field(default_factory=list)
    renderer: Optional[PageRenderer] = None
    rendered_html: Optional[str] = None
    render_error: Optional[str] = None
    client_error: Optional[str] = None


@dataclass
class ExtractionStep:
    """One fallback strategy: attempted when should_attempt(state) is true.

    A step returns a PageResult to finish extraction or None to hand over
    to the next step.
    """

    name: str
    should_attempt: Callable[[ExtractionState], bool]
    run: Callable[[ExtractionState, CrawlContext, BrowserHandle], Awaitable[Optional[PageResult]]]


class PageExtractor:
    """Extracts PageResults using the shared browser of a crawl run."""

    def __init__(self, scorer: Optional[PageScorer] = None):
        self.scorer = scorer
        self.steps = [
            ExtractionStep("rendered", lambda s: True, self._rendered_step),
            ExtractionStep("partial", lambda s: s.client_error is not None, self._partial_step),
            ExtractionStep(
                "static_fallback",
                lambda s: s.render_error is not None and bool(s.static_links),
                self._static_fallback_step,
            ),
        ]

    def _scorer(self, context: CrawlContext) -> PageScorer:
        return self.scorer or PageScorer(context.scoring)

    async def extract(
        self,
        url: str,
        browser: BrowserHandle,
        context: CrawlContext,
        quick: bool = False,
    ) -> PageResult:
        """Extract one URL.

        Args:
            url: URL to extract
            browser: Shared browser of the crawl run
            context: Per-crawl context
            quick: Use shorter waits (many similar pages already seen)

        Returns:
            PageResult carrying either a score or an error_kind
        """
        state = ExtractionState(url=normalize_url(url), quick=quick)

        try:
            await self._static_pass(state, context)

            for step in self.steps:
                if not step.should_attempt(state):
                    continue
                logger.debug(f"Extraction step '{step.name}' for {state.url}")
                result = await step.run(state, context, browser)
                if result is not None:
                    return result

            error = state.render_error or state.client_error or "No content could be extracted"
            logger.warning(f"❌ CONNECTION_ERROR for {state.url}: {error}")
            return PageResult(
                url=state.url,
                internal_links=tuple(state.static_links),
                error_kind=ErrorKind.CONNECTION_ERROR,
                error=error,
                final_url=state.static_final_url,
            )

        except Exception as e:
            logger.error(f"Extraction failed for {state.url}: {e}", exc_info=True)
            return PageResult(
                url=state.url,
                internal_links=tuple(state.static_links),
                error_kind=ErrorKind.CONNECTION_ERROR,
                error=str(e),
            )

        finally:
            if state.renderer is not None:
                try:
                    await state.renderer.close()
                except Exception as e:
                    logger.debug(f"Error closing page for {state.url}: {e}")

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    def _collect_links(self, page_url: str, hrefs, context: CrawlContext) -> List[str]:
        """Resolve hrefs to unique same-site URLs, in document order."""
        seen = set()
        links = []
        for href in hrefs:
            link = resolve_link(page_url, href or "", context.base_host)
            if link and link not in seen:
                seen.add(link)
                links.append(link)
        return links

    def _prune_languages(self, links: List[str], context: CrawlContext) -> List[str]:
        """Drop links without a language segment once the site is known to use one."""
        if not context.resolver.pattern_detected:
            return links

        kept = [
            link for link in links
            if context.resolver.has_language(link) or context.is_root(link)
        ]
        if len(kept) < len(links):
            logger.debug(
                f"Pruned {len(links) - len(kept)} links without language "
                f"'{context.resolver.primary_language}'"
            )
        return kept

    # ------------------------------------------------------------------
    # Static pass
    # ------------------------------------------------------------------

    async def _static_pass(self, state: ExtractionState, context: CrawlContext) -> None:
        try:
            response = await context.client.get(state.url, timeout=context.config.static_timeout)
            response.raise_for_status()
        except Exception as e:
            logger.warning(f"⚠️  Static fetch failed for {state.url}: {e}. Proceeding with render only.")
            response = None

        links = []
        if response is not None:
            state.static_html = response.text
            state.static_final_url = str(response.url)
            soup = BeautifulSoup(state.static_html, "html.parser")
            hrefs = [a.get("href") for a in soup.find_all("a", href=True)]
            links = self._collect_links(state.static_final_url, hrefs, context)
            logger.info(f"🔗 Static pass found {len(links)} links on {state.url}")

            if not context.resolver.pattern_detected and links:
                context.resolver.observe([state.static_final_url] + links)

        if not links and not context.common_paths_seeded:
            context.common_paths_seeded = True
            logger.info(f"No links on {state.url}; probing common section paths")
            links = await context.prober.filter_working_urls(context.root_url, list(COMMON_SECTION_PATHS))
            links = [normalize_url(link) for link in links]

        state.static_links = self._prune_languages(links, context)

    # ------------------------------------------------------------------
    # Rendered pass
    # ------------------------------------------------------------------

    async def _navigate(self, renderer: PageRenderer, state: ExtractionState, context: CrawlContext) -> str:
        """Navigate with progressively looser wait conditions.

        All attempts share one navigation_timeout budget; a strategy only
        gets the time its predecessors left over.

        Returns:
            The wait condition that succeeded

        Raises:
            Exception: The last navigation error if every strategy fails
        """
        strategies = NAVIGATION_WAIT_STRATEGIES[1:] if state.quick else NAVIGATION_WAIT_STRATEGIES
        deadline = time.monotonic() + context.config.navigation_timeout
        last_error = None

        for wait_until in strategies:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.debug(f"Navigation budget spent for {state.url} before '{wait_until}'")
                break
            try:
                await renderer.navigate(state.url, wait_until=wait_until, timeout=remaining)
            except Exception as e:
                last_error = e
                logger.debug(f"Navigation ({wait_until}) failed for {state.url}: {e}")
                continue

            if wait_until == "commit":
                await asyncio.sleep(context.config.settle_min)
            return wait_until

        raise last_error or NavigationError(
            f"Navigation timeout of {context.config.navigation_timeout}s spent", url=state.url
        )

    async def _settle(self, renderer: PageRenderer, state: ExtractionState, context: CrawlContext) -> None:
        """Poll until loaders disappear and an app root has content, bounded in time."""
        max_wait = context.config.settle_min if state.quick else context.config.settle_max
        deadline = time.monotonic() + max_wait

        while True:
            try:
                if await renderer.evaluate(SETTLE_SCRIPT):
                    return
            except Exception as e:
                logger.debug(f"Settle check failed for {state.url}: {e}")
                return
            if time.monotonic() >= deadline:
                return
            await asyncio.sleep(SETTLE_POLL_INTERVAL_SECONDS)

    async def _rendered_step(
        self, state: ExtractionState, context: CrawlContext, browser: BrowserHandle
    ) -> Optional[PageResult]:
        try:
            state.renderer = await browser.new_page()
            await self._navigate(state.renderer, state, context)
            await self._settle(state.renderer, state, context)
            state.rendered_html = await state.renderer.content()
        except Exception as e:
            state.render_error = str(e) or type(e).__name__
            logger.error(f"❌ Rendering failed for {state.url}: {state.render_error}")
            return None

        page_errors = state.renderer.page_errors
        marker = next((m for m in APP_CRASH_MARKERS if m in state.rendered_html), None)
        if page_errors or marker:
            state.client_error = page_errors[0] if page_errors else marker
            logger.warning(f"🟡 Client-side error on {state.url}: {state.client_error}")
            return None

        return self._clean_result(state, context)

    def _clean_result(self, state: ExtractionState, context: CrawlContext) -> PageResult:
        page_score = self._scorer(context).score(state.rendered_html)
        final_url = state.renderer.url or state.static_final_url or state.url

        soup = BeautifulSoup(state.rendered_html, "html.parser")
        hrefs = [a.get("href") for a in soup.find_all("a", href=True)]
        for selector in NAVIGATION_LINK_SELECTORS:
            for element in soup.select(selector):
                hrefs.append(element.get("href") or element.get("data-href"))

        dom_links = self._prune_languages(self._collect_links(final_url, hrefs, context), context)
        links = list(dict.fromkeys(dom_links + state.static_links))

        headings = extract_headings(soup)
        content = visible_text(soup)

        logger.info(f"✅ Extracted {state.url} (score={page_score.score}, links={len(links)})")
        return PageResult(
            url=state.url,
            title=page_score.title,
            meta_description=page_score.meta_description,
            headings=headings,
            word_count=page_score.word_count,
            issues=tuple(page_score.issues),
            suggestions=tuple(page_score.suggestions),
            score=page_score.score,
            internal_links=tuple(links),
            content_sample=content,
            final_url=final_url,
        )

    # ------------------------------------------------------------------
    # Fallbacks
    # ------------------------------------------------------------------

    async def _salvage(self, state: ExtractionState) -> tuple[str, List[str]]:
        """Pull whatever text and links the crashed DOM still exposes."""
        try:
            data = await state.renderer.evaluate(SALVAGE_SCRIPT) or {}
            text = WHITESPACE_RE.sub(' ', data.get("text") or "").strip()
            return text, list(data.get("links") or [])
        except Exception as e:
            logger.debug(f"DOM salvage failed for {state.url}, parsing HTML instead: {e}")

        soup = BeautifulSoup(state.rendered_html or "", "html.parser")
        hrefs = [a.get("href") for a in soup.find_all("a", href=True)]
        return visible_text(soup), hrefs

    async def _partial_step(
        self, state: ExtractionState, context: CrawlContext, browser: BrowserHandle
    ) -> Optional[PageResult]:
        text, hrefs = await self._salvage(state)
        final_url = state.renderer.url or state.static_final_url or state.url
        salvaged_links = self._prune_languages(self._collect_links(final_url, hrefs, context), context)
        links = list(dict.fromkeys(salvaged_links + state.static_links))

        if len(text) < MIN_PARTIAL_TEXT_CHARS and not links:
            logger.warning(f"❌ CLIENT_ERROR for {state.url}: nothing salvageable")
            return PageResult(
                url=state.url,
                title="Client-Side Error",
                error_kind=ErrorKind.CLIENT_ERROR,
                error=state.client_error,
                final_url=final_url,
            )

        soup = BeautifulSoup(state.rendered_html or "", "html.parser")
        title_tag = soup.find("title")
        logger.info(f"🟡 PARTIAL_SUCCESS for {state.url} ({len(text)} chars, {len(links)} links)")
        return PageResult(
            url=state.url,
            title=title_tag.get_text(strip=True) if title_tag else "",
            headings=extract_headings(soup),
            word_count=len(text.split()),
            issues=(f"{ISSUE_PREFIX_TECHNICAL} Client-side error prevented full rendering.",),
            suggestions=(DEGRADED_PAGE_SUGGESTION,),
            score=context.scoring.degraded_page_score,
            internal_links=tuple(links),
            error_kind=ErrorKind.PARTIAL_SUCCESS,
            content_sample=text[:MAX_CONTENT_CHARS],
            error=state.client_error,
            final_url=final_url,
        )

    async def _static_fallback_step(
        self, state: ExtractionState, context: CrawlContext, browser: BrowserHandle
    ) -> Optional[PageResult]:
        try:
            response = await context.client.get(
                state.url,
                headers={"User-Agent": context.config.fallback_user_agent},
                timeout=context.config.static_timeout,
            )
            response.raise_for_status()
        except Exception as e:
            logger.warning(f"Static fallback failed for {state.url}: {e}")
            return None

        page_score = self._scorer(context).score(response.text)
        soup = BeautifulSoup(response.text, "html.parser")
        headings = extract_headings(soup)
        content = visible_text(soup)
        if not content and not page_score.title:
            logger.warning(f"Static fallback for {state.url} returned no usable content")
            return None

        logger.info(f"🟠 FALLBACK_SUCCESS for {state.url}")
        return PageResult(
            url=state.url,
            title=page_score.title,
            meta_description=page_score.meta_description,
            headings=headings,
            word_count=page_score.word_count,
            issues=tuple(page_score.issues),
            suggestions=tuple(page_score.suggestions) + (DEGRADED_PAGE_SUGGESTION,),
            score=context.scoring.degraded_page_score,
            internal_links=tuple(state.static_links),
            error_kind=ErrorKind.FALLBACK_SUCCESS,
            content_sample=content,
            error=state.render_error,
            final_url=str(response.url),
        )

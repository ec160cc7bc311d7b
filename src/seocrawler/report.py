"""Reduction of scored pages into a site-level report."""

from collections import Counter
from typing import Iterable, List

from seocrawler.constants import (
    ISSUE_PREFIX_CONTENT,
    ISSUE_PREFIX_CRITICAL,
    ISSUE_PREFIX_TECHNICAL,
    ZERO_PAGES_ISSUE,
)
from seocrawler.models import AggregatedReport, Recommendation, ScoredPage, SiteSummary

TECHNICAL_PREFIXES = (ISSUE_PREFIX_TECHNICAL, ISSUE_PREFIX_CRITICAL)
CONTENT_PREFIXES = (ISSUE_PREFIX_CONTENT,)

INVESTIGATION_REQUIRED = Recommendation(
    title="Investigation Required",
    description=(
        "The crawler could access the website but failed to fully analyze any pages, "
        "likely due to JavaScript errors or connectivity problems. Manual review is recommended."
    ),
)


def rollup_issues(pages: Iterable[ScoredPage], prefixes: tuple) -> List[str]:
    """Count identical issues across pages, most frequent first.

    Issues are formatted as ``"<issue> (<n> pages)"``; ties keep first-seen order.
    """
    counts = Counter()
    for page in pages:
        for issue in page.issues:
            if issue and issue.startswith(prefixes):
                counts[issue] += 1

    rolled = []
    for issue, count in counts.most_common():
        noun = "page" if count == 1 else "pages"
        rolled.append(f"{issue} ({count} {noun})")
    return rolled


def average_score(pages: List[ScoredPage]) -> int:
    if not pages:
        return 0
    return round(sum(p.seo_score for p in pages) / len(pages))


def summarize(domain: str, pages: List[ScoredPage]) -> SiteSummary:
    return SiteSummary(
        domain=domain,
        total_pages=len(pages),
        avg_page_score=average_score(pages),
        technical_issues=rollup_issues(pages, TECHNICAL_PREFIXES),
        content_issues=rollup_issues(pages, CONTENT_PREFIXES),
    )


def build_report(summary: SiteSummary, recommendations: List[Recommendation]) -> AggregatedReport:
    return AggregatedReport(
        overall_score=summary.avg_page_score,
        technical_issues=list(summary.technical_issues),
        content_issues=list(summary.content_issues),
        recommendations=list(recommendations),
        pages_analyzed=summary.total_pages,
    )


def zero_page_report() -> AggregatedReport:
    """Report for a crawl in which no page could be analyzed."""
    return AggregatedReport(
        overall_score=0,
        technical_issues=[ZERO_PAGES_ISSUE],
        content_issues=[],
        recommendations=[INVESTIGATION_REQUIRED],
        pages_analyzed=0,
    )

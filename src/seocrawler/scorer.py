"""Deterministic quantitative scoring of a page's on-page SEO signals."""

from typing import Optional, Union

from bs4 import BeautifulSoup

from seocrawler.config import ScoringConfig
from seocrawler.constants import (
    ADD_STRUCTURED_DATA_SUGGESTION,
    ISSUE_PREFIX_CONTENT,
    ISSUE_PREFIX_CRITICAL,
    ISSUE_PREFIX_TECHNICAL,
    SITEMAP_SUGGESTION,
    STRUCTURED_DATA_PRESENT_SUGGESTION,
)
from seocrawler.models import PageScore

# Never counted as visible words
INVISIBLE_TAGS = ["script", "style", "noscript", "template"]


def _is_json_ld(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() == "application/ld+json"


class PageScorer:
    """Scores parsed HTML by subtracting fixed penalties from 100.

    Penalties and length bounds come from ScoringConfig; the same HTML and
    config always yield the same score, issues and suggestions.
    """

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def score(self, html: Union[str, BeautifulSoup]) -> PageScore:
        """Score a page.

        Args:
            html: Raw HTML or an already parsed soup (left unmodified)

        Returns:
            PageScore with a score clamped to [0, 100]
        """
        if isinstance(html, BeautifulSoup):
            soup = BeautifulSoup(str(html), "html.parser")
        else:
            soup = BeautifulSoup(html or "", "html.parser")

        cfg = self.config
        score = cfg.start_score
        issues = []
        suggestions = [SITEMAP_SUGGESTION]

        # Title
        title_tag = soup.find("title")
        title = title_tag.get_text(strip=True) if title_tag else ""
        if not title:
            score -= cfg.title_missing_penalty
            issues.append(f"{ISSUE_PREFIX_TECHNICAL} Missing <title> tag.")
        elif len(title) > cfg.title_max:
            score -= cfg.title_long_penalty
            issues.append(f"{ISSUE_PREFIX_TECHNICAL} Title is too long (> {cfg.title_max} characters).")
        elif len(title) < cfg.title_min:
            score -= cfg.title_short_penalty
            issues.append(f"{ISSUE_PREFIX_TECHNICAL} Title is too short (< {cfg.title_min} characters).")

        # Meta description
        meta_tag = soup.find("meta", attrs={"name": lambda v: v and v.lower() == "description"})
        description = (meta_tag.get("content") or "").strip() if meta_tag else ""
        if not description:
            score -= cfg.description_missing_penalty
            issues.append(f"{ISSUE_PREFIX_TECHNICAL} Missing meta description.")
        elif len(description) > cfg.description_max:
            score -= cfg.description_long_penalty
            issues.append(
                f"{ISSUE_PREFIX_TECHNICAL} Meta description is too long (> {cfg.description_max} characters)."
            )
        elif len(description) < cfg.description_min:
            score -= cfg.description_short_penalty
            issues.append(
                f"{ISSUE_PREFIX_TECHNICAL} Meta description is too short (< {cfg.description_min} characters)."
            )

        # Headings
        h1_count = len(soup.find_all("h1"))
        if h1_count == 0:
            score -= cfg.missing_h1_penalty
            issues.append(f"{ISSUE_PREFIX_CRITICAL} Missing H1 tag.")
        elif h1_count > 1:
            score -= cfg.multiple_h1_penalty
            issues.append(f"{ISSUE_PREFIX_TECHNICAL} Found {h1_count} H1 tags (one is recommended).")

        # Images
        images = soup.find_all("img")
        without_alt = sum(1 for img in images if not (img.get("alt") or "").strip())
        if without_alt:
            score -= min(cfg.image_alt_penalty_cap, without_alt * cfg.image_alt_penalty)
            issues.append(
                f"{ISSUE_PREFIX_CONTENT} {without_alt} of {len(images)} images have no descriptive alt text."
            )

        # Structured data
        has_structured_data = bool(soup.find_all("script", attrs={"type": _is_json_ld}))

        # Content
        for tag in soup.find_all(INVISIBLE_TAGS):
            tag.decompose()
        body = soup.body or soup
        word_count = len(body.get_text(" ").split())
        if word_count < cfg.thin_content_words:
            score -= cfg.thin_content_penalty
            issues.append(f"{ISSUE_PREFIX_CONTENT} Thin content ({word_count} words).")

        if has_structured_data:
            suggestions.append(STRUCTURED_DATA_PRESENT_SUGGESTION)
        else:
            score -= cfg.missing_structured_data_penalty
            issues.append(f"{ISSUE_PREFIX_CONTENT} No Schema.org structured data (JSON-LD) found.")
            suggestions.append(ADD_STRUCTURED_DATA_SUGGESTION)

        return PageScore(
            score=max(0, min(100, score)),
            issues=issues,
            suggestions=suggestions,
            title=title,
            meta_description=description,
            h1_count=h1_count,
            word_count=word_count,
            total_images=len(images),
            images_without_alt=without_alt,
            has_structured_data=has_structured_data,
        )

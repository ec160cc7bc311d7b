"""Detection of language path segments (``/ro/...``) across a site's URLs."""

import logging
from collections import Counter
from typing import Iterable, Optional
from urllib.parse import urlsplit

from seocrawler.constants import LANGUAGE_CODES
from seocrawler.models import LanguageObservation, SiteLanguageBelief

logger = logging.getLogger(__name__)


def detect_language(url: str) -> Optional[str]:
    """Return the ISO 639-1 code in the URL's first path segment, if any."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return None

    segments = [s for s in path.split('/') if s]
    if not segments:
        return None

    first = segments[0].lower()
    return first if first in LANGUAGE_CODES else None


def strip_language(path: str) -> str:
    """Remove a leading language segment from a path.

    >>> strip_language('/ro/contact')
    '/contact'
    """
    segments = [s for s in path.split('/') if s]
    if segments and segments[0].lower() in LANGUAGE_CODES:
        segments = segments[1:]
    return '/' + '/'.join(segments)


class SiteLanguageResolver:
    """Learns whether one site prefixes its paths with a language code.

    A resolver belongs to exactly one crawl run; the crawl context creates a
    fresh one per job. Once a language is recorded it can be replaced by a
    newer detection but is never cleared by a batch without language
    segments.
    """

    def __init__(self):
        self.belief = SiteLanguageBelief()

    @property
    def pattern_detected(self) -> bool:
        return self.belief.pattern_detected

    @property
    def primary_language(self) -> Optional[str]:
        return self.belief.primary_language

    def observe(self, urls: Iterable[str]) -> LanguageObservation:
        """Inspect a batch of URLs for a dominant language segment.

        The site counts as language-prefixed when more than half of the URLs
        carry a known code; the most frequent code (first seen on ties)
        becomes the primary language.

        Args:
            urls: URLs seen on the site

        Returns:
            LanguageObservation for this batch
        """
        urls = list(urls)
        if not urls:
            return LanguageObservation(uses_language_in_path=False)

        codes = [code for code in (detect_language(u) for u in urls) if code]
        counts = Counter(codes)
        uses_language = len(codes) / len(urls) > 0.5

        if not uses_language:
            logger.debug(
                f"No language pattern in batch ({len(codes)}/{len(urls)} URLs with a language code)"
            )
            return LanguageObservation(
                uses_language_in_path=False,
                detected_languages=list(counts),
            )

        primary = counts.most_common(1)[0][0]
        self.record_language(primary)
        logger.info(
            f"🌐 Site uses language in path: {primary} "
            f"(detected: {', '.join(counts)}; {len(codes)}/{len(urls)} URLs)"
        )
        return LanguageObservation(
            uses_language_in_path=True,
            primary_language=primary,
            detected_languages=list(counts),
        )

    def record_language(self, code: str) -> None:
        """Adopt a language confirmed elsewhere, e.g. by a successful probe."""
        code = code.lower()
        if self.belief.primary_language != code:
            logger.info(f"🎯 Site language set to '{code}'")
        self.belief.pattern_detected = True
        self.belief.primary_language = code

    def has_language(self, url: str) -> bool:
        return detect_language(url) is not None

    def build_path(self, base_path: str) -> str:
        """Prefix a path with the detected language, or return it unchanged."""
        path = base_path if base_path.startswith('/') else f"/{base_path}"
        if not self.belief.primary_language:
            return path
        return f"/{self.belief.primary_language}/{path.lstrip('/')}"

    def reset(self) -> None:
        self.belief = SiteLanguageBelief()

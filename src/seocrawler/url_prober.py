"""Probing of URL variants (language prefix, www toggle) against a live site."""

import asyncio
import logging
from typing import Optional
from urllib.parse import urlsplit, urlunsplit

import httpx

from seocrawler.constants import (
    DETECTED_LANGUAGE_PRIORITY,
    NO_LANGUAGE_PRIORITY,
    PROBE_BATCH_SIZE,
    PROBE_LANGUAGE_PRIORITIES,
    PROBE_TIMEOUT_SECONDS,
)
from seocrawler.language import SiteLanguageResolver, strip_language
from seocrawler.models import ProbeResult, UrlVariant

logger = logging.getLogger(__name__)


class UrlVariantProber:
    """Finds the form of a path that actually resolves on a site.

    Candidates are tried in priority order and probing stops at the first
    success, so once a language is known a path usually costs one HEAD
    request.
    """

    def __init__(
        self,
        resolver: SiteLanguageResolver,
        client: httpx.AsyncClient,
        timeout: float = PROBE_TIMEOUT_SECONDS,
    ):
        self.resolver = resolver
        self.client = client
        self.timeout = timeout

    @staticmethod
    def domain_variants(base_url: str) -> list[str]:
        """Origin of base_url followed by the same origin with ``www.`` toggled."""
        parsed = urlsplit(base_url)
        netloc = parsed.netloc
        if netloc.startswith('www.'):
            toggled = netloc[4:]
        else:
            toggled = f"www.{netloc}"
        return [
            urlunsplit((parsed.scheme, netloc, '', '', '')),
            urlunsplit((parsed.scheme, toggled, '', '', '')),
        ]

    def variants(self, base_url: str, path: str) -> list[UrlVariant]:
        """Build the priority-ordered candidate URLs for a path.

        Priorities: detected language 0, ``ro`` 1, ``en``/``ru`` 2, no
        language segment 3. Each language is tried on the original host and
        on the www-toggled host.

        Args:
            base_url: Any URL of the site
            path: Site path, with or without a language segment

        Returns:
            Candidates sorted by ascending priority
        """
        bare_path = strip_language(path)
        clean_path = bare_path.lstrip('/')
        detected = self.resolver.primary_language

        languages = []
        if detected:
            languages.append((detected, DETECTED_LANGUAGE_PRIORITY))
        for code, priority in PROBE_LANGUAGE_PRIORITIES.items():
            if code != detected:
                languages.append((code, priority))

        candidates = []
        for origin in self.domain_variants(base_url):
            host = urlsplit(origin).netloc
            candidates.append(UrlVariant(
                url=f"{origin}{bare_path}",
                priority=NO_LANGUAGE_PRIORITY,
                description=f"URL without language code ({host})",
            ))
            for code, priority in languages:
                candidates.append(UrlVariant(
                    url=f"{origin}/{code}/{clean_path}",
                    priority=priority,
                    language=code,
                    description=f"URL with language: {code} ({host})",
                ))

        candidates.sort(key=lambda v: v.priority)
        return candidates

    async def probe(self, url: str) -> ProbeResult:
        """HEAD-check a URL; any 2xx or 3xx final status counts as existing."""
        try:
            response = await self.client.head(url, follow_redirects=True, timeout=self.timeout)
        except Exception as e:
            logger.debug(f"Probe failed for {url}: {e}")
            return ProbeResult(exists=False, status=0, error=str(e))

        status = response.status_code
        if 200 <= status < 400:
            return ProbeResult(exists=True, status=status)
        return ProbeResult(exists=False, status=status, error=response.reason_phrase or None)

    async def resolve_first_working(self, base_url: str, path: str) -> Optional[str]:
        """Return the first candidate for path that responds successfully.

        A successful language-tagged candidate is fed back to the resolver so
        later paths on the same site start with that language.

        Args:
            base_url: Any URL of the site
            path: Site path to resolve

        Returns:
            Working URL, or None if no candidate responds
        """
        candidates = self.variants(base_url, path)
        for variant in candidates:
            result = await self.probe(variant.url)
            if not result.exists:
                continue

            logger.info(f"✅ Found working URL: {variant.url} (priority {variant.priority})")
            if variant.language:
                self.resolver.record_language(variant.language)
            return variant.url

        logger.debug(f"No working URL after {len(candidates)} variants for path: {path}")
        return None

    async def filter_working_urls(self, base_url: str, paths: list[str]) -> list[str]:
        """Resolve many paths, PROBE_BATCH_SIZE at a time, keeping those that work."""
        working = []
        for start in range(0, len(paths), PROBE_BATCH_SIZE):
            batch = paths[start:start + PROBE_BATCH_SIZE]
            results = await asyncio.gather(
                *(self.resolve_first_working(base_url, path) for path in batch)
            )
            working.extend(url for url in results if url)

        logger.info(f"Variant probing: {len(working)}/{len(paths)} paths resolved")
        return working

"""Qualitative (content quality) scoring collaborators.

The job runner only sees the QualitativeScorer interface. The LLM-backed
implementation talks to OpenAI or Anthropic and expects TOON-formatted
answers; the neutral implementation is used when no API key is configured.
"""

import asyncio
import logging
import os
import time
from abc import ABC, abstractmethod
from typing import Optional

import toon

from seocrawler.config import settings
from seocrawler.models import PageSignals, QualitativeScore, Recommendation, SiteSummary

logger = logging.getLogger(__name__)

NO_CONTENT_NOTE = "AI Analysis: quality could not be assessed because the page has no content."

NO_MAJOR_ISSUES = Recommendation(
    title="No Major Issues",
    description=(
        "The automated analysis did not find significant aggregated issues to "
        "generate strategic recommendations."
    ),
)

AI_ERROR_RECOMMENDATION = Recommendation(
    title="AI Error",
    description=(
        "Could not generate AI recommendations due to an API error. "
        "Please check your AI provider keys and plan."
    ),
)

# Substrings of provider errors that retrying cannot fix
NON_RETRYABLE_ERRORS = [
    'invalid api key',
    'authentication',
    'unauthorized',
    'invalid_api_key',
    'model not found',
    'invalid model',
]


class QualitativeScoringError(Exception):
    """Raised when the qualitative scorer cannot produce a usable answer."""


class QualitativeScorer(ABC):
    """Judges page content quality beyond structural heuristics."""

    @abstractmethod
    async def score(self, signals: PageSignals) -> QualitativeScore:
        """Score one page from 0 to 100.

        Raises:
            QualitativeScoringError: If no usable score can be produced
        """

    @abstractmethod
    async def site_recommendations(self, summary: SiteSummary) -> list[Recommendation]:
        """Strategic, site-level recommendations for an aggregated crawl."""


class NeutralQualitativeScorer(QualitativeScorer):
    """Returns a fixed score; used when no LLM is configured."""

    def __init__(self, neutral_score: int = 50):
        self.neutral_score = neutral_score

    async def score(self, signals: PageSignals) -> QualitativeScore:
        return QualitativeScore(score=self.neutral_score)

    async def site_recommendations(self, summary: SiteSummary) -> list[Recommendation]:
        if not summary.technical_issues and not summary.content_issues:
            return [NO_MAJOR_ISSUES]

        recommendations = []
        if summary.technical_issues:
            recommendations.append(Recommendation(
                title="Fix Technical Issues",
                description=(
                    f"{len(summary.technical_issues)} distinct technical issues were found across "
                    f"{summary.total_pages} pages. Start with the most frequent: {summary.technical_issues[0]}"
                ),
            ))
        if summary.content_issues:
            recommendations.append(Recommendation(
                title="Improve Content",
                description=(
                    f"{len(summary.content_issues)} distinct content issues were found. "
                    f"Start with the most frequent: {summary.content_issues[0]}"
                ),
            ))
        return recommendations


class LLMQualitativeScorer(QualitativeScorer):
    """Scores pages and drafts site recommendations with an LLM."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4",
        provider: str = "openai",
        max_tokens: int = 1024,
        max_retries: int = 3,
        retry_delay: float = 2.0,
        neutral_score: int = 50,
    ):
        """Initialize the LLM scorer.

        Args:
            api_key: API key for the LLM provider
            model: Model name to use
            provider: LLM provider (openai or anthropic)
            max_tokens: Maximum tokens for LLM response
            max_retries: Retries for transient failures
            retry_delay: Initial delay between retries in seconds
            neutral_score: Score for pages with nothing to judge
        """
        self.api_key = api_key or os.getenv("LLM_API_KEY")
        self.model = model
        self.provider = provider
        self.max_tokens = max_tokens
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.neutral_score = neutral_score

        if not self.api_key:
            raise ValueError(
                "API key must be provided or set in LLM_API_KEY environment variable"
            )

    async def score(self, signals: PageSignals) -> QualitativeScore:
        if not signals.title and not signals.content_sample:
            return QualitativeScore(score=self.neutral_score, recommendations=[NO_CONTENT_NOTE])

        prompt = self._build_page_prompt(signals)
        try:
            response = await asyncio.to_thread(self._call_llm, prompt)
            result = self._decode(response)
        except QualitativeScoringError:
            raise
        except Exception as e:
            raise QualitativeScoringError(f"LLM call failed for {signals.url}: {e}") from e

        score = result.get("score")
        recommendations = result.get("recommendations") or []
        if isinstance(score, bool) or not isinstance(score, (int, float)):
            raise QualitativeScoringError(f"LLM returned no numeric score for {signals.url}")
        if isinstance(recommendations, str):
            recommendations = [recommendations]

        return QualitativeScore(
            score=int(max(0, min(100, round(score)))),
            recommendations=[str(r) for r in recommendations],
        )

    async def site_recommendations(self, summary: SiteSummary) -> list[Recommendation]:
        if not summary.technical_issues and not summary.content_issues:
            logger.info("No aggregated issues; skipping strategic recommendations")
            return [NO_MAJOR_ISSUES]

        prompt = self._build_site_prompt(summary)
        try:
            response = await asyncio.to_thread(self._call_llm, prompt)
            result = self._decode(response)
        except Exception as e:
            raise QualitativeScoringError(f"Site recommendations failed for {summary.domain}: {e}") from e

        recommendations = []
        for item in result.get("recommendations") or []:
            if isinstance(item, dict) and item.get("title"):
                recommendations.append(Recommendation(
                    title=str(item["title"]),
                    description=str(item.get("description", "")),
                ))
        return recommendations

    def _build_page_prompt(self, signals: PageSignals) -> str:
        return f"""Act as a world-class SEO expert. Analyze the following data extracted from a web page.
Give a content quality score from 0 to 100 and 2-3 short strategic recommendations
to improve content quality and SEO relevance. Be concise, direct and actionable.

URL: {signals.url}
- Page Title: "{signals.title}" (Length: {len(signals.title)} characters)
- Meta Description: "{signals.meta_description}" (Length: {len(signals.meta_description)} characters)
- H1: "{signals.h1}"
- Word Count: {signals.word_count}
- Content Sample: "{signals.content_sample}"

Criteria:
1. Clarity and relevance: are title, H1 and description aligned with the content?
2. User intent: does the page answer a clear informational or commercial need?
3. Writing quality: is the text engaging, persuasive and easy to read?
4. Call to action: are there clear prompts for the user?

Format your response ONLY as TOON (Token-Oriented Object Notation) with NO additional text.
Quote any value that contains a comma. Use this exact structure:
score: <number>
recommendations[N]: <comma-separated quoted values>

Where [N] is the number of recommendations.
"""

    def _build_site_prompt(self, summary: SiteSummary) -> str:
        return f"""You are a senior SEO strategist. Analyze the following aggregated summary of issues
found across an entire website ({summary.domain}).
- Total Pages Analyzed: {summary.total_pages}
- Average On-Page SEO Score: {summary.avg_page_score}/100
- Aggregated Technical Issues: {'; '.join(summary.technical_issues) or 'None'}
- Aggregated Content Issues: {'; '.join(summary.content_issues) or 'None'}

Based on this summary, provide the top 3-4 most impactful strategic recommendations
for the website owner. Focus on high-level strategy, not per-page fixes.

Format your response ONLY as TOON (Token-Oriented Object Notation) with NO additional text.
Quote any value that contains a comma. Use this exact tabular structure:
recommendations[N]{{title,description}}:
  <title>,<description>

Where [N] is the number of recommendations.
"""

    @staticmethod
    def _decode(response: Optional[str]) -> dict:
        """Decode a TOON answer, tolerating surrounding markdown fences."""
        if not response or not response.strip():
            raise QualitativeScoringError("LLM returned empty response")

        lines = [
            line for line in response.strip().splitlines()
            if not line.strip().startswith("```")
        ]
        try:
            result = toon.decode("\n".join(lines))
        except Exception as e:
            raise QualitativeScoringError(f"Failed to parse LLM response: {e}") from e

        if not isinstance(result, dict):
            raise QualitativeScoringError("LLM response is not a TOON object")
        return result

    def _call_llm(self, prompt: str) -> str:
        """Call the LLM with the given prompt, with retry logic.

        Implements exponential backoff for transient failures (connection errors,
        rate limits, timeouts). Non-retryable errors (auth, invalid model) are
        raised immediately.

        Raises:
            Exception: If all retries are exhausted or non-retryable error occurs
        """
        last_exception = None
        current_delay = self.retry_delay

        for attempt in range(self.max_retries + 1):
            try:
                if self.provider == "openai":
                    return self._call_openai(prompt)
                elif self.provider == "anthropic":
                    return self._call_anthropic(prompt)
                else:
                    raise ValueError(f"Unsupported provider: {self.provider}")

            except ValueError:
                raise
            except Exception as e:
                error_str = str(e).lower()
                last_exception = e

                if any(err in error_str for err in NON_RETRYABLE_ERRORS):
                    logger.error(f"Non-retryable LLM error: {e}")
                    raise

                if attempt < self.max_retries:
                    logger.warning(
                        f"LLM call failed (attempt {attempt + 1}/{self.max_retries + 1}): {e}. "
                        f"Retrying in {current_delay:.1f}s..."
                    )
                    time.sleep(current_delay)
                    current_delay *= 2
                else:
                    logger.error(f"LLM call failed after {self.max_retries + 1} attempts: {e}")

        raise last_exception

    def _call_openai(self, prompt: str) -> str:
        import openai

        client = openai.OpenAI(api_key=self.api_key)
        response = client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": "You are an expert SEO analyst."},
                {"role": "user", "content": prompt},
            ],
            temperature=0.3,
            max_tokens=self.max_tokens,
        )
        return response.choices[0].message.content

    def _call_anthropic(self, prompt: str) -> str:
        import anthropic

        client = anthropic.Anthropic(api_key=self.api_key)
        response = client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.content[0].text


def build_qualitative_scorer(neutral_score: int = 50) -> QualitativeScorer:
    """Pick the LLM scorer when an API key is configured, else the neutral one."""
    if settings.LLM_API_KEY:
        logger.info(f"Using {settings.LLM_PROVIDER} model {settings.LLM_MODEL} for qualitative scoring")
        return LLMQualitativeScorer(
            api_key=settings.LLM_API_KEY,
            model=settings.LLM_MODEL,
            provider=settings.LLM_PROVIDER,
            neutral_score=neutral_score,
        )

    logger.info("LLM_API_KEY not set; qualitative scoring uses a neutral score")
    return NeutralQualitativeScorer(neutral_score=neutral_score)

"""Data models for the crawl pipeline."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Outcome classes of a page that did not extract cleanly."""

    CONNECTION_ERROR = "CONNECTION_ERROR"
    CLIENT_ERROR = "CLIENT_ERROR"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    FALLBACK_SUCCESS = "FALLBACK_SUCCESS"


# Kinds that carry no usable content
FATAL_ERROR_KINDS = frozenset({ErrorKind.CONNECTION_ERROR, ErrorKind.CLIENT_ERROR})

# Kinds that carry salvaged content and a floor score
DEGRADED_ERROR_KINDS = frozenset({ErrorKind.PARTIAL_SUCCESS, ErrorKind.FALLBACK_SUCCESS})


class SiteState(str, Enum):
    """Crawl state machine of a site: PENDING -> CRAWLING -> COMPLETED | FAILED."""

    PENDING = "pending"
    CRAWLING = "crawling"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(str, Enum):
    GENERAL_CRAWL = "general-crawl"
    DEEP_ANALYSIS = "deep-analysis"


class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class Heading:
    """A heading element (h1-h3) of a rendered page."""

    level: int
    text: str


@dataclass(frozen=True)
class PageResult:
    """Normalized outcome of extracting one URL.

    A result carries either a score or an error_kind (degraded kinds carry
    both). Collections are tuples so that results stay immutable once built.
    """

    url: str
    title: str = ""
    meta_description: str = ""
    headings: tuple[Heading, ...] = ()
    word_count: int = 0
    issues: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    score: Optional[int] = None
    internal_links: tuple[str, ...] = ()
    error_kind: Optional[ErrorKind] = None
    content_sample: str = ""
    error: Optional[str] = None
    final_url: Optional[str] = None

    @property
    def is_clean(self) -> bool:
        return self.error_kind is None

    @property
    def is_fatal(self) -> bool:
        return self.error_kind in FATAL_ERROR_KINDS

    @property
    def is_degraded(self) -> bool:
        return self.error_kind in DEGRADED_ERROR_KINDS

    @property
    def h1(self) -> str:
        """Text of the first H1 heading, or an empty string."""
        for heading in self.headings:
            if heading.level == 1:
                return heading.text
        return ""

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["headings"] = [asdict(h) for h in self.headings]
        data["issues"] = list(self.issues)
        data["suggestions"] = list(self.suggestions)
        data["internal_links"] = list(self.internal_links)
        data["error_kind"] = self.error_kind.value if self.error_kind else None
        return data


@dataclass
class PageScore:
    """Quantitative score and signals computed from a page's HTML."""

    score: int
    issues: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    title: str = ""
    meta_description: str = ""
    h1_count: int = 0
    word_count: int = 0
    total_images: int = 0
    images_without_alt: int = 0
    has_structured_data: bool = False


@dataclass
class ScoredPage:
    """A page after the orchestrator combined quantitative and qualitative scores."""

    page: PageResult
    seo_score: int
    quantitative_score: Optional[int] = None
    ai_recommendations: list[str] = field(default_factory=list)

    @property
    def url(self) -> str:
        return self.page.url

    @property
    def issues(self) -> tuple[str, ...]:
        return self.page.issues


@dataclass
class SiteLanguageBelief:
    """What the crawl currently believes about language segments in site paths."""

    pattern_detected: bool = False
    primary_language: Optional[str] = None


@dataclass
class LanguageObservation:
    """Result of observing a batch of URLs for language path segments."""

    uses_language_in_path: bool
    primary_language: Optional[str] = None
    detected_languages: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class UrlVariant:
    """A candidate absolute URL produced by the variant prober."""

    url: str
    priority: int
    language: Optional[str] = None
    description: str = ""

    @property
    def kind(self) -> str:
        return "with-language" if self.language else "no-language"


@dataclass
class ProbeResult:
    """Outcome of a HEAD check against a URL variant."""

    exists: bool
    status: int = 0
    error: Optional[str] = None


@dataclass
class CrawlJob:
    """A unit of work consumed by the job runner."""

    site_id: int
    root_url: str
    kind: JobKind = JobKind.GENERAL_CRAWL
    options: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        return {
            "site_id": self.site_id,
            "root_url": self.root_url,
            "kind": self.kind.value,
            "options": self.options,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any], kind: Optional[str] = None) -> "CrawlJob":
        """Build a job from a queue payload.

        Args:
            payload: Dict with site_id, root_url and optional options
            kind: Job kind, overriding the payload's own 'kind' entry

        Returns:
            CrawlJob instance
        """
        return cls(
            site_id=int(payload["site_id"]),
            root_url=payload["root_url"],
            kind=JobKind(kind or payload.get("kind", JobKind.GENERAL_CRAWL.value)),
            options=dict(payload.get("options") or {}),
        )


@dataclass
class SiteRecord:
    id: int
    domain: str
    root_url: str
    crawl_state: SiteState = SiteState.PENDING
    last_crawled_at: Optional[datetime] = None


@dataclass
class Recommendation:
    """A site-level strategic recommendation."""

    title: str
    description: str

    def to_dict(self) -> dict[str, str]:
        return {"title": self.title, "description": self.description}


@dataclass
class AggregatedReport:
    """Site-level report reduced from all scored pages of one crawl."""

    overall_score: int
    technical_issues: list[str] = field(default_factory=list)
    content_issues: list[str] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    pages_analyzed: int = 0
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_score": self.overall_score,
            "technical_issues": list(self.technical_issues),
            "content_issues": list(self.content_issues),
            "recommendations": [r.to_dict() for r in self.recommendations],
            "pages_analyzed": self.pages_analyzed,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class PageSignals:
    """The page data handed to the qualitative scorer."""

    url: str
    title: str = ""
    meta_description: str = ""
    h1: str = ""
    content_sample: str = ""
    word_count: int = 0

    @classmethod
    def from_page(cls, page: PageResult, sample_chars: int) -> "PageSignals":
        return cls(
            url=page.url,
            title=page.title,
            meta_description=page.meta_description,
            h1=page.h1,
            content_sample=page.content_sample[:sample_chars],
            word_count=page.word_count,
        )


@dataclass
class QualitativeScore:
    score: int
    recommendations: list[str] = field(default_factory=list)


@dataclass
class SiteSummary:
    """Aggregated figures handed to the site recommendation generator."""

    domain: str
    total_pages: int
    avg_page_score: int
    technical_issues: list[str] = field(default_factory=list)
    content_issues: list[str] = field(default_factory=list)


@dataclass
class DeepAnalysisSummary:
    """Which best-effort deep analysis steps succeeded or failed."""

    site_id: int
    succeeded: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failed

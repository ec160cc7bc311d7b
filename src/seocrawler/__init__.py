"""Recursive site crawler with SEO scoring and a durable job queue."""

__version__ = "0.1.0"

from seocrawler.config import CrawlConfig, ScoringConfig, settings
from seocrawler.context import CrawlContext
from seocrawler.crawler import RecursiveCrawler
from seocrawler.extractor import PageExtractor
from seocrawler.scorer import PageScorer
from seocrawler.language import SiteLanguageResolver
from seocrawler.url_prober import UrlVariantProber
from seocrawler.orchestrator import JobRunner
from seocrawler.deep_analysis import DeepAnalyzer
from seocrawler.storage import SqliteStorage, SiteNotFoundError
from seocrawler.job_queue import SqliteJobQueue, JobWorker
from seocrawler.models import (
    AggregatedReport,
    CrawlJob,
    ErrorKind,
    JobKind,
    PageResult,
    SiteState,
)

__all__ = [
    # Crawling
    "CrawlContext",
    "RecursiveCrawler",
    "PageExtractor",
    "PageScorer",
    "SiteLanguageResolver",
    "UrlVariantProber",
    # Jobs
    "JobRunner",
    "DeepAnalyzer",
    "SqliteJobQueue",
    "JobWorker",
    # Storage
    "SqliteStorage",
    "SiteNotFoundError",
    # Models
    "AggregatedReport",
    "CrawlJob",
    "ErrorKind",
    "JobKind",
    "PageResult",
    "SiteState",
    # Config
    "CrawlConfig",
    "ScoringConfig",
    "settings",
]

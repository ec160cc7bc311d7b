# src/seocrawler/constants.py
"""Centralized constants for the crawl pipeline.

This module contains magic numbers and fixed vocabularies that are used
across multiple modules. For user-configurable values, see config.py
(CrawlConfig and ScoringConfig).
"""

# =============================================================================
# Crawler Constants
# =============================================================================

# Maximum pages processed in one crawl run
DEFAULT_PAGE_BUDGET = 1000

# Concurrent fetch/extract operations per crawl
DEFAULT_CONCURRENCY = 5

# Maximum crawled URLs per path pattern
DEFAULT_PATTERN_CAP = 50

# Pages of one pattern after which extraction switches to quick mode
SIMILAR_PAGE_THRESHOLD = 5

# Number of top patterns to log in the end-of-crawl summary
PATTERN_SUMMARY_LIMIT = 10


# =============================================================================
# Timeout Constants (seconds)
# =============================================================================

# Lightweight HTTP GET (static pass)
STATIC_FETCH_TIMEOUT_SECONDS = 15.0

# Full page navigation in the browser
NAVIGATION_TIMEOUT_SECONDS = 45.0

# HEAD checks during variant probing
PROBE_TIMEOUT_SECONDS = 10.0

# Content-settle wait after navigation
SETTLE_MIN_SECONDS = 2.0
SETTLE_MAX_SECONDS = 5.0

# Poll interval while waiting for content to settle
SETTLE_POLL_INTERVAL_SECONDS = 0.25

# Maximum redirects followed by the static pass
MAX_REDIRECTS = 5


# =============================================================================
# Extraction Constants
# =============================================================================

# Visible text cap for a rendered page
MAX_CONTENT_CHARS = 8000

# Minimum salvaged text for a partial extraction to count
MIN_PARTIAL_TEXT_CHARS = 100

# Tags removed before taking visible text
NON_CONTENT_TAGS = ["script", "style", "nav", "footer", "header", "aside", "form", "noscript"]

# Resource types the browser does not load
BLOCKED_RESOURCE_TYPES = ["image", "stylesheet", "font", "media"]

# Marker strings of a crashed client-side application
APP_CRASH_MARKERS = [
    "Application error: a client-side exception has occurred",
    "Uncaught runtime errors",
]

# Selectors that expose navigation links not always rendered as plain anchors
NAVIGATION_LINK_SELECTORS = [
    "nav a[href]",
    "header a[href]",
    "[role=navigation] a[href]",
    ".menu a[href]",
    ".navbar a[href]",
    "area[href]",
    "link[rel=next][href]",
    "[data-href]",
]

# File extensions never queued for crawling
SKIP_EXTENSIONS = {
    '.pdf', '.jpg', '.jpeg', '.png', '.gif', '.svg', '.webp',
    '.zip', '.tar', '.gz', '.mp4', '.mp3', '.avi', '.mov',
    '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx',
    '.css', '.js', '.xml', '.json', '.ico', '.woff', '.woff2', '.ttf',
}

# Link prefixes that never point at a page
SKIP_LINK_PREFIXES = ("#", "mailto:", "tel:", "javascript:", "data:")


# =============================================================================
# Language & URL Variant Constants
# =============================================================================

# ISO 639-1 codes recognized as a leading path segment
LANGUAGE_CODES = frozenset([
    'en', 'ro', 'ru', 'de', 'fr', 'es', 'it', 'pt', 'nl', 'pl',
    'cs', 'sk', 'hu', 'bg', 'hr', 'sr', 'sl', 'lt', 'lv', 'et',
    'fi', 'da', 'no', 'sv', 'is', 'tr', 'ar', 'he', 'zh', 'ja',
    'ko', 'th', 'vi', 'hi', 'bn', 'ur', 'fa', 'sw', 'am',
])

# Languages always tried while probing, with their priority
PROBE_LANGUAGE_PRIORITIES = {
    'ro': 1,
    'en': 2,
    'ru': 2,
}

# Priority of the detected language and of the bare path
DETECTED_LANGUAGE_PRIORITY = 0
NO_LANGUAGE_PRIORITY = 3

# Section paths probed when a page exposes no links
COMMON_SECTION_PATHS = [
    'about', 'contact', 'services', 'products', 'blog', 'news',
    'pricing', 'features', 'support', 'help', 'faq',
]

# Paths probed concurrently per batch
PROBE_BATCH_SIZE = 5


# =============================================================================
# HTTP Constants
# =============================================================================

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# Distinct agent for the last-resort static fetch
FALLBACK_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:121.0) "
    "Gecko/20100101 Firefox/121.0"
)

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}


# =============================================================================
# Scoring & Reporting Constants
# =============================================================================

# Issue category prefixes, used to roll issues up into report sections
ISSUE_PREFIX_CRITICAL = "Critical:"
ISSUE_PREFIX_TECHNICAL = "Technical:"
ISSUE_PREFIX_CONTENT = "Content:"

SITEMAP_SUGGESTION = (
    "Check that a sitemap.xml file exists at the domain root so search engines "
    "can discover every page."
)
ADD_STRUCTURED_DATA_SUGGESTION = (
    "Add Schema.org structured data (JSON-LD) to give search engines context "
    "about the page content."
)
STRUCTURED_DATA_PRESENT_SUGGESTION = (
    "Good! The page uses Schema.org structured data. Make sure it is valid and relevant."
)
DEGRADED_PAGE_SUGGESTION = (
    "The page could only be partially analyzed. Review it manually and fix "
    "rendering or connectivity problems so it can be fully indexed."
)

ZERO_PAGES_ISSUE = (
    "All pages failed to analyze. The website might have client-side errors "
    "on all pages or connectivity issues."
)

# Characters of page text sent to the qualitative scorer
QUALITATIVE_CONTENT_SAMPLE_CHARS = 4000

# Pages persisted per storage batch
DEFAULT_STORAGE_BATCH_SIZE = 10


# =============================================================================
# Job Queue Constants
# =============================================================================

QUEUE_NAME = "seo-analysis"

# Lower number runs first
GENERAL_CRAWL_PRIORITY = 10
DEEP_ANALYSIS_PRIORITY = 20

# Seconds without a heartbeat after which a running job is considered abandoned
DEFAULT_VISIBILITY_TIMEOUT_SECONDS = 600

# Workers refresh the heartbeat of their running job this often
DEFAULT_HEARTBEAT_INTERVAL_SECONDS = 60.0

DEFAULT_POLL_INTERVAL_SECONDS = 2.0

# Maximum sitemap index recursion
MAX_SITEMAP_DEPTH = 3

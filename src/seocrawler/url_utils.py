"""URL canonicalization, path patterns and link filtering."""

import logging
import re
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from seocrawler.constants import SKIP_EXTENSIONS, SKIP_LINK_PREFIXES

logger = logging.getLogger(__name__)

DOMAIN_RE = re.compile(
    r'^[a-zA-Z0-9][a-zA-Z0-9-]{0,61}[a-zA-Z0-9]?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)+$'
)

# Applied in order; later rules see the output of earlier ones
PATTERN_RULES = [
    (re.compile(r'article-content-\d+-\d+-[\d.]+'), 'article-content-[id]'),
    (re.compile(r'(blog-post-|post-)\d+'), r'\1[id]'),
    (re.compile(r'(product-|item-|p)\d+'), r'\1[id]'),
    (re.compile(r'category-\d+'), 'category-[id]'),
    (re.compile(r'(user-|profile-|u)\d+'), r'\1[id]'),
    (re.compile(r'[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}', re.IGNORECASE), '[uuid]'),
    (re.compile(r'[a-zA-Z0-9]{20,}'), '[hash]'),
    # Dates before numbers, or /2023/12/25 would become /[id]/12/25
    (re.compile(r'/\d{4}[-/]\d{1,2}[-/]\d{1,2}(?=/|$)'), '/[date]'),
    (re.compile(r'/\d{4,}'), '/[id]'),
    (re.compile(r'/\d+(?=/|$)'), '/[id]'),
    (re.compile(r'/[a-zA-Z0-9]+-[a-zA-Z0-9-]{5,}'), '/[slug]'),
]


def strip_www(host: str) -> str:
    while host.startswith('www.'):
        host = host[4:]
    return host


def normalize_url(url: str) -> str:
    """Canonicalize an absolute URL.

    Lowercases scheme and host, strips a leading ``www.``, removes trailing
    slashes from non-root paths, drops the fragment and sorts query
    parameters by key. Userinfo and port are kept.

    Args:
        url: Absolute URL

    Returns:
        Canonical URL, or the input unchanged if it cannot be parsed
    """
    try:
        parsed = urlsplit(url.strip())
        if not parsed.scheme or not parsed.netloc or not parsed.hostname:
            return url

        host = strip_www(parsed.hostname.lower())
        if ':' in host:
            host = f"[{host}]"

        netloc = host
        if parsed.port is not None:
            netloc = f"{netloc}:{parsed.port}"
        if parsed.username is not None:
            userinfo = parsed.username
            if parsed.password is not None:
                userinfo = f"{userinfo}:{parsed.password}"
            netloc = f"{userinfo}@{netloc}"

        path = parsed.path or '/'
        if len(path) > 1:
            path = path.rstrip('/') or '/'

        query = ''
        if parsed.query:
            params = parse_qsl(parsed.query, keep_blank_values=True)
            query = urlencode(sorted(params, key=lambda kv: kv[0]))

        return urlunsplit((parsed.scheme.lower(), netloc, path, query, ''))
    except Exception:
        return url


def url_pattern(url: str) -> str:
    """Collapse the dynamic segments of a URL's path into placeholders.

    ``/blog/post-123`` and ``/blog/post-456`` share the pattern
    ``/blog/post-[id]``, ``/page/2`` becomes ``/page/[id]``. UUIDs, long
    hashes, dates and long dashed slugs are collapsed as well.
    """
    try:
        path = urlsplit(url).path or '/'
    except ValueError:
        return url

    for regex, replacement in PATTERN_RULES:
        path = regex.sub(replacement, path)
    return path


def is_valid_url(url: str) -> bool:
    """True if the URL is http(s) and its host matches a basic domain grammar."""
    try:
        parsed = urlsplit(url)
        host = parsed.hostname
    except ValueError:
        return False
    if parsed.scheme not in ('http', 'https') or not host:
        return False
    return bool(DOMAIN_RE.match(host))


def site_host(url: str) -> str:
    """Host of a URL, lowercased and without ``www.``."""
    try:
        return strip_www((urlsplit(url).hostname or '').lower())
    except ValueError:
        return ''


def is_same_site(url: str, base_host: str) -> bool:
    """True if the URL's host is the base host or one of its subdomains."""
    host = site_host(url)
    base = strip_www(base_host.lower())
    return bool(host) and (host == base or host.endswith('.' + base))


def should_skip_link(href: str) -> bool:
    """True for hrefs that can never point at a crawlable HTML page."""
    href_lower = href.strip().lower()
    if not href_lower or href_lower.startswith(SKIP_LINK_PREFIXES):
        return True

    try:
        path = urlsplit(href_lower).path
    except ValueError:
        return True
    return any(path.endswith(ext) for ext in SKIP_EXTENSIONS)


def resolve_link(page_url: str, href: str, base_host: str) -> Optional[str]:
    """Resolve an href found on a page into a normalized same-site URL.

    Args:
        page_url: URL of the page the href was found on
        href: Raw href attribute value
        base_host: Host of the site being crawled

    Returns:
        Normalized absolute URL, or None if the link is skipped
    """
    if not href or should_skip_link(href):
        return None

    try:
        absolute_url = urljoin(page_url, href.strip())
    except ValueError:
        return None

    if not absolute_url.startswith(('http://', 'https://')):
        return None
    if not is_same_site(absolute_url, base_host):
        return None
    return normalize_url(absolute_url)


def origin(url: str) -> str:
    """Scheme and netloc of a URL, e.g. ``https://example.com``."""
    parsed = urlsplit(url)
    return f"{parsed.scheme}://{parsed.netloc}"

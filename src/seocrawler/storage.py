# src/seocrawler/storage.py
"""Storage abstraction for sites, crawled pages and reports, with a SQLite backend."""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from seocrawler.config import settings
from seocrawler.constants import DEFAULT_STORAGE_BATCH_SIZE
from seocrawler.models import AggregatedReport, Recommendation, ScoredPage, SiteRecord, SiteState

logger = logging.getLogger(__name__)

CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS sites (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    domain TEXT NOT NULL UNIQUE,
    root_url TEXT NOT NULL,
    crawl_state TEXT NOT NULL DEFAULT 'pending',
    last_crawled_at TIMESTAMP,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS crawled_pages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    site_id INTEGER NOT NULL REFERENCES sites(id) ON DELETE CASCADE,
    url TEXT NOT NULL,
    final_url TEXT,
    title TEXT,
    meta_description TEXT,
    headings TEXT,
    word_count INTEGER,
    issues TEXT,
    suggestions TEXT,
    internal_links TEXT,
    content_sample TEXT,
    error_kind TEXT,
    error TEXT,
    seo_score INTEGER,
    quantitative_score INTEGER,
    ai_recommendations TEXT,
    created_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_crawled_pages_site ON crawled_pages(site_id);

CREATE TABLE IF NOT EXISTS analyses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    site_id INTEGER NOT NULL REFERENCES sites(id) ON DELETE CASCADE,
    overall_score INTEGER NOT NULL,
    technical_issues TEXT,
    content_issues TEXT,
    recommendations TEXT,
    pages_analyzed INTEGER,
    created_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS deep_analysis_results (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    site_id INTEGER NOT NULL REFERENCES sites(id) ON DELETE CASCADE,
    step TEXT NOT NULL,
    data TEXT,
    created_at TIMESTAMP NOT NULL
);
"""

INSERT_PAGE_SQL = """
INSERT INTO crawled_pages (
    site_id, url, final_url, title, meta_description, headings, word_count,
    issues, suggestions, internal_links, content_sample, error_kind, error,
    seo_score, quantitative_score, ai_recommendations, created_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


class SiteNotFoundError(Exception):
    """Raised when a site id does not exist."""
    def __init__(self, site_id: int):
        self.site_id = site_id
        super().__init__(f"Site with ID {site_id} not found.")


class StorageError(Exception):
    """Raised when results cannot be persisted."""


class Storage(ABC):
    """Abstract base class defining the storage interface used by the job runner."""

    batch_size: int = DEFAULT_STORAGE_BATCH_SIZE

    @abstractmethod
    def get_site(self, site_id: int) -> SiteRecord:
        """Return the site record.

        Raises:
            SiteNotFoundError: If the site does not exist
        """
        pass

    @abstractmethod
    def set_site_state(self, site_id: int, state: SiteState) -> None:
        pass

    @abstractmethod
    def delete_pages(self, site_id: int) -> int:
        """Delete every stored page of a site; return the number deleted."""
        pass

    @abstractmethod
    def insert_pages(self, site_id: int, pages: List[ScoredPage]) -> None:
        """Insert pages in one atomic write.

        Raises:
            StorageError: If the write fails; nothing of it is kept
        """
        pass

    @abstractmethod
    def save_report(self, site_id: int, report: AggregatedReport) -> None:
        pass

    @abstractmethod
    def save_deep_result(self, site_id: int, step: str, data: Dict[str, Any]) -> None:
        """Persist the output of one deep analysis step."""
        pass

    def replace_pages(self, site_id: int, pages: List[ScoredPage], batch_size: Optional[int] = None) -> int:
        """Replace the site's stored pages with a new set.

        Pages are written in batches of batch_size (the storage default unless
        given); a batch that fails is retried one row at a time and rows that
        still fail are logged and skipped.

        Args:
            site_id: Site whose pages are replaced
            pages: Scored pages of the latest crawl
            batch_size: Pages per write batch for this call

        Returns:
            Number of pages stored
        """
        deleted = self.delete_pages(site_id)
        logger.debug(f"Deleted {deleted} previous pages of site {site_id}")

        size = max(1, batch_size or self.batch_size)
        stored = 0
        for start in range(0, len(pages), size):
            batch = pages[start:start + size]
            try:
                self.insert_pages(site_id, batch)
                stored += len(batch)
                continue
            except StorageError as e:
                logger.warning(
                    f"Batch write of {len(batch)} pages failed for site {site_id}: {e}. "
                    "Falling back to one row at a time."
                )

            for page in batch:
                try:
                    self.insert_pages(site_id, [page])
                    stored += 1
                except StorageError as e:
                    logger.error(f"Could not store page {page.url}: {e}")

        logger.info(f"💾 Stored {stored}/{len(pages)} pages for site {site_id}")
        return stored


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def _load(value: Optional[str], default: Any = None) -> Any:
    if value is None:
        return default
    return json.loads(value)


class SqliteStorage(Storage):
    """SQLite storage implementation."""

    def __init__(self, db_url: Optional[str] = None, batch_size: int = DEFAULT_STORAGE_BATCH_SIZE):
        """Initialize SQLite storage.

        Args:
            db_url: Database URL (sqlite:///path/to/db.db). Defaults to settings.DATABASE_URL.
            batch_size: Pages per write batch in replace_pages
        """
        self.db_url = db_url or settings.DATABASE_URL
        self.db_path = self.db_url.replace("sqlite:///", "")
        self.batch_size = batch_size
        self.conn: Optional[sqlite3.Connection] = None
        self.connect()
        self.create_schema()

    def connect(self) -> None:
        self.conn = sqlite3.connect(self.db_path)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        logger.debug(f"Connected to SQLite storage: {self.db_path}")

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.debug("Closed SQLite storage connection")

    def create_schema(self) -> None:
        with self.conn:
            self.conn.executescript(CREATE_TABLES_SQL)
        logger.debug("Schema verified/created for SQLite storage")

    # ------------------------------------------------------------------
    # Sites
    # ------------------------------------------------------------------

    def create_site(self, domain: str, root_url: Optional[str] = None) -> SiteRecord:
        """Register a site, or return the existing record for the domain."""
        existing = self.find_site_by_domain(domain)
        if existing:
            return existing

        root_url = root_url or f"https://{domain}"
        with self.conn:
            cursor = self.conn.execute(
                "INSERT INTO sites (domain, root_url, crawl_state, created_at) VALUES (?, ?, ?, ?)",
                (domain, root_url, SiteState.PENDING.value, datetime.now().isoformat()),
            )
        logger.info(f"Registered site {domain} (id={cursor.lastrowid})")
        return self.get_site(cursor.lastrowid)

    def find_site_by_domain(self, domain: str) -> Optional[SiteRecord]:
        row = self.conn.execute("SELECT * FROM sites WHERE domain = ?", (domain,)).fetchone()
        return self._site_from_row(row) if row else None

    def get_site(self, site_id: int) -> SiteRecord:
        row = self.conn.execute("SELECT * FROM sites WHERE id = ?", (site_id,)).fetchone()
        if row is None:
            raise SiteNotFoundError(site_id)
        return self._site_from_row(row)

    def set_site_state(self, site_id: int, state: SiteState) -> None:
        """Set the crawl state; entering CRAWLING also stamps last_crawled_at."""
        with self.conn:
            if state == SiteState.CRAWLING:
                cursor = self.conn.execute(
                    "UPDATE sites SET crawl_state = ?, last_crawled_at = ? WHERE id = ?",
                    (state.value, datetime.now().isoformat(), site_id),
                )
            else:
                cursor = self.conn.execute(
                    "UPDATE sites SET crawl_state = ? WHERE id = ?",
                    (state.value, site_id),
                )
        if cursor.rowcount == 0:
            raise SiteNotFoundError(site_id)
        logger.debug(f"Site {site_id} state -> {state.value}")

    @staticmethod
    def _site_from_row(row: sqlite3.Row) -> SiteRecord:
        last_crawled = row["last_crawled_at"]
        return SiteRecord(
            id=row["id"],
            domain=row["domain"],
            root_url=row["root_url"],
            crawl_state=SiteState(row["crawl_state"]),
            last_crawled_at=datetime.fromisoformat(last_crawled) if last_crawled else None,
        )

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    def delete_pages(self, site_id: int) -> int:
        with self.conn:
            cursor = self.conn.execute("DELETE FROM crawled_pages WHERE site_id = ?", (site_id,))
        return cursor.rowcount

    def insert_pages(self, site_id: int, pages: List[ScoredPage]) -> None:
        now = datetime.now().isoformat()
        rows = []
        for scored in pages:
            page = scored.page
            rows.append((
                site_id,
                page.url,
                page.final_url,
                page.title,
                page.meta_description,
                _dump([{"level": h.level, "text": h.text} for h in page.headings]),
                page.word_count,
                _dump(list(page.issues)),
                _dump(list(page.suggestions)),
                _dump(list(page.internal_links)),
                page.content_sample,
                page.error_kind.value if page.error_kind else None,
                page.error,
                scored.seo_score,
                scored.quantitative_score,
                _dump(scored.ai_recommendations),
                now,
            ))

        try:
            with self.conn:
                self.conn.executemany(INSERT_PAGE_SQL, rows)
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def get_pages(self, site_id: int) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT * FROM crawled_pages WHERE site_id = ? ORDER BY id ASC", (site_id,)
        )
        pages = []
        for row in cursor.fetchall():
            page = dict(row)
            for key in ("headings", "issues", "suggestions", "internal_links", "ai_recommendations"):
                page[key] = _load(page[key], [])
            pages.append(page)
        return pages

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def save_report(self, site_id: int, report: AggregatedReport) -> None:
        try:
            with self.conn:
                self.conn.execute(
                    """
                    INSERT INTO analyses (
                        site_id, overall_score, technical_issues, content_issues,
                        recommendations, pages_analyzed, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        site_id,
                        report.overall_score,
                        _dump(report.technical_issues),
                        _dump(report.content_issues),
                        _dump([r.to_dict() for r in report.recommendations]),
                        report.pages_analyzed,
                        report.created_at.isoformat(),
                    ),
                )
        except sqlite3.Error as e:
            raise StorageError(f"Could not save report for site {site_id}: {e}") from e
        logger.info(f"💾 Saved report for site {site_id} (score={report.overall_score})")

    def get_latest_report(self, site_id: int) -> Optional[AggregatedReport]:
        row = self.conn.execute(
            "SELECT * FROM analyses WHERE site_id = ? ORDER BY id DESC LIMIT 1", (site_id,)
        ).fetchone()
        if row is None:
            return None

        return AggregatedReport(
            overall_score=row["overall_score"],
            technical_issues=_load(row["technical_issues"], []),
            content_issues=_load(row["content_issues"], []),
            recommendations=[Recommendation(**r) for r in _load(row["recommendations"], [])],
            pages_analyzed=row["pages_analyzed"] or 0,
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    def save_deep_result(self, site_id: int, step: str, data: Dict[str, Any]) -> None:
        with self.conn:
            self.conn.execute(
                "INSERT INTO deep_analysis_results (site_id, step, data, created_at) VALUES (?, ?, ?, ?)",
                (site_id, step, _dump(data), datetime.now().isoformat()),
            )
        logger.debug(f"Saved deep analysis result '{step}' for site {site_id}")

    def get_deep_results(self, site_id: int) -> List[Dict[str, Any]]:
        cursor = self.conn.execute(
            "SELECT step, data, created_at FROM deep_analysis_results WHERE site_id = ? ORDER BY id ASC",
            (site_id,),
        )
        return [
            {"step": row["step"], "data": _load(row["data"], {}), "created_at": row["created_at"]}
            for row in cursor.fetchall()
        ]

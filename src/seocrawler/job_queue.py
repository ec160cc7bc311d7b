"""Durable job queue and the worker loop that feeds the job runner."""

import asyncio
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from seocrawler.config import settings
from seocrawler.constants import (
    DEEP_ANALYSIS_PRIORITY,
    DEFAULT_HEARTBEAT_INTERVAL_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_VISIBILITY_TIMEOUT_SECONDS,
    GENERAL_CRAWL_PRIORITY,
    QUEUE_NAME,
)
from seocrawler.models import CrawlJob, JobKind, JobStatus, SiteRecord

logger = logging.getLogger(__name__)

CREATE_JOBS_SQL = """
CREATE TABLE IF NOT EXISTS jobs (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    queue TEXT NOT NULL,
    kind TEXT NOT NULL,
    payload TEXT NOT NULL,
    priority INTEGER NOT NULL,
    status TEXT NOT NULL,
    attempts INTEGER NOT NULL DEFAULT 0,
    max_attempts INTEGER NOT NULL DEFAULT 1,
    error TEXT,
    created_at TIMESTAMP NOT NULL,
    started_at TIMESTAMP,
    heartbeat_at TIMESTAMP,
    finished_at TIMESTAMP
);

CREATE INDEX IF NOT EXISTS idx_jobs_claim ON jobs(queue, status, priority, id);
"""

PRIORITY_BY_KIND = {
    JobKind.GENERAL_CRAWL: GENERAL_CRAWL_PRIORITY,
    JobKind.DEEP_ANALYSIS: DEEP_ANALYSIS_PRIORITY,
}


@dataclass
class QueuedJob:
    """A job as claimed from the queue."""

    id: int
    kind: JobKind
    payload: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0

    def to_crawl_job(self) -> CrawlJob:
        return CrawlJob.from_payload(self.payload, kind=self.kind.value)


class JobQueue(ABC):
    """Abstract base class defining the queue interface.

    Delivery is at-least-once: a claimed job whose worker stops sending
    heartbeats becomes claimable again while it has attempts left.
    """

    @abstractmethod
    def enqueue(self, kind: JobKind, payload: Dict[str, Any], priority: Optional[int] = None) -> int:
        pass

    @abstractmethod
    def claim(self) -> Optional[QueuedJob]:
        """Claim the next queued job, or return None if there is none."""
        pass

    @abstractmethod
    def touch(self, job_id: int) -> None:
        """Record that the worker running job_id is still alive."""
        pass

    @abstractmethod
    def complete(self, job_id: int) -> None:
        pass

    @abstractmethod
    def fail(self, job_id: int, error: str) -> None:
        pass


class SqliteJobQueue(JobQueue):
    """SQLite-backed queue, safe for several worker processes on one database file."""

    def __init__(
        self,
        db_url: Optional[str] = None,
        queue_name: str = QUEUE_NAME,
        visibility_timeout: float = DEFAULT_VISIBILITY_TIMEOUT_SECONDS,
        max_attempts: int = 1,
    ):
        """Initialize the queue.

        Args:
            db_url: Database URL (sqlite:///path/to/db.db). Defaults to settings.QUEUE_DATABASE_URL.
            queue_name: Logical queue name
            visibility_timeout: Seconds without a heartbeat after which a running job
                is requeued, or failed once it has used max_attempts
            max_attempts: Attempts before a failing job stays failed
        """
        self.db_url = db_url or settings.QUEUE_DATABASE_URL
        self.db_path = self.db_url.replace("sqlite:///", "")
        self.queue_name = queue_name
        self.visibility_timeout = visibility_timeout
        self.max_attempts = max_attempts

        # Autocommit mode; claims open their own IMMEDIATE transaction
        self.conn = sqlite3.connect(self.db_path, timeout=30, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.executescript(CREATE_JOBS_SQL)
        logger.debug(f"Job queue '{queue_name}' ready at {self.db_path}")

    def close(self) -> None:
        if self.conn:
            self.conn.close()
            self.conn = None

    def enqueue(self, kind: JobKind, payload: Dict[str, Any], priority: Optional[int] = None) -> int:
        kind = JobKind(kind)
        if priority is None:
            priority = PRIORITY_BY_KIND[kind]

        cursor = self.conn.execute(
            """
            INSERT INTO jobs (queue, kind, payload, priority, status, max_attempts, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                self.queue_name,
                kind.value,
                json.dumps(payload),
                priority,
                JobStatus.QUEUED.value,
                self.max_attempts,
                datetime.now().isoformat(),
            ),
        )
        logger.info(f"Enqueued {kind.value} job {cursor.lastrowid} (priority {priority})")
        return cursor.lastrowid

    def claim(self) -> Optional[QueuedJob]:
        now = datetime.now()
        stale_before = (now - timedelta(seconds=self.visibility_timeout)).isoformat()

        self.conn.execute("BEGIN IMMEDIATE")
        try:
            self._recover_stale(now, stale_before)

            row = self.conn.execute(
                """
                SELECT * FROM jobs
                WHERE queue = ? AND status = ?
                ORDER BY priority ASC, id ASC
                LIMIT 1
                """,
                (self.queue_name, JobStatus.QUEUED.value),
            ).fetchone()

            if row is None:
                self.conn.execute("COMMIT")
                return None

            self.conn.execute(
                "UPDATE jobs SET status = ?, attempts = attempts + 1, started_at = ? WHERE id = ?",
                (JobStatus.RUNNING.value, now.isoformat(), row["id"]),
            )
            self.conn.execute("COMMIT")
        except Exception:
            self.conn.execute("ROLLBACK")
            raise

        return QueuedJob(
            id=row["id"],
            kind=JobKind(row["kind"]),
            payload=json.loads(row["payload"]),
            attempts=row["attempts"] + 1,
        )

    def _recover_stale(self, now: datetime, stale_before: str) -> None:
        """Fail or requeue running jobs whose worker stopped sending heartbeats.

        Must run inside the claim transaction.
        """
        stale = "queue = ? AND status = ? AND COALESCE(heartbeat_at, started_at) < ?"
        params = (self.queue_name, JobStatus.RUNNING.value, stale_before)

        failed = self.conn.execute(
            f"UPDATE jobs SET status = ?, finished_at = ?, error = ? WHERE {stale} AND attempts >= max_attempts",
            (JobStatus.FAILED.value, now.isoformat(), "Worker stopped responding", *params),
        ).rowcount
        if failed:
            logger.warning(f"Failed {failed} abandoned jobs with no attempts left")

        requeued = self.conn.execute(
            f"UPDATE jobs SET status = ?, started_at = NULL, heartbeat_at = NULL WHERE {stale}",
            (JobStatus.QUEUED.value, *params),
        ).rowcount
        if requeued:
            logger.warning(f"Requeued {requeued} abandoned running jobs")

    def touch(self, job_id: int) -> None:
        self.conn.execute(
            "UPDATE jobs SET heartbeat_at = ? WHERE id = ? AND status = ?",
            (datetime.now().isoformat(), job_id, JobStatus.RUNNING.value),
        )

    def complete(self, job_id: int) -> None:
        self.conn.execute(
            "UPDATE jobs SET status = ?, finished_at = ?, error = NULL WHERE id = ?",
            (JobStatus.COMPLETED.value, datetime.now().isoformat(), job_id),
        )

    def fail(self, job_id: int, error: str) -> None:
        """Mark a job failed, or put it back in the queue while attempts remain."""
        row = self.conn.execute("SELECT attempts, max_attempts FROM jobs WHERE id = ?", (job_id,)).fetchone()
        if row is not None and row["attempts"] < row["max_attempts"]:
            self.conn.execute(
                "UPDATE jobs SET status = ?, started_at = NULL, heartbeat_at = NULL, error = ? WHERE id = ?",
                (JobStatus.QUEUED.value, error, job_id),
            )
            logger.info(f"Job {job_id} failed (attempt {row['attempts']}/{row['max_attempts']}); requeued")
            return

        self.conn.execute(
            "UPDATE jobs SET status = ?, finished_at = ?, error = ? WHERE id = ?",
            (JobStatus.FAILED.value, datetime.now().isoformat(), error, job_id),
        )

    def get_job(self, job_id: int) -> Optional[Dict[str, Any]]:
        row = self.conn.execute("SELECT * FROM jobs WHERE id = ?", (job_id,)).fetchone()
        if row is None:
            return None
        job = dict(row)
        job["payload"] = json.loads(job["payload"])
        return job

    def counts(self) -> Dict[str, int]:
        """Number of jobs per status."""
        cursor = self.conn.execute(
            "SELECT status, COUNT(*) AS n FROM jobs WHERE queue = ? GROUP BY status",
            (self.queue_name,),
        )
        return {row["status"]: row["n"] for row in cursor.fetchall()}


def enqueue_general_crawl(queue: JobQueue, site: SiteRecord, options: Optional[Dict[str, Any]] = None) -> int:
    job = CrawlJob(site_id=site.id, root_url=site.root_url, kind=JobKind.GENERAL_CRAWL, options=options or {})
    return queue.enqueue(JobKind.GENERAL_CRAWL, job.to_payload())


def enqueue_deep_analysis(queue: JobQueue, site: SiteRecord) -> tuple[int, int]:
    """Enqueue a fresh general crawl followed by a deep analysis of the site.

    Returns:
        (general crawl job id, deep analysis job id)
    """
    crawl_id = enqueue_general_crawl(queue, site)
    job = CrawlJob(site_id=site.id, root_url=site.root_url, kind=JobKind.DEEP_ANALYSIS)
    deep_id = queue.enqueue(JobKind.DEEP_ANALYSIS, job.to_payload())
    return crawl_id, deep_id


class JobWorker:
    """Pulls jobs from a queue and hands them to a job runner, one at a time."""

    def __init__(
        self,
        queue: JobQueue,
        runner,
        poll_interval: float = DEFAULT_POLL_INTERVAL_SECONDS,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL_SECONDS,
    ):
        self.queue = queue
        self.runner = runner
        self.poll_interval = poll_interval
        self.heartbeat_interval = heartbeat_interval
        self._stopped = False

    def stop(self) -> None:
        self._stopped = True

    async def _heartbeat(self, job_id: int) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                self.queue.touch(job_id)
            except sqlite3.Error as e:
                logger.warning(f"Heartbeat for job {job_id} failed: {e}")

    async def run_once(self) -> bool:
        """Process at most one job; return False if the queue was empty.

        While the job runs, its heartbeat is refreshed every heartbeat_interval
        so other workers do not reclaim it.
        """
        queued = self.queue.claim()
        if queued is None:
            return False

        logger.info(f"Processing {queued.kind.value} job {queued.id} (attempt {queued.attempts})")
        heartbeat = asyncio.create_task(self._heartbeat(queued.id))
        try:
            await self.runner.run(queued.to_crawl_job())
        except asyncio.CancelledError:
            logger.warning(f"Job {queued.id} cancelled")
            self.queue.fail(queued.id, "Cancelled while running")
            raise
        except Exception as e:
            logger.error(f"Job {queued.id} failed: {e}")
            self.queue.fail(queued.id, str(e))
        else:
            self.queue.complete(queued.id)
            logger.info(f"Job {queued.id} completed")
        finally:
            heartbeat.cancel()
        return True

    async def run(self, stop_when_empty: bool = False) -> int:
        """Poll the queue until stopped.

        Args:
            stop_when_empty: Return as soon as the queue has no claimable job

        Returns:
            Number of jobs processed
        """
        processed = 0
        while not self._stopped:
            if await self.run_once():
                processed += 1
                continue
            if stop_when_empty:
                break
            await asyncio.sleep(self.poll_interval)
        return processed

"""Tests for the SQLite job queue and worker loop."""

import asyncio

import pytest

from seocrawler.job_queue import JobWorker, SqliteJobQueue, enqueue_deep_analysis, enqueue_general_crawl
from seocrawler.models import CrawlJob, JobKind, JobStatus, SiteRecord


@pytest.fixture
def queue(tmp_path):
    q = SqliteJobQueue(db_url=f"sqlite:///{tmp_path / 'queue.db'}")
    yield q
    q.close()


@pytest.fixture
def site():
    return SiteRecord(id=7, domain="example.com", root_url="https://example.com/")


class RecordingRunner:
    def __init__(self, fail_kinds=()):
        self.jobs = []
        self.fail_kinds = set(fail_kinds)

    async def run(self, job: CrawlJob):
        self.jobs.append(job)
        if job.kind in self.fail_kinds:
            raise RuntimeError(f"{job.kind.value} exploded")
        return None


class TestSqliteJobQueue:
    """Test cases for SqliteJobQueue."""

    def test_enqueue_and_claim(self, queue, site):
        job_id = enqueue_general_crawl(queue, site, {"page_budget": 25})

        claimed = queue.claim()

        assert claimed.id == job_id
        assert claimed.kind == JobKind.GENERAL_CRAWL
        assert claimed.attempts == 1
        crawl_job = claimed.to_crawl_job()
        assert crawl_job.site_id == 7
        assert crawl_job.options == {"page_budget": 25}
        assert queue.get_job(job_id)["status"] == JobStatus.RUNNING.value

    def test_claim_empty_queue(self, queue):
        assert queue.claim() is None

    def test_general_crawl_before_deep_analysis(self, queue, site):
        """General crawls outrank deep analysis regardless of enqueue order."""
        deep_id = queue.enqueue(JobKind.DEEP_ANALYSIS, CrawlJob(7, site.root_url, JobKind.DEEP_ANALYSIS).to_payload())
        crawl_id = enqueue_general_crawl(queue, site)

        assert queue.claim().id == crawl_id
        assert queue.claim().id == deep_id

    def test_enqueue_deep_analysis_adds_fresh_crawl(self, queue, site):
        crawl_id, deep_id = enqueue_deep_analysis(queue, site)

        assert queue.get_job(crawl_id)["kind"] == JobKind.GENERAL_CRAWL.value
        assert queue.get_job(deep_id)["kind"] == JobKind.DEEP_ANALYSIS.value
        assert queue.counts() == {JobStatus.QUEUED.value: 2}

    def test_claimed_job_not_claimed_twice(self, queue, site):
        enqueue_general_crawl(queue, site)
        queue.claim()

        assert queue.claim() is None

    def test_fail_without_retries(self, queue, site):
        job_id = enqueue_general_crawl(queue, site)
        queue.claim()

        queue.fail(job_id, "browser crashed")

        job = queue.get_job(job_id)
        assert job["status"] == JobStatus.FAILED.value
        assert job["error"] == "browser crashed"

    def test_fail_requeues_while_attempts_remain(self, tmp_path, site):
        queue = SqliteJobQueue(db_url=f"sqlite:///{tmp_path / 'retry.db'}", max_attempts=2)
        job_id = enqueue_general_crawl(queue, site)

        queue.claim()
        queue.fail(job_id, "timeout")
        retried = queue.claim()
        queue.fail(job_id, "timeout again")

        assert retried.attempts == 2
        assert queue.get_job(job_id)["status"] == JobStatus.FAILED.value
        queue.close()

    def test_stale_running_job_requeued(self, tmp_path, site):
        queue = SqliteJobQueue(db_url=f"sqlite:///{tmp_path / 'stale.db'}", max_attempts=2)
        job_id = enqueue_general_crawl(queue, site)
        queue.claim()
        queue.conn.execute(
            "UPDATE jobs SET started_at = ? WHERE id = ?", ("2000-01-01T00:00:00", job_id)
        )

        reclaimed = queue.claim()

        assert reclaimed.id == job_id
        assert reclaimed.attempts == 2
        queue.close()

    def test_stale_job_without_attempts_left_fails(self, tmp_path, site):
        """An abandoned job is never handed to a second worker past max_attempts."""
        db_url = f"sqlite:///{tmp_path / 'abandoned.db'}"
        first = SqliteJobQueue(db_url=db_url, visibility_timeout=0)
        second = SqliteJobQueue(db_url=db_url, visibility_timeout=0)
        job_id = enqueue_general_crawl(first, site)
        first.claim()

        assert second.claim() is None
        job = second.get_job(job_id)
        assert job["status"] == JobStatus.FAILED.value
        assert job["attempts"] == 1
        first.close()
        second.close()

    def test_heartbeat_keeps_job_claimed(self, tmp_path, site):
        db_url = f"sqlite:///{tmp_path / 'heartbeat.db'}"
        first = SqliteJobQueue(db_url=db_url, max_attempts=2)
        second = SqliteJobQueue(db_url=db_url, max_attempts=2, visibility_timeout=60)
        job_id = enqueue_general_crawl(first, site)
        first.claim()
        first.conn.execute(
            "UPDATE jobs SET started_at = ? WHERE id = ?", ("2000-01-01T00:00:00", job_id)
        )

        first.touch(job_id)

        assert second.claim() is None
        assert second.get_job(job_id)["status"] == JobStatus.RUNNING.value
        first.close()
        second.close()

    def test_queues_are_isolated(self, tmp_path, site):
        db_url = f"sqlite:///{tmp_path / 'shared.db'}"
        first = SqliteJobQueue(db_url=db_url, queue_name="first")
        second = SqliteJobQueue(db_url=db_url, queue_name="second")
        enqueue_general_crawl(first, site)

        assert second.claim() is None
        assert first.claim() is not None
        first.close()
        second.close()


class TestJobWorker:
    """Test cases for JobWorker."""

    @pytest.mark.asyncio
    async def test_run_until_empty(self, queue, site):
        runner = RecordingRunner()
        enqueue_deep_analysis(queue, site)

        processed = await JobWorker(queue, runner, poll_interval=0).run(stop_when_empty=True)

        assert processed == 2
        assert [j.kind for j in runner.jobs] == [JobKind.GENERAL_CRAWL, JobKind.DEEP_ANALYSIS]
        assert queue.counts() == {JobStatus.COMPLETED.value: 2}

    @pytest.mark.asyncio
    async def test_failed_job_does_not_stop_worker(self, queue, site):
        runner = RecordingRunner(fail_kinds={JobKind.GENERAL_CRAWL})
        crawl_id, deep_id = enqueue_deep_analysis(queue, site)

        await JobWorker(queue, runner, poll_interval=0).run(stop_when_empty=True)

        assert queue.get_job(crawl_id)["status"] == JobStatus.FAILED.value
        assert "exploded" in queue.get_job(crawl_id)["error"]
        assert queue.get_job(deep_id)["status"] == JobStatus.COMPLETED.value

    @pytest.mark.asyncio
    async def test_long_job_is_not_reclaimed_while_running(self, tmp_path, site):
        """Heartbeats outlive the visibility timeout of a slow crawl."""
        db_url = f"sqlite:///{tmp_path / 'long.db'}"
        worker_queue = SqliteJobQueue(db_url=db_url, visibility_timeout=0.2, max_attempts=2)
        other_queue = SqliteJobQueue(db_url=db_url, visibility_timeout=0.2, max_attempts=2)
        job_id = enqueue_general_crawl(worker_queue, site)
        stolen = []

        class SlowRunner:
            async def run(self, job):
                for _ in range(6):
                    await asyncio.sleep(0.1)
                    stolen.append(other_queue.claim())

        worker = JobWorker(worker_queue, SlowRunner(), poll_interval=0, heartbeat_interval=0.02)
        await worker.run_once()

        assert stolen == [None] * 6
        assert worker_queue.get_job(job_id)["status"] == JobStatus.COMPLETED.value
        assert worker_queue.get_job(job_id)["attempts"] == 1
        worker_queue.close()
        other_queue.close()

    @pytest.mark.asyncio
    async def test_cancelled_job_is_failed(self, queue, site):
        class HangingRunner:
            async def run(self, job):
                await asyncio.sleep(30)

        job_id = enqueue_general_crawl(queue, site)
        task = asyncio.create_task(JobWorker(queue, HangingRunner()).run_once())
        await asyncio.sleep(0.05)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task

        assert queue.get_job(job_id)["status"] == JobStatus.FAILED.value

    @pytest.mark.asyncio
    async def test_run_once_on_empty_queue(self, queue):
        assert await JobWorker(queue, RecordingRunner()).run_once() is False

    @pytest.mark.asyncio
    async def test_stopped_worker_processes_nothing(self, queue, site):
        enqueue_general_crawl(queue, site)
        worker = JobWorker(queue, RecordingRunner())
        worker.stop()

        assert await worker.run() == 0

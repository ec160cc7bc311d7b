"""Command-line interface for the site crawler."""

import asyncio
import json
import os
import sys

from seocrawler.config import settings
from seocrawler.job_queue import JobWorker, SqliteJobQueue, enqueue_deep_analysis, enqueue_general_crawl
from seocrawler.logging_config import setup_logging
from seocrawler.models import CrawlJob, JobKind
from seocrawler.orchestrator import JobRunner
from seocrawler.storage import SiteNotFoundError, SqliteStorage
from seocrawler.url_utils import normalize_url, site_host


def _register_site(storage: SqliteStorage, target: str):
    """Register a site from a domain or URL argument."""
    url = target if target.startswith(("http://", "https://")) else f"https://{target}"
    url = normalize_url(url)
    return storage.create_site(site_host(url), url)


def print_report(domain: str, report):
    if report is None:
        print(f"\n❌ No report found for {domain}")
        return

    print(f"\n{'=' * 60}")
    print(f"SEO Report for: {domain}")
    print(f"{'=' * 60}")
    print(f"\n📊 Overall Score: {report.overall_score}/100 ({report.pages_analyzed} pages)")

    if report.technical_issues:
        print(f"\n🔧 Technical Issues:")
        for issue in report.technical_issues:
            print(f"  • {issue}")

    if report.content_issues:
        print(f"\n📝 Content Issues:")
        for issue in report.content_issues:
            print(f"  • {issue}")

    if report.recommendations:
        print(f"\n💡 Recommendations:")
        for rec in report.recommendations:
            print(f"  • {rec.title}: {rec.description}")

    print(f"\n{'=' * 60}\n")


def _output(args, domain: str, report):
    if args.output == "json":
        print(json.dumps(report.to_dict() if report else None, indent=2))
    else:
        print_report(domain, report)


def crawl_command(args):
    """Register a site and run a general crawl in this process."""
    storage = SqliteStorage()
    site = _register_site(storage, args.target)

    options = {}
    if args.max_pages is not None:
        options["page_budget"] = args.max_pages
    if args.concurrency is not None:
        options["concurrency"] = args.concurrency

    runner = JobRunner(storage)
    job = CrawlJob(site_id=site.id, root_url=site.root_url, kind=JobKind.GENERAL_CRAWL, options=options)
    try:
        report = asyncio.run(runner.run(job))
    except Exception as e:
        print(f"\n❌ Crawl failed for {site.domain}: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        storage.close()

    _output(args, site.domain, report)


def enqueue_command(args):
    storage = SqliteStorage()
    queue = SqliteJobQueue()
    try:
        site = _register_site(storage, args.target)
        if args.deep:
            crawl_id, deep_id = enqueue_deep_analysis(queue, site)
            print(f"Enqueued general-crawl job {crawl_id} and deep-analysis job {deep_id} for {site.domain}")
        else:
            job_id = enqueue_general_crawl(queue, site)
            print(f"Enqueued general-crawl job {job_id} for {site.domain}")
    finally:
        queue.close()
        storage.close()


def worker_command(args):
    storage = SqliteStorage()
    queue = SqliteJobQueue()
    worker = JobWorker(queue, JobRunner(storage), poll_interval=args.poll_interval)
    try:
        processed = asyncio.run(worker.run(stop_when_empty=args.once))
        print(f"Processed {processed} jobs")
    except KeyboardInterrupt:
        worker.stop()
        print("\nWorker stopped")
    finally:
        queue.close()
        storage.close()


def report_command(args):
    storage = SqliteStorage()
    try:
        domain = site_host(normalize_url(
            args.target if args.target.startswith(("http://", "https://")) else f"https://{args.target}"
        ))
        site = storage.find_site_by_domain(domain)
        if site is None:
            raise SiteNotFoundError(domain)
        _output(args, site.domain, storage.get_latest_report(site.id))
    except SiteNotFoundError:
        print(f"\n❌ Unknown site: {args.target}", file=sys.stderr)
        sys.exit(1)
    finally:
        storage.close()


def main():
    """Main CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(
        description="SEO Crawler - Recursively crawl sites and score their pages"
    )

    # Global flags (before subcommands)
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=settings.LOG_LEVEL.upper(),
        help="Set logging verbosity (default: LOG_LEVEL or INFO)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to file in addition to console",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    crawl_parser = subparsers.add_parser(
        "crawl", help="Crawl a site now and print its report."
    )
    crawl_parser.add_argument("target", help="Domain or root URL (e.g., example.com)")
    crawl_parser.add_argument(
        "--max-pages",
        type=int,
        help="Page budget for the crawl (default: SEO_CRAWL_PAGE_BUDGET or 1000)",
    )
    crawl_parser.add_argument(
        "--concurrency",
        type=int,
        help="Concurrent page extractions (default: SEO_CRAWL_CONCURRENCY or 5)",
    )
    crawl_parser.add_argument(
        "--output",
        "-o",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    crawl_parser.set_defaults(func=crawl_command)

    enqueue_parser = subparsers.add_parser(
        "enqueue", help="Queue a crawl for a worker to pick up."
    )
    enqueue_parser.add_argument("target", help="Domain or root URL")
    enqueue_parser.add_argument(
        "--deep",
        action="store_true",
        help="Queue a general crawl followed by a deep analysis",
    )
    enqueue_parser.set_defaults(func=enqueue_command)

    worker_parser = subparsers.add_parser(
        "worker", help="Process queued jobs."
    )
    worker_parser.add_argument(
        "--once",
        action="store_true",
        help="Exit when the queue is empty instead of polling",
    )
    worker_parser.add_argument(
        "--poll-interval",
        type=float,
        default=2.0,
        help="Seconds between polls of an empty queue (default: 2.0)",
    )
    worker_parser.set_defaults(func=worker_command)

    report_parser = subparsers.add_parser(
        "report", help="Show the latest report of a site."
    )
    report_parser.add_argument("target", help="Domain or root URL")
    report_parser.add_argument(
        "--output",
        "-o",
        choices=["text", "json"],
        default="text",
        help="Output format (default: text)",
    )
    report_parser.set_defaults(func=report_command)

    args = parser.parse_args()

    setup_logging(
        level=args.log_level,
        log_file=getattr(args, 'log_file', None),
        worker_name=f"worker-{os.getpid()}" if args.command == "worker" else None,
    )

    if hasattr(args, "func"):
        args.func(args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()

"""
Crypto Complaints Pipeline

CLI entry point for fetching, classifying and categorizing complaints.
"""

import argparse
import logging
import sys
from datetime import datetime

from crypto_complaints.agents.ingestion import FetchError
from crypto_complaints.orchestrator import EmptyDatasetError, PipelineOrchestrator
import config.settings as settings


def setup_logging(log_level: str = "INFO"):
    """Configure logging for the entire application."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format=settings.LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(settings.LOG_FILE)
        ]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Crypto complaints pipeline - CFPB fetch, classification and categorization",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Incrementally refresh the complaint store
  python main.py fetch

  # Classify new narratives with Gemini (needs GOOGLE_API_KEY)
  python main.py classify

  # Category breakdown as of a given date, exported to CSV
  python main.py categorize --as-of 2024-07-01

  # Dataset statistics for one company
  python main.py stats --company "Coinbase, Inc."
        """
    )

    parser.add_argument(
        "--data-file",
        default=str(settings.COMPLAINTS_FILE),
        help=f"Record store JSON (default: {settings.COMPLAINTS_FILE})"
    )

    parser.add_argument(
        "--cache-file",
        default=str(settings.CLASSIFICATIONS_FILE),
        help=f"Classification cache JSON (default: {settings.CLASSIFICATIONS_FILE})"
    )

    parser.add_argument(
        "--data-root",
        default=str(settings.DATA_ROOT),
        help=f"Data directory for run reports (default: {settings.DATA_ROOT})"
    )

    parser.add_argument(
        "--log-level",
        default=settings.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {settings.LOG_LEVEL})"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("fetch", help="Fetch new complaints and merge them into the store")
    subparsers.add_parser("classify", help="Classify unclassified narratives into the cache")

    categorize = subparsers.add_parser("categorize", help="Print and export the category breakdown")
    categorize.add_argument(
        "--as-of",
        help="Reference date for 30-day trends (YYYY-MM-DD, default: today)"
    )
    categorize.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore the classification cache and use keyword scoring only"
    )
    categorize.add_argument(
        "--output-dir",
        default=str(settings.OUTPUT_ROOT),
        help=f"Directory for the CSV export (default: {settings.OUTPUT_ROOT})"
    )

    stats = subparsers.add_parser("stats", help="Print dataset statistics and the last fetch run")
    stats.add_argument("--company", help="Only complaints against this company")
    stats.add_argument("--issue", help="Only complaints with this issue")
    stats.add_argument(
        "--as-of",
        help="End of the trailing 30-day metrics window (YYYY-MM-DD, default: today)"
    )
    stats.add_argument(
        "--top",
        type=int,
        default=10,
        help="Length of ranked lists (default: 10)"
    )

    return parser


def run_fetch(orchestrator: PipelineOrchestrator) -> None:
    report = orchestrator.fetch()

    print()
    print("=" * 60)
    print("✅ Fetch complete")
    print("=" * 60)
    print(f"Total complaints: {report['total']}")
    print(f"New complaints added: {report['added']}")
    print(f"Dropped (not crypto-relevant): {report['dropped']}")
    print(f"File size: {report['file_size_mb']:.2f} MB")
    print(f"Elapsed time: {report['elapsed_seconds']}s")
    print("=" * 60)


def run_classify(orchestrator: PipelineOrchestrator, logger: logging.Logger) -> None:
    if not settings.GOOGLE_API_KEY:
        logger.error(
            "GOOGLE_API_KEY environment variable not set. "
            "Please set it before running the classifier."
        )
        sys.exit(1)

    classified = orchestrator.classify(settings.GOOGLE_API_KEY)
    print(f"\n✅ {classified} new classifications")


def run_categorize(orchestrator: PipelineOrchestrator, args: argparse.Namespace) -> None:
    as_of = datetime.strptime(args.as_of, "%Y-%m-%d").date() if args.as_of else None

    breakdown = orchestrator.categorize(
        as_of=as_of,
        use_cache=not args.no_cache,
        output_dir=args.output_dir
    )

    print()
    print("=" * 60)
    print(f"Issue categories ({breakdown.total_eligible} narratives, as of {breakdown.as_of})")
    print("=" * 60)
    for stats in breakdown.ranked():
        print(
            f"{stats.category.label:<22} {stats.count:>6}  {stats.percentage:>3}%  "
            f"{stats.trend.direction} {stats.trend.percent}%"
        )
    print("=" * 60)


def run_stats(orchestrator: PipelineOrchestrator, args: argparse.Namespace) -> None:
    as_of = datetime.strptime(args.as_of, "%Y-%m-%d").date() if args.as_of else None

    stats = orchestrator.stats(company=args.company, issue=args.issue, as_of=as_of, top=args.top)
    recent = stats["recent"]

    print()
    print("=" * 60)
    print(f"Complaint statistics (as of {stats['as_of']})")
    print("=" * 60)
    print(f"Total complaints: {stats['total']} ({stats['narratives']} with narratives)")
    print(f"Companies: {len(stats['companies'])}, issues: {len(stats['issues'])}")
    print(
        f"Last 30 days: {recent['total']} complaints, {recent['timely_rate']}% timely, "
        f"trend {recent['trend']} {recent['trend_percent']}%, top issue: {recent['top_issue']}"
    )
    print(f"Fraud rate: {stats['fraud_rate']}%")

    print("\nBy month:")
    for row in stats["by_month"]:
        print(f"  {row['label']:<10} {row['count']:>6}")

    print("\nRecent weeks:")
    for row in stats["weekly"]:
        print(f"  {row['week']}  {row['count']:>6}")

    print("\nTop issues:")
    for row in stats["by_issue"]:
        print(f"  {row['count']:>6}  {row['issue']}")

    print("\nCompanies:")
    for row in stats["by_company"]:
        print(
            f"  {row['company']:<34} {row['total']:>6}  timely {row['timely_rate']}%  "
            f"disputed {row['dispute_rate']}%  relief {row['relief_rate']}%"
        )

    print("\nFraud by company:")
    for row in stats["fraud_by_company"]:
        print(f"  {row['company']:<34} {row['fraud_count']:>5}/{row['total']:<5} {row['fraud_rate']}%")

    print("\nTop keywords: " + ", ".join(f"{k['text']} ({k['value']})" for k in stats["keywords"]))
    print("Top phrases: " + ", ".join(f"{p['text']} ({p['value']})" for p in stats["phrases"]))

    last_run = stats["last_run"]
    if last_run:
        print(
            f"\nLast fetch: {last_run.get('run_at')} - {last_run.get('added')} added, "
            f"{last_run.get('total')} total"
        )
    print("=" * 60)


def main():
    """Main CLI entry point."""
    args = build_parser().parse_args()

    setup_logging(args.log_level)
    logger = logging.getLogger(__name__)

    try:
        orchestrator = PipelineOrchestrator(
            store_path=args.data_file,
            cache_path=args.cache_file,
            data_root=args.data_root
        )

        if args.command == "fetch":
            run_fetch(orchestrator)
        elif args.command == "classify":
            run_classify(orchestrator, logger)
        elif args.command == "categorize":
            run_categorize(orchestrator, args)
        else:
            run_stats(orchestrator, args)

        sys.exit(0)

    except FetchError as e:
        logger.error(
            f"Fetch failed, store left untouched ({len(e.partial_records)} complaints retrieved before failure): {e}"
        )
        print(f"\n❌ Fetch failed: {e}")
        sys.exit(1)

    except EmptyDatasetError as e:
        logger.error(f"Aborting to preserve existing data: {e}")
        print(f"\n❌ {e}")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.warning("Pipeline interrupted by user")
        print("\n⚠️  Pipeline interrupted")
        sys.exit(1)

    except Exception as e:
        logger.error(f"Pipeline failed: {e}", exc_info=True)
        print(f"\n❌ Pipeline failed: {e}")
        print(f"Check {settings.LOG_FILE} for details")
        sys.exit(1)


if __name__ == "__main__":
    main()

"""
Command-line interface for the retail conformance pipeline.

Usage:
    retail-conform run --input-dir <landing_dir> --batch-id <id> [options]
    retail-conform init-schema [options]
    retail-conform report --name <report> [options]
"""

import argparse
import json
import sys
from pathlib import Path

from pyspark.sql import SparkSession

from retail_conform.batch.pipeline import BatchPipeline, PipelineResult
from retail_conform.batch.readers import RawBatchReader
from retail_conform.core.errors import ConformanceError
from retail_conform.core.rules import RuleConfigLoader, RuleSet
from retail_conform.observability.logger import get_logger
from retail_conform.reporting import REPORT_NAMES, build_report
from retail_conform.settings import PipelineSettings
from retail_conform.warehouse.connection import DatabaseConnectionPool, close_pool, initialize_pool
from retail_conform.warehouse.schema_mgmt import SchemaManager
from retail_conform.warehouse.table_store import InMemoryTableStore, PostgresTableStore

logger = get_logger(__name__)


def create_spark_session(app_name: str = "RetailConform") -> SparkSession:
    """
    Create a local Spark session for reading landing files.

    Args:
        app_name: Application name

    Returns:
        SparkSession
    """
    spark = SparkSession.builder \
        .appName(app_name) \
        .master("local[*]") \
        .config("spark.sql.adaptive.enabled", "true") \
        .config("spark.sql.session.timeZone", "UTC") \
        .getOrCreate()

    return spark


def discover_landing_files(input_dir: str | Path, rule_set: RuleSet) -> dict[str, Path]:
    """
    Map each declared dataset to its landing file in ``input_dir``.

    A dataset's landing file is its configured ``source_file``, or
    ``<dataset>.csv`` when none is configured. Datasets without a file are
    skipped with a warning.

    Args:
        input_dir: Landing directory
        rule_set: Conformance rules declaring the datasets

    Returns:
        Dictionary of dataset name -> file path, sorted by dataset
    """
    directory = Path(input_dir)
    found: dict[str, Path] = {}
    for dataset in sorted(rule_set.datasets):
        rules = rule_set.datasets[dataset]
        path = directory / (rules.source_file or f"{dataset}.csv")
        if path.is_file():
            found[dataset] = path
        else:
            logger.warning(f"No landing file for {dataset}: {path} not found")
    return found


def format_summary(result: PipelineResult) -> list[str]:
    """Render a pipeline result as report lines."""
    lines = ["=" * 60, "CONFORMANCE COMPLETE", "=" * 60]
    for dataset, summary in result.conformance.items():
        lines.append(
            f"{dataset}: {summary.total_records} records, "
            f"{summary.current_records} current, "
            f"{summary.superseded_records} superseded, "
            f"{summary.unkeyed_records} unkeyed"
        )
        for flag, count in summary.flag_counts.items():
            lines.append(f"    {flag}: {count}")
    for dimension, count in result.dimension_rows.items():
        lines.append(f"{dimension}: {count} rows")
    for fact_table, count in result.fact_rows.items():
        lines.append(f"{fact_table}: {count} rows")
    lines.append(f"Quarantined fact candidates: {result.quarantined_facts}")
    lines.append("=" * 60)
    return lines


def _create_pool(args) -> DatabaseConnectionPool:
    return initialize_pool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )


def _load_rules(args) -> tuple[PipelineSettings, RuleSet]:
    settings = PipelineSettings.from_env()
    rules_path = args.rules or settings.rules_path
    return settings, RuleConfigLoader(rules_path).load()


def run_command(args) -> int:
    """
    Conform all landing files in a directory and rebuild the warehouse.

    Args:
        args: Command-line arguments

    Returns:
        Process exit code
    """
    settings, rule_set = _load_rules(args)

    landing_files = discover_landing_files(args.input_dir, rule_set)
    if not landing_files:
        logger.error(f"No landing files found in {args.input_dir}")
        return 1

    logger.info(f"Starting batch {args.batch_id} with {len(landing_files)} landing files")

    logger.info("Creating Spark session...")
    spark = create_spark_session(f"RetailConform-{args.batch_id}")

    try:
        reader = RawBatchReader(spark)
        batches = [
            reader.read(path, dataset=dataset, batch_id=args.batch_id)
            for dataset, path in landing_files.items()
        ]

        if args.dry_run:
            logger.info("DRY RUN MODE: No data will be written to database")
            store = InMemoryTableStore()
        else:
            store = PostgresTableStore(_create_pool(args))

        result = BatchPipeline(store, rule_set=rule_set, settings=settings).run(batches)

        for line in format_summary(result):
            print(line)
        if args.dry_run:
            print("DRY RUN: No data was written to the database")
        return 0

    except (ConformanceError, ValueError) as e:
        logger.error(f"Batch {args.batch_id} failed: {e}", exc_info=True)
        return 1
    finally:
        close_pool()
        spark.stop()


def init_schema_command(args) -> int:
    """
    Create the clean, dimension, fact and quarantine tables.

    Args:
        args: Command-line arguments

    Returns:
        Process exit code
    """
    _, rule_set = _load_rules(args)

    try:
        count = SchemaManager(_create_pool(args)).create_schema(rule_set.datasets)
    except (ConformanceError, ValueError) as e:
        logger.error(f"Schema creation failed: {e}", exc_info=True)
        return 1
    finally:
        close_pool()

    print(f"Schema ready: {count} statements applied")
    return 0


def report_command(args) -> int:
    """
    Print an analytical report computed from the warehouse tables.

    Args:
        args: Command-line arguments

    Returns:
        Process exit code
    """
    _, rule_set = _load_rules(args)

    try:
        store = PostgresTableStore(_create_pool(args))
        report = build_report(store, args.name, datasets=sorted(rule_set.datasets))
    except (ConformanceError, ValueError) as e:
        logger.error(f"Report {args.name} failed: {e}", exc_info=True)
        return 1
    finally:
        close_pool()

    print(json.dumps(report, indent=2, default=str))
    return 0


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--rules",
        default=None,
        help="Path to conformance rules YAML (default: packaged rules or CONFORMANCE_RULES_PATH)"
    )
    parser.add_argument("--db-host", default=None, help="Database host (default: DB_HOST or localhost)")
    parser.add_argument("--db-port", type=int, default=None, help="Database port (default: DB_PORT or 5432)")
    parser.add_argument("--db-name", default=None, help="Database name (default: DB_NAME or retail_dw)")
    parser.add_argument("--db-user", default=None, help="Database user (default: DB_USER or conform)")
    parser.add_argument("--db-password", default=None, help="Database password (default: DB_PASSWORD)")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="retail-conform",
        description="Retail data conformance pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create the warehouse tables
  retail-conform init-schema

  # Conform every landing file in a directory
  retail-conform run --input-dir data/landing --batch-id 2024-06-01

  # Dry run (conform in memory, don't write)
  retail-conform run --input-dir data/landing --batch-id test --dry-run

  # Print the KPI overview
  retail-conform report --name kpi_overview
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser("run", help="Conform landing files and rebuild the warehouse")
    run_parser.add_argument("--input-dir", required=True, help="Directory holding the landing CSV files")
    run_parser.add_argument("--batch-id", required=True, help="Load batch identifier")
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Conform in memory without writing to database"
    )
    _add_common_arguments(run_parser)

    schema_parser = subparsers.add_parser("init-schema", help="Create warehouse tables")
    _add_common_arguments(schema_parser)

    report_parser = subparsers.add_parser("report", help="Print an analytical report as JSON")
    report_parser.add_argument("--name", required=True, choices=REPORT_NAMES, help="Report name")
    _add_common_arguments(report_parser)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    # Route to command handler
    if args.command == "run":
        exit_code = run_command(args)
    elif args.command == "init-schema":
        exit_code = init_schema_command(args)
    elif args.command == "report":
        exit_code = report_command(args)
    else:
        parser.print_help()
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()

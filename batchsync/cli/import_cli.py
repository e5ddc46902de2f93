"""
Command-line interface for batch imports.

Usage:
    python -m batchsync.cli.import_cli run --config <yaml> --import <name> --input <file_path> [options]
    python -m batchsync.cli.import_cli missing --config <yaml> --import <name> --batch-id <id>
"""

import argparse
import csv
import json
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from batchsync.core.config import ImportConfigLoader
from batchsync.core.errors import BatchImportError
from batchsync.importer import BatchImportFactory
from batchsync.observability.logger import get_logger
from batchsync.observability.metrics import start_metrics_server
from batchsync.utils.validation import validate_file_path
from batchsync.warehouse.connection import DatabaseConnectionPool
from batchsync.warehouse.queries import find_missing_after_batch


logger = get_logger(__name__)


def read_csv(path: Path, empty_as_null: bool = True) -> Iterator[dict[str, Any]]:
    """
    Read records from a CSV file with a header row, one at a time.

    Args:
        path: CSV file
        empty_as_null: Whether empty cells are imported as NULL

    Yields:
        One dictionary per row
    """
    with open(path, newline="", encoding="utf-8") as f:
        for row in csv.DictReader(f):
            if empty_as_null:
                row = {k: (None if v == "" else v) for k, v in row.items()}
            yield row


def read_json_lines(path: Path) -> Iterator[dict[str, Any]]:
    """
    Read records from a JSON lines file, one at a time.

    Raises:
        ValueError: If a line is not a JSON object
    """
    with open(path, encoding="utf-8") as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            record = json.loads(line)
            if not isinstance(record, dict):
                raise ValueError(f"Line {line_number} of {path} is not a JSON object")
            yield record


def create_pool(args) -> DatabaseConnectionPool:
    """Create and open the connection pool (unset arguments fall back to DB_* env vars)."""
    pool = DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )
    pool.open()
    return pool


def run_command(args):
    """
    Execute an import definition against an input file.

    Args:
        args: Command-line arguments
    """
    logger.info(f"Starting import '{args.import_name}'")
    logger.info(f"Input file: {args.input}")

    input_path = Path(validate_file_path(args.input, "input"))
    if not input_path.exists():
        logger.error(f"Input file not found: {args.input}")
        sys.exit(1)

    definition = ImportConfigLoader(args.config).get(args.import_name)

    if args.metrics_port:
        start_metrics_server(args.metrics_port)

    logger.info("Initializing database connection...")
    pool = create_pool(args)

    try:
        batch_import = definition.build(BatchImportFactory.from_pool(pool), pool)
        if args.batch_id is not None:
            batch_import.with_batch_id(args.batch_id, definition.batch_id_field)

        if args.format == "csv":
            records = read_csv(input_path, empty_as_null=not args.keep_empty)
        else:
            records = read_json_lines(input_path)

        prepared = batch_import.prepare()
        prepared.add_multiple(records)
        batch_id = prepared.flush()
        stats = prepared.stats

        logger.info("=" * 60)
        logger.info("IMPORT COMPLETE")
        logger.info("=" * 60)
        logger.info(f"Table: {definition.table}")
        logger.info(f"Batch id: {batch_id}")
        logger.info(f"Inserted: {stats.inserted}")
        logger.info(f"Updated: {stats.updated}")
        logger.info(f"Unchanged (batch id refreshed): {stats.touched}")
        logger.info(f"Unchanged: {stats.unchanged}")
        logger.info("=" * 60)

    except Exception as e:
        logger.error(f"Error during import: {e}", exc_info=True)
        sys.exit(1)
    finally:
        pool.close()


def missing_command(args):
    """
    List the rows not touched by a batch.

    Args:
        args: Command-line arguments
    """
    definition = ImportConfigLoader(args.config).get(args.import_name)

    pool = create_pool(args)

    try:
        rows = find_missing_after_batch(
            pool,
            definition.table_spec(pool),
            args.batch_id,
            args.batch_id_field or definition.batch_id_field,
        )
        for row in rows:
            print(json.dumps(row, default=str))
    except Exception as e:
        logger.error(f"Error querying missing rows: {e}", exc_info=True)
        sys.exit(1)
    finally:
        pool.close()


def add_database_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--db-host",
        default=None,
        help="Database host (default: DB_HOST or localhost)"
    )
    parser.add_argument(
        "--db-port",
        type=int,
        default=None,
        help="Database port (default: DB_PORT or 5432)"
    )
    parser.add_argument(
        "--db-name",
        default=None,
        help="Database name (default: DB_NAME or batchsync)"
    )
    parser.add_argument(
        "--db-user",
        default=None,
        help="Database user (default: DB_USER or batchsync)"
    )
    parser.add_argument(
        "--db-password",
        default=None,
        help="Database password (default: DB_PASSWORD)"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Batch insert-or-update imports with batch id tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Import a CSV file
  python -m batchsync.cli.import_cli run --config config/imports.yaml \\
      --import products --input data/products.csv

  # Import a JSON lines file with a fixed batch id
  python -m batchsync.cli.import_cli run --config config/imports.yaml \\
      --import products --input data/products.jsonl --format jsonl --batch-id 19

  # List rows not part of batch 20
  python -m batchsync.cli.import_cli missing --config config/imports.yaml \\
      --import products --batch-id 20
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Import a data file")
    run_parser.add_argument(
        "--config",
        required=True,
        help="Path to import definitions YAML file"
    )
    run_parser.add_argument(
        "--import",
        dest="import_name",
        required=True,
        help="Name of the import definition"
    )
    run_parser.add_argument(
        "--input",
        required=True,
        help="Path to input file"
    )
    run_parser.add_argument(
        "--format",
        default="csv",
        choices=["csv", "jsonl"],
        help="Input file format (default: csv)"
    )
    run_parser.add_argument(
        "--batch-id",
        default=None,
        help="Use this batch id instead of the configured source"
    )
    run_parser.add_argument(
        "--keep-empty",
        action="store_true",
        help="Import empty CSV cells as empty strings instead of NULL"
    )
    run_parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port"
    )
    add_database_arguments(run_parser)

    # Missing command
    missing_parser = subparsers.add_parser("missing", help="List rows not touched by a batch")
    missing_parser.add_argument(
        "--config",
        required=True,
        help="Path to import definitions YAML file"
    )
    missing_parser.add_argument(
        "--import",
        dest="import_name",
        required=True,
        help="Name of the import definition"
    )
    missing_parser.add_argument(
        "--batch-id",
        required=True,
        help="Batch id to compare against"
    )
    missing_parser.add_argument(
        "--batch-id-field",
        default=None,
        help="Batch id column (default: from import definition)"
    )
    add_database_arguments(missing_parser)

    return parser


def main(argv: list[str] | None = None):
    """Main CLI entry point."""
    load_dotenv()

    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        if args.command == "run":
            run_command(args)
        elif args.command == "missing":
            missing_command(args)
    except (BatchImportError, FileNotFoundError) as e:
        logger.error(str(e))
        sys.exit(2)


if __name__ == "__main__":
    main()

"""Cartledger management CLI.

Usage:
    python src/manage.py setup-db                      # Create all tables
    python src/manage.py drop-db                       # Drop all tables
    python src/manage.py export-pending                # Export pending orders to stdout
    python src/manage.py export-pending --output orders.csv --batch-size 100

``PROTEAN_ENV`` selects the ``domain.toml`` overlay.
"""

import argparse
import sys

from shared.config import load_settings
from shared.logging import configure_logging
from shared.store import Store


def setup_database(store: Store) -> None:
    print(f"Creating schema in {store.engine.url.render_as_string(hide_password=True)}...")
    store.create_schema()
    print("Done.")


def drop_database(store: Store) -> None:
    print(f"Dropping schema in {store.engine.url.render_as_string(hide_password=True)}...")
    store.drop_schema()
    print("Done.")


def export_pending(store: Store, output: str | None = None, batch_size: int | None = None) -> int:
    """Export and confirm pending orders; returns the number of rows written."""
    from fulfillment.export import FulfillmentExporter, write_csv

    rows = FulfillmentExporter(store).export_pending(batch_size=batch_size)
    if output:
        with open(output, "w", newline="", encoding="utf-8") as fh:
            count = write_csv(rows, fh)
        print(f"Wrote {count} rows to {output}", file=sys.stderr)
    else:
        count = write_csv(rows, sys.stdout)
    return count


def main(argv=None):
    parser = argparse.ArgumentParser(description="Cartledger management")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("setup-db", help="Create all database tables")
    subparsers.add_parser("drop-db", help="Drop all database tables")

    export_parser = subparsers.add_parser("export-pending", help="Export pending orders as CSV and confirm them")
    export_parser.add_argument("--output", help="CSV file to write (default: stdout)")
    export_parser.add_argument("--batch-size", type=int, help="Orders per transaction (default: all at once)")

    args = parser.parse_args(argv)

    settings = load_settings()
    # stdout is reserved for CSV output
    configure_logging(env=settings.env, log_dir=settings.log_dir, log_file_prefix="manage", stream=sys.stderr)
    store = Store(settings.database_uri)

    try:
        if args.command == "setup-db":
            setup_database(store)
        elif args.command == "drop-db":
            drop_database(store)
        elif args.command == "export-pending":
            export_pending(store, output=args.output, batch_size=args.batch_size)
        else:
            parser.print_help()
            sys.exit(1)
    finally:
        store.dispose()


if __name__ == "__main__":
    main()

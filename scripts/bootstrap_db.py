"""
Scripts - Bootstrap Database.

============================================================
RESPONSIBILITY
============================================================
Initializes the ledger database for first-time setup.

- Creates the ledger schema
- Seeds default VIP tiers
- Prints row counts per table

============================================================
USAGE
============================================================
python -m scripts.bootstrap_db

Options:
  --drop-existing    Drop existing tables (DANGEROUS, needs --yes)
  --seed-vip         Seed the default VIP tiers
  --validate-only    Only print row counts, don't create

EXIT CODES:
- 0: Success
- 1: Database connection failed
- 2: Table creation failed
- 3: Seeding failed

============================================================
"""

import argparse
import logging
import sys
from decimal import Decimal
from typing import Dict

from sqlalchemy import func, inspect, select

from core.config import DatabaseConfig
from core.exceptions import LedgerException, PersistenceError
from database.engine import (
    Base,
    create_all_tables,
    create_database_engine,
    create_session_factory,
    transaction_scope,
    verify_database_connection,
)
from database.models import VipTier
from copy_trading.vip import VipTierService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("bootstrap_db")


DEFAULT_VIP_TIERS = [
    # name, level, follower percentage
    ("VIP0", 0, Decimal("0")),
    ("VIP1", 1, Decimal("1")),
    ("VIP2", 2, Decimal("2")),
    ("VIP3", 3, Decimal("3")),
]


def seed_vip_tiers(session_factory) -> int:
    """Create missing default tiers. Returns the number created."""
    with transaction_scope(session_factory) as session:
        existing = set(session.execute(select(VipTier.name)).scalars())

    service = VipTierService(session_factory)
    created = 0
    for name, level, percentage in DEFAULT_VIP_TIERS:
        if name in existing:
            continue
        service.create_tier(name, level, percentage)
        created += 1
    return created


def table_counts(engine, session_factory) -> Dict[str, int]:
    present = set(inspect(engine).get_table_names())
    counts = {}
    with transaction_scope(session_factory) as session:
        for table in Base.metadata.sorted_tables:
            if table.name not in present:
                counts[table.name] = -1
                continue
            counts[table.name] = session.execute(select(func.count()).select_from(table)).scalar_one()
    return counts


def print_report(counts: Dict[str, int]) -> None:
    print("\n" + "=" * 60)
    print("LEDGER DATABASE")
    print("=" * 60)
    for table, count in counts.items():
        if count < 0:
            print(f"  ✗ {table:25s} : missing")
        else:
            print(f"  ✓ {table:25s} : {count:6d} rows")
    print("=" * 60)


def main() -> int:
    """Bootstrap database entry point."""
    parser = argparse.ArgumentParser(description="Initialize the ledger database")
    parser.add_argument("--database-url", default=None, help="Override DATABASE_URL")
    parser.add_argument("--drop-existing", action="store_true", help="Drop existing tables")
    parser.add_argument("--yes", action="store_true", help="Confirm destructive operations")
    parser.add_argument("--seed-vip", action="store_true", help="Seed default VIP tiers")
    parser.add_argument("--validate-only", action="store_true", help="Only print row counts")
    args = parser.parse_args()

    config = DatabaseConfig.from_env()
    engine = create_database_engine(args.database_url or config.url, echo=config.echo)
    session_factory = create_session_factory(engine)

    try:
        verify_database_connection(engine)
    except PersistenceError as e:
        logger.error(f"Database connection failed: {e.message}")
        return 1

    if args.validate_only:
        print_report(table_counts(engine, session_factory))
        return 0

    if args.drop_existing:
        if not args.yes:
            logger.error("--drop-existing deletes all ledger data, re-run with --yes to confirm")
            return 2
        logger.warning("Dropping all ledger tables")
        Base.metadata.drop_all(bind=engine)

    try:
        create_all_tables(engine)
    except PersistenceError as e:
        logger.error(f"Table creation failed: {e.message}")
        return 2

    if args.seed_vip:
        try:
            created = seed_vip_tiers(session_factory)
            logger.info(f"Seeded {created} VIP tiers")
        except LedgerException as e:
            logger.error(f"VIP tier seeding failed: {e.message}")
            return 3

    print_report(table_counts(engine, session_factory))
    return 0


if __name__ == "__main__":
    sys.exit(main())

"""
Scripts - Rebuild Trading Volume.

Runs the trading-volume projection once, outside the scheduler.
Useful after a manual balance correction.

Usage:
    python -m scripts.rebuild_trading_volume
    python -m scripts.rebuild_trading_volume --user u1 --user u2
"""

import argparse
import sys

from core.config import DatabaseConfig
from core.log_config import setup_logging
from database.engine import create_database_engine, create_session_factory
from accounts.trading_volume import VolumeProjection


def main() -> int:
    parser = argparse.ArgumentParser(description="Recompute trading-volume records")
    parser.add_argument("--user", action="append", dest="users", help="Limit to user id (repeatable)")
    parser.add_argument("--asset", default=None, help="Asset id (default: tracked asset)")
    args = parser.parse_args()

    logger = setup_logging()
    engine = create_database_engine(DatabaseConfig.from_env().url)
    session_factory = create_session_factory(engine)
    if args.asset:
        projection = VolumeProjection(session_factory, asset_id=args.asset)
    else:
        projection = VolumeProjection(session_factory)

    result = projection.run(user_ids=args.users)
    logger.info(
        f"Projection done: users={result.users_seen} written={result.records_written} "
        f"conflicts={result.conflicts}"
    )
    return 1 if result.conflicts else 0


if __name__ == "__main__":
    sys.exit(main())

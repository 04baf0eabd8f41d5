#!/usr/bin/env python
# ============================================================================
# SCHEMA DEPLOYMENT SCRIPT
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# PURPOSE: Deploy the modelcheck schema to PostgreSQL outside app startup
# USAGE:
#   python scripts/deploy_schema.py --dry-run    # Preview SQL
#   python scripts/deploy_schema.py              # Execute deployment
#   python scripts/deploy_schema.py --status     # Row counts per table
# ============================================================================

import argparse
import asyncio
import logging
import os
import sys

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from psycopg import sql

from repositories.database import (
    SCHEMA,
    TABLE_CHANNELS,
    TABLE_CHANNEL_KEYS,
    TABLE_MODELS,
    TABLE_CHECK_LOGS,
    TABLE_SCHEDULER_CONFIG,
    TABLE_PROBE_RUNS,
    TABLE_PROBE_JOBS,
    close_pool,
    init_pool,
)
from repositories.schema import deploy_schema, get_schema_statements

STATUS_TABLES = {
    "channels": TABLE_CHANNELS,
    "channel_keys": TABLE_CHANNEL_KEYS,
    "models": TABLE_MODELS,
    "check_logs": TABLE_CHECK_LOGS,
    "scheduler_config": TABLE_SCHEDULER_CONFIG,
    "probe_runs": TABLE_PROBE_RUNS,
    "probe_jobs": TABLE_PROBE_JOBS,
}


async def _deploy(connection: str) -> int:
    pool = await init_pool(min_size=1, max_size=2, connection_string=connection)
    try:
        return await deploy_schema(pool)
    finally:
        await close_pool()


async def _status(connection: str) -> dict:
    pool = await init_pool(min_size=1, max_size=2, connection_string=connection)
    counts = {}
    try:
        async with pool.connection() as conn:
            for name, table in STATUS_TABLES.items():
                try:
                    cur = await conn.execute(sql.SQL("SELECT COUNT(*) FROM {}").format(table))
                    row = await cur.fetchone()
                    counts[name] = row[0]
                except Exception as e:
                    # Missing table aborts the implicit transaction
                    await conn.rollback()
                    counts[name] = f"missing ({type(e).__name__})"
    finally:
        await close_pool()
    return counts


def main():
    parser = argparse.ArgumentParser(
        description="Deploy modelcheck schema to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  DATABASE_URL          Full PostgreSQL connection string
  POSTGRES_HOST         Database host (default: localhost)
  POSTGRES_DB           Database name (default: postgres)
  POSTGRES_USER         Database user (default: postgres)
  POSTGRES_PASSWORD     Database password
  DB_SCHEMA             Target schema (default: modelcheck)
        """
    )
    parser.add_argument("--dry-run", action="store_true", help="Print DDL without executing")
    parser.add_argument("--status", action="store_true", help="Print row counts per table")
    parser.add_argument("--connection", type=str, help="PostgreSQL connection string (overrides environment)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    print("=" * 70)
    print(f"MODEL CHECK - Schema Deployment ({SCHEMA})")
    print("=" * 70)

    if args.dry_run:
        for statement in get_schema_statements():
            print(statement.as_string().strip() + ";\n")
        return

    if args.status:
        for name, count in asyncio.run(_status(args.connection)).items():
            print(f"  - {SCHEMA}.{name}: {count}")
        return

    try:
        executed = asyncio.run(_deploy(args.connection))
    except Exception as e:
        print(f"Deployment failed: {e}")
        sys.exit(1)

    print(f"Deployment completed ({executed} statements)")


if __name__ == "__main__":
    main()

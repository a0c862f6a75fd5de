#!/usr/bin/env python3
"""
💾 DATABASE SETUP SCRIPT
========================
Checks the Supabase project the outreach engine writes to.

WHAT IT DOES:
1. Connects to your Supabase project
2. Points you at the schema to run in the SQL Editor
3. Verifies the required tables exist

USAGE:
    python scripts/setup_database.py
    python scripts/setup_database.py --show-schema

PREREQUISITES:
    1. Create a Supabase project at https://supabase.com
    2. Set SUPABASE_URL and SUPABASE_KEY in your .env file
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from loguru import logger

SCHEMA_FILE = PROJECT_ROOT / "database" / "schema.sql"

REQUIRED_TABLES = [
    "prospects",
    "offerings",
    "prospect_activities",
    "generation_requests",
]


def setup_logging():
    """Configure logging."""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | {message}",
        level="INFO"
    )


def check_connection(db) -> bool:
    """Verify Supabase connection."""
    from config.settings import settings

    if not settings.database.is_configured:
        logger.error("❌ Supabase credentials not configured!")
        logger.info("")
        logger.info("📝 TO FIX:")
        logger.info("   1. Go to https://supabase.com and create a project")
        logger.info("   2. Go to Project Settings → API")
        logger.info("   3. Copy your Project URL and service key")
        logger.info("   4. Create a .env file in the project root with:")
        logger.info("      SUPABASE_URL=your-project-url")
        logger.info("      SUPABASE_KEY=your-key")
        return False

    try:
        db.client.table("prospects").select("id").limit(1).execute()
        logger.info("✅ Connected to Supabase successfully")
        return True
    except Exception as e:
        if "does not exist" in str(e):
            # Connection works, schema not applied yet
            logger.info("✅ Connected to Supabase successfully")
            return True
        logger.error(f"❌ Connection failed: {e}")
        return False


def show_schema_instructions(print_sql: bool = False) -> bool:
    """Supabase does not run DDL through the client API; explain the manual step."""
    if not SCHEMA_FILE.exists():
        logger.error(f"Schema file not found: {SCHEMA_FILE}")
        return False

    logger.info("")
    logger.info("=" * 60)
    logger.info("⚠️  IMPORTANT: Manual Step Required")
    logger.info("=" * 60)
    logger.info("1. Open your project in the Supabase dashboard")
    logger.info("2. Click 'SQL Editor' → 'New query'")
    logger.info(f"3. Paste the contents of: {SCHEMA_FILE}")
    logger.info("4. Click 'Run'")
    logger.info("")

    if print_sql:
        print("\n" + "=" * 60)
        print("SQL SCHEMA (copy this to Supabase SQL Editor)")
        print("=" * 60 + "\n")
        print(SCHEMA_FILE.read_text())
        print("=" * 60)
    return True


def verify_tables(db) -> bool:
    """Verify that every required table answers a query."""
    logger.info("🔍 Verifying tables...")

    missing = []
    for table in REQUIRED_TABLES:
        try:
            db.client.table(table).select("*").limit(1).execute()
            logger.info(f"   ✅ {table}")
        except Exception as e:
            missing.append(table)
            if "does not exist" in str(e).lower():
                logger.warning(f"   ❌ {table} (not created yet)")
            else:
                logger.error(f"   ⚠️ {table} (error: {e})")

    if missing:
        logger.warning(f"⚠️ {len(missing)} table(s) missing - run the SQL schema in Supabase")
        return False

    logger.info(f"✅ All {len(REQUIRED_TABLES)} tables verified!")
    return True


def print_next_steps():
    logger.info("")
    logger.info("📋 NEXT STEPS:")
    logger.info("1. Seed some prospects:")
    logger.info("   python scripts/seed_prospects.py OWNER_ID --with-offerings")
    logger.info("2. Score them:")
    logger.info("   python run_scoring.py OWNER_ID")


def main() -> int:
    parser = argparse.ArgumentParser(description="Check the outreach engine database")
    parser.add_argument("--show-schema", action="store_true", help="Print the SQL schema")
    args = parser.parse_args()

    setup_logging()

    from database.connection import DatabaseConnection
    from models.errors import PersistenceError

    logger.info("💾 OUTREACH ENGINE DATABASE SETUP")
    logger.info("=" * 40)

    try:
        db = DatabaseConnection()
    except PersistenceError as e:
        logger.error(f"❌ {e}")
        return 1

    logger.info("[Step 1/3] Checking Supabase connection...")
    if not check_connection(db):
        return 1

    logger.info("[Step 2/3] Database schema...")
    show_schema_instructions(print_sql=args.show_schema)

    logger.info("[Step 3/3] Verifying tables...")
    if not verify_tables(db):
        return 1

    print_next_steps()
    return 0


if __name__ == "__main__":
    sys.exit(main())

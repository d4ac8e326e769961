#!/usr/bin/env python3
"""Check that the document schema exists, printing the migration SQL if not."""
import sys
from pathlib import Path

from advisory_engine.db.supabase_client import get_supabase

MIGRATION = Path(__file__).parent / "migrations" / "0001_documents.sql"
REQUIRED_TABLES = ("documents", "document_chunks", "usage_logs")


def run_migration():
    supabase = get_supabase()

    missing = []
    for table in REQUIRED_TABLES:
        try:
            supabase.table(table).select("id").limit(1).execute()
            print(f"✅ {table} exists")
        except Exception as e:
            print(f"❌ {table} not reachable: {e}")
            missing.append(table)

    if missing:
        print("💡 Run this SQL in your Supabase SQL editor:")
        print(MIGRATION.read_text())
        sys.exit(1)

    print("🚀 Schema is up to date")


if __name__ == "__main__":
    run_migration()

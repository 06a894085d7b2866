"""
Apply the schema_*.sql files with asyncpg (no psql needed).
Usage (from backend/):
  python -m db.run_schema
"""
import asyncio
import os
import sys

# make backend importable and load .env
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from dotenv import load_dotenv

load_dotenv()

import asyncpg

from infra.postgres.service import get_dsn

# dependency order: companies before users before everything that references them
SCHEMA_FILES = [
    "schema_companies.sql",
    "schema_users.sql",
    "schema_conversations.sql",
    "schema_messages.sql",
    "schema_benefits.sql",
    "schema_documents.sql",
    "schema_analytics.sql",
]


def split_statements(sql: str) -> list[str]:
    """Drop comment and blank lines, split on lines ending with ';'."""
    statements = []
    current = []
    for line in sql.splitlines():
        line = line.strip()
        if not line or line.startswith("--"):
            continue
        current.append(line)
        if line.endswith(";"):
            st = " ".join(current).strip()
            if st:
                statements.append(st)
            current = []
    if current:
        st = " ".join(current).strip()
        if st:
            statements.append(st)
    return statements


async def run_file(conn: asyncpg.Connection, filepath: str) -> None:
    with open(filepath, "r", encoding="utf-8") as f:
        statements = split_statements(f.read())
    for i, st in enumerate(statements):
        try:
            await conn.execute(st)
        except Exception as e:
            raise RuntimeError(f"Statement {i + 1} failed: {e}\nSQL: {st[:200]}...") from e


async def main() -> None:
    print(f"Connecting: {os.getenv('POSTGRES_HOST', 'localhost')}:{os.getenv('POSTGRES_PORT', '5432')}"
          f"/{os.getenv('POSTGRES_DB', 'benefits_ai')}")
    schema_dir = os.path.dirname(os.path.abspath(__file__))
    try:
        conn = await asyncpg.connect(get_dsn())
    except Exception as e:
        print(f"Database connection failed: {e}")
        print("Check that Postgres is running and POSTGRES_* in .env are correct")
        sys.exit(1)
    try:
        for name in SCHEMA_FILES:
            path = os.path.join(schema_dir, name)
            if not os.path.isfile(path):
                print(f"Skipped (missing): {path}")
                continue
            print(f"Applying: {name}")
            await run_file(conn, path)
        rows = await conn.fetch(
            "SELECT tablename FROM pg_tables WHERE schemaname = 'public' ORDER BY tablename"
        )
        print(f"Done. Tables: {[r['tablename'] for r in rows]}")
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(main())

#!/usr/bin/env python3
"""Apply the SQL files in migrations/versions to POSTGRES_APP_URL, in name order."""
import asyncio
import os
import sys
from pathlib import Path

import asyncpg
from dotenv import load_dotenv

ROOT = Path(__file__).resolve().parent.parent
MIGRATIONS = ROOT / "migrations" / "versions"

load_dotenv(ROOT / ".env")


def split_statements(sql: str) -> list[str]:
    lines = [line for line in sql.split("\n") if not line.strip().startswith("--")]
    return [stmt.strip() for stmt in "\n".join(lines).split(";") if stmt.strip()]


async def apply_all(url: str) -> None:
    conn = await asyncpg.connect(url.replace("postgresql+asyncpg://", "postgresql://"))
    try:
        for path in sorted(MIGRATIONS.glob("*.sql")):
            for stmt in split_statements(path.read_text(encoding="utf-8")):
                await conn.execute(stmt)
            print(f"applied {path.name}")
    finally:
        await conn.close()


def main():
    url = os.getenv("POSTGRES_APP_URL")
    if not url:
        print("POSTGRES_APP_URL not set. Set it in .env or the environment.", file=sys.stderr)
        sys.exit(1)
    asyncio.run(apply_all(url))


if __name__ == "__main__":
    main()

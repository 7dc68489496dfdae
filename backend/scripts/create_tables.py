#!/usr/bin/env python3
"""Create (or drop and recreate) the stockshift tables on the configured database."""
from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path


def _backend_imports():
    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))
    from stockshift.db import build_engine, create_all

    return build_engine, create_all


async def _run(url: str | None, drop: bool) -> list[str]:
    build_engine, create_all = _backend_imports()
    engine = build_engine(url, pooled=False)
    try:
        return await create_all(engine, drop=drop)
    finally:
        await engine.dispose()


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--database-url", default=None, help="overrides DATABASE_URL")
    parser.add_argument("--drop", action="store_true", help="drop existing tables first")
    args = parser.parse_args()
    tables = asyncio.run(_run(args.database_url, args.drop))
    print(f"Tables ready: {', '.join(tables)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

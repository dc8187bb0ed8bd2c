from __future__ import annotations

from pathlib import Path


SQL_DIR = Path(__file__).with_name("sql")


def load_sql(name: str) -> str:
    """Read a packaged query; modules call this at import time, so a missing file fails fast."""
    path = SQL_DIR / name
    if not path.is_file():
        raise FileNotFoundError(f"query {name!r} is not packaged under {SQL_DIR}")
    return path.read_text(encoding="utf-8").strip()

"""
Environment helpers shared by the service, the settings layer and Alembic.

The database URL comes from DATABASE_URL, falling back to LOCAL_DATABASE_URL
for developer machines.
"""

from __future__ import annotations

import os
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ENV_FILENAMES = (".env", ".env.local")
DATABASE_URL_VARS = ("DATABASE_URL", "LOCAL_DATABASE_URL")


def _parse_env_line(raw_line: str) -> tuple[str, str] | None:
    line = raw_line.strip()
    if not line or line.startswith("#") or "=" not in line:
        return None
    if line.startswith("export "):
        line = line[len("export ") :]
    key, value = line.split("=", 1)
    key = key.strip()
    if not key:
        return None
    return key, value.strip().strip('"').strip("'")


def load_env_files(root: Path = PROJECT_ROOT) -> None:
    """
    Load KEY=VALUE (or `export KEY=VALUE`) pairs from `.env` and `.env.local`
    under `root`. Variables already set in the process win.
    """

    for filename in ENV_FILENAMES:
        env_path = root / filename
        if not env_path.is_file():
            continue
        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            parsed = _parse_env_line(raw_line)
            if parsed is not None:
                os.environ.setdefault(*parsed)


def normalize_postgres_url(url: str) -> str:
    """
    Rewrite bare postgres URLs to the psycopg 3 driver form.
    """

    for prefix in ("postgres://", "postgresql://"):
        if url.startswith(prefix):
            return "postgresql+psycopg://" + url[len(prefix) :]
    return url


def resolve_database_url() -> str:
    """
    First non-empty of DATABASE_URL, LOCAL_DATABASE_URL, normalized.
    """

    load_env_files()
    for name in DATABASE_URL_VARS:
        value = os.getenv(name, "").strip()
        if value:
            return normalize_postgres_url(value)
    raise RuntimeError(
        "No database URL configured. Set DATABASE_URL or LOCAL_DATABASE_URL."
    )

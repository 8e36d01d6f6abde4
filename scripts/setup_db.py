from __future__ import annotations

"""setup_db.py — Create the candidates table without running Alembic.

Run once against a fresh database:
    python scripts/setup_db.py

Prefer `alembic upgrade head` where migrations are managed.
"""

import asyncio
import sys
from pathlib import Path

# Allow running from project root without installing the package
sys.path.insert(0, str(Path(__file__).parent.parent))

import asyncpg

from app.config import settings

# Convert asyncpg URL to plain postgres URL for asyncpg.connect()
_DB_URL = settings.database_url.replace("postgresql+asyncpg://", "postgresql://")

_CREATE_CANDIDATES_TABLE = """
CREATE TABLE IF NOT EXISTS candidates (
    id                       UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    full_name                TEXT NOT NULL,
    email                    TEXT,
    applicant_type           TEXT NOT NULL DEFAULT 'external',
    uploaded_by              TEXT,
    processing_status        TEXT NOT NULL DEFAULT 'completed'
                             CHECK (processing_status IN ('processing', 'completed', 'failed')),
    batch_id                 UUID,
    batch_created_at         TIMESTAMPTZ,
    processing_completed_at  TIMESTAMPTZ,
    overall_summary          TEXT,
    qualification_score      DOUBLE PRECISION,
    skills                   JSONB NOT NULL DEFAULT '[]',
    created_at               TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at               TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
CREATE INDEX IF NOT EXISTS ix_candidates_batch_id ON candidates (batch_id);
CREATE INDEX IF NOT EXISTS ix_candidates_processing_status ON candidates (processing_status);
"""


async def main() -> None:
    print(f"Connecting to {_DB_URL!r} …")
    conn = await asyncpg.connect(_DB_URL)
    try:
        print("Creating candidates table …")
        await conn.execute(_CREATE_CANDIDATES_TABLE)
        print("✓ Database setup complete.")
    finally:
        await conn.close()


if __name__ == "__main__":
    asyncio.run(main())

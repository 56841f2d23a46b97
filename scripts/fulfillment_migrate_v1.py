"""
Fulfillment v1 schema + data migration. Run locally with an admin DATABASE_URL.

Usage:
  python scripts/fulfillment_migrate_v1.py [--dry-run]

Adds:
  - production.orders table (stage + signature columns, client_id)
  - signature_request_id / embedded_sign_url lookup indexes
Migrates:
  - legacy stage key spellings -> canonical stage keys
  - NULL signature_status -> 'unsent'
  - legacy signature_status spellings -> canonical statuses
"""
import argparse
import asyncio
import os
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

import asyncpg

from fulfillment.engine.orders import LEGACY_SIGNATURE_STATUS_ALIASES
from fulfillment.engine.stages import LEGACY_STAGE_ALIASES, Track

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    print("ERROR: DATABASE_URL not set")
    sys.exit(1)

STAGE_COLUMNS = {
    Track.STONE: "stone_stage",
    Track.MOUNTING: "mounting_stage",
}


async def migrate(dry_run: bool) -> None:
    conn = await asyncpg.connect(DATABASE_URL)
    try:
        print("Running fulfillment v1 migration...")

        async with conn.transaction():
            await conn.execute("CREATE SCHEMA IF NOT EXISTS production")
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS production.orders (
                    id                            TEXT PRIMARY KEY,
                    stone_stage                   TEXT NOT NULL DEFAULT 'searching',
                    mounting_stage                TEXT NOT NULL DEFAULT 'awaiting-start',
                    signature_status              TEXT NOT NULL DEFAULT 'unsent',
                    signature_request_id          TEXT,
                    signed_document_url           TEXT,
                    signature_sent_at             TIMESTAMPTZ,
                    signature_completed_at        TIMESTAMPTZ,
                    embedded_sign_url             TEXT,
                    embedded_sign_url_expires_at  TIMESTAMPTZ,
                    embedded_sign_url_accessed    BOOLEAN NOT NULL DEFAULT false,
                    client_id                     TEXT,
                    created_at                    TIMESTAMPTZ DEFAULT now(),
                    updated_at                    TIMESTAMPTZ DEFAULT now()
                )
            """)
            await conn.execute(
                "ALTER TABLE production.orders ADD COLUMN IF NOT EXISTS client_id TEXT"
            )
            print("OK production.orders")

            await conn.execute(
                "CREATE INDEX IF NOT EXISTS orders_signature_request_idx "
                "ON production.orders (signature_request_id)"
            )
            await conn.execute(
                "CREATE INDEX IF NOT EXISTS orders_embedded_sign_url_idx "
                "ON production.orders (embedded_sign_url)"
            )
            print("OK lookup indexes")

            for track, column in STAGE_COLUMNS.items():
                for legacy, canonical in LEGACY_STAGE_ALIASES[track].items():
                    count = await conn.fetchval(
                        f"SELECT count(*) FROM production.orders WHERE {column} = $1",
                        legacy,
                    )
                    if not count:
                        continue
                    print(f"  {column}: {legacy} -> {canonical} ({count} rows)")
                    if not dry_run:
                        await conn.execute(
                            f"UPDATE production.orders SET {column} = $2, updated_at = now() "
                            f"WHERE {column} = $1",
                            legacy,
                            canonical,
                        )
            print("OK canonical stage keys")

            if not dry_run:
                await conn.execute(
                    "UPDATE production.orders SET signature_status = 'unsent' "
                    "WHERE signature_status IS NULL"
                )
            print("OK signature_status defaults")

            for legacy, canonical in LEGACY_SIGNATURE_STATUS_ALIASES.items():
                count = await conn.fetchval(
                    "SELECT count(*) FROM production.orders WHERE signature_status = $1",
                    legacy,
                )
                if not count:
                    continue
                print(f"  signature_status: {legacy} -> {canonical} ({count} rows)")
                if not dry_run:
                    await conn.execute(
                        "UPDATE production.orders SET signature_status = $2, updated_at = now() "
                        "WHERE signature_status = $1",
                        legacy,
                        canonical,
                    )
            print("OK canonical signature statuses")

            if dry_run:
                raise _DryRunRollback()

        print("\nMigration complete.")

    except _DryRunRollback:
        print("\nDry run: no changes committed.")
    finally:
        await conn.close()


class _DryRunRollback(Exception):
    pass


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--dry-run", action="store_true", help="report legacy keys without rewriting them")
    args = parser.parse_args()
    asyncio.run(migrate(args.dry_run))

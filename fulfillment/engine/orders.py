"""
Order aggregate and its persistence collaborator.

The Order is an immutable value: every mutation produces a new Order via
dataclasses.replace(). Only the coordinator persists orders.
"""
from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import asdict, dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Optional, Protocol

import asyncpg

from fulfillment.db import connection
from fulfillment.engine.stages import (
    MountingStage,
    StoneStage,
    Track,
    normalize_stage_key,
)


class SignatureStatus(str, Enum):
    UNSENT = "unsent"
    PENDING = "pending"
    SIGNED = "signed"
    DECLINED = "declined"


TERMINAL_SIGNATURE_STATUSES: frozenset[SignatureStatus] = frozenset(
    [SignatureStatus.SIGNED, SignatureStatus.DECLINED]
)

# Status spellings written by earlier versions of the order screens
LEGACY_SIGNATURE_STATUS_ALIASES: dict[str, str] = {
    "awaiting_signature": SignatureStatus.PENDING.value,
}


def normalize_signature_status(raw: Optional[str]) -> SignatureStatus:
    """Stored status to enum. NULL means unsent; legacy spellings are mapped."""
    value = (raw or "").strip().lower()
    if not value:
        return SignatureStatus.UNSENT
    return SignatureStatus(LEGACY_SIGNATURE_STATUS_ALIASES.get(value, value))


@dataclass(frozen=True)
class Order:
    id: str
    stone_stage: StoneStage = StoneStage.SEARCHING
    mounting_stage: MountingStage = MountingStage.AWAITING_START
    signature_status: SignatureStatus = SignatureStatus.UNSENT
    signature_request_id: Optional[str] = None
    signed_document_url: Optional[str] = None
    signature_sent_at: Optional[datetime] = None
    signature_completed_at: Optional[datetime] = None
    embedded_sign_url: Optional[str] = None
    embedded_sign_url_expires_at: Optional[datetime] = None
    embedded_sign_url_accessed: bool = False

    def stage_for(self, track: Track):
        return self.stone_stage if Track(track) is Track.STONE else self.mounting_stage

    def with_stage(self, track: Track, stage) -> "Order":
        if Track(track) is Track.STONE:
            return replace(self, stone_stage=stage)
        return replace(self, mounting_stage=stage)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Order":
        """Build an Order from a stored row; tolerates legacy stage keys and status spellings."""
        return cls(
            id=str(row["id"]),
            stone_stage=normalize_stage_key(Track.STONE, row["stone_stage"] or StoneStage.SEARCHING.value),
            mounting_stage=normalize_stage_key(
                Track.MOUNTING, row["mounting_stage"] or MountingStage.AWAITING_START.value
            ),
            signature_status=normalize_signature_status(row["signature_status"]),
            signature_request_id=row["signature_request_id"],
            signed_document_url=row["signed_document_url"],
            signature_sent_at=row["signature_sent_at"],
            signature_completed_at=row["signature_completed_at"],
            embedded_sign_url=row["embedded_sign_url"],
            embedded_sign_url_expires_at=row["embedded_sign_url_expires_at"],
            embedded_sign_url_accessed=bool(row["embedded_sign_url_accessed"]),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
            elif isinstance(value, datetime):
                data[key] = value.isoformat()
        return data


class OrderRepository(Protocol):
    async def load_order(self, order_id: str) -> Optional[Order]: ...

    async def save_order(self, order: Order) -> None: ...

    async def find_by_signature_request_id(self, request_id: str) -> Optional[Order]: ...

    async def find_by_embedded_sign_url(self, sign_url: str) -> Optional[Order]: ...


# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_ORDER_COLUMNS = """
    id::text AS id,
    stone_stage,
    mounting_stage,
    signature_status,
    signature_request_id,
    signed_document_url,
    signature_sent_at,
    signature_completed_at,
    embedded_sign_url,
    embedded_sign_url_expires_at,
    embedded_sign_url_accessed
"""

LOAD_ORDER_SQL = f"""
SELECT {_ORDER_COLUMNS}
FROM production.orders
WHERE id::text = $1::text
LIMIT 1;
"""

FIND_BY_SIGNATURE_REQUEST_SQL = f"""
SELECT {_ORDER_COLUMNS}
FROM production.orders
WHERE signature_request_id = $1::text
LIMIT 1;
"""

FIND_BY_SIGN_URL_SQL = f"""
SELECT {_ORDER_COLUMNS}
FROM production.orders
WHERE embedded_sign_url = $1::text
LIMIT 1;
"""

# Single-record write; last write wins across concurrent writers.
SAVE_ORDER_SQL = """
UPDATE production.orders
SET stone_stage                  = $2::text,
    mounting_stage               = $3::text,
    signature_status             = $4::text,
    signature_request_id         = $5::text,
    signed_document_url          = $6::text,
    signature_sent_at            = $7::timestamptz,
    signature_completed_at       = $8::timestamptz,
    embedded_sign_url            = $9::text,
    embedded_sign_url_expires_at = $10::timestamptz,
    embedded_sign_url_accessed   = $11::boolean,
    updated_at                   = now()
WHERE id::text = $1::text;
"""


@dataclass
class PostgresOrderRepository:
    """asyncpg-backed repository over production.orders. Uses the shared pool unless one is given."""

    pool: Optional[asyncpg.Pool] = None
    statement_timeout: float = 30.0

    @asynccontextmanager
    async def _conn(self) -> AsyncIterator[asyncpg.Connection]:
        if self.pool is None:
            async with connection() as conn:
                yield conn
        else:
            async with self.pool.acquire() as conn:
                yield conn

    async def _fetch_one(self, sql: str, arg: str) -> Optional[Order]:
        async with self._conn() as conn:
            row = await conn.fetchrow(sql, arg, timeout=self.statement_timeout)
        return Order.from_row(row) if row else None

    async def load_order(self, order_id: str) -> Optional[Order]:
        return await self._fetch_one(LOAD_ORDER_SQL, order_id)

    async def find_by_signature_request_id(self, request_id: str) -> Optional[Order]:
        return await self._fetch_one(FIND_BY_SIGNATURE_REQUEST_SQL, request_id)

    async def find_by_embedded_sign_url(self, sign_url: str) -> Optional[Order]:
        return await self._fetch_one(FIND_BY_SIGN_URL_SQL, sign_url)

    async def save_order(self, order: Order) -> None:
        async with self._conn() as conn:
            await conn.execute(
                SAVE_ORDER_SQL,
                order.id,
                order.stone_stage.value,
                order.mounting_stage.value,
                order.signature_status.value,
                order.signature_request_id,
                order.signed_document_url,
                order.signature_sent_at,
                order.signature_completed_at,
                order.embedded_sign_url,
                order.embedded_sign_url_expires_at,
                order.embedded_sign_url_accessed,
                timeout=self.statement_timeout,
            )

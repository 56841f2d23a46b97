"""
Collaborators that describe what gets signed and by whom.

The order's purchase document is rendered elsewhere; this service only
needs its URL. The signer is the order's client, read from the clients
table the order points at.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

import asyncpg

from fulfillment.config import settings
from fulfillment.db import connection
from fulfillment.engine.orders import Order


class DocumentLocator(Protocol):
    async def document_ref_for(self, order: Order) -> Optional[str]: ...


@dataclass(frozen=True)
class TemplateDocumentLocator:
    # e.g. "https://files.example.com/orders/{order_id}.pdf"
    template: str = ""

    @classmethod
    def from_settings(cls) -> "TemplateDocumentLocator":
        return cls(template=settings.order_document_url_template)

    async def document_ref_for(self, order: Order) -> Optional[str]:
        if not self.template:
            return None
        return self.template.format(order_id=order.id)


@dataclass(frozen=True)
class Signer:
    name: str
    email_address: str

    def to_provider(self) -> dict[str, str]:
        return {"email_address": self.email_address, "name": self.name}


class SignerDirectory(Protocol):
    async def signer_for(self, order: Order) -> Optional[Signer]: ...


SIGNER_FOR_ORDER_SQL = """
SELECT c.nombre, c.apellido, c.email
FROM production.orders o
JOIN public.clients c ON c.id::text = o.client_id::text
WHERE o.id::text = $1::text
LIMIT 1;
"""


@dataclass
class PostgresSignerDirectory:
    pool: Optional[asyncpg.Pool] = None
    statement_timeout: float = 30.0

    async def signer_for(self, order: Order) -> Optional[Signer]:
        if self.pool is None:
            async with connection() as conn:
                row = await conn.fetchrow(SIGNER_FOR_ORDER_SQL, order.id, timeout=self.statement_timeout)
        else:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(SIGNER_FOR_ORDER_SQL, order.id, timeout=self.statement_timeout)
        return signer_from_row(row) if row else None


def signer_from_row(row) -> Optional[Signer]:
    """Client row to Signer; None when the client has no email."""
    email = (row["email"] or "").strip()
    if not email:
        return None
    name = " ".join(p.strip() for p in (row["nombre"], row["apellido"]) if p and p.strip())
    return Signer(name=name or email, email_address=email)

"""
Dropbox Sign (HelloSign) signature adapter.

Creates signature requests via POST {base}/signature_request/send and
resolves signed-file download URLs via GET {base}/signature_request/files/{id}.
Falls back to stub mode when the SIGNATURE_STUB env var is set.

Exactly one HTTP call per method; no retries. Callers decide what to do
with ProviderUnavailable.
"""
from __future__ import annotations

import json
import logging
import os
import uuid
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from fulfillment.config import settings
from fulfillment.errors import InvalidDocumentReference, ProviderUnavailable

logger = logging.getLogger(__name__)

SIGNATURE_STUB_ENABLED_KEY = "SIGNATURE_STUB"

# Provider error names that mean the document itself could not be fetched
DOCUMENT_ERROR_NAMES: frozenset[str] = frozenset([
    "file_not_found",
    "not_found",
    "invalid_file",
    "unreachable_file_url",
])


@dataclass(frozen=True)
class ProviderSignatureRequest:
    request_id: str
    embedded_sign_url: Optional[str] = None


def _error_name(resp: httpx.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return ""
    err = body.get("error") if isinstance(body, dict) else None
    if isinstance(err, dict):
        return str(err.get("error_name") or "")
    return ""


class DropboxSignClient:
    def __init__(
        self,
        *,
        api_key: str,
        base_url: str = "https://api.hellosign.com/v3",
        test_mode: bool = False,
        client_id: str = "",
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.test_mode = test_mode
        self.client_id = client_id
        self.timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "DropboxSignClient":
        return cls(
            api_key=settings.signature_api_key,
            base_url=settings.signature_api_base_url,
            test_mode=settings.signature_test_mode,
            client_id=settings.signature_client_id,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(self.api_key, ""),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def create_signature_request(
        self,
        document_ref: str,
        metadata: dict[str, Any],
        *,
        title: Optional[str] = None,
        signers: Optional[list[dict[str, str]]] = None,
    ) -> ProviderSignatureRequest:
        """
        Send the document at document_ref out for signature.

        metadata is echoed back by the provider on every callback; it must
        carry order_id so webhooks can be routed back to the order.
        """
        if os.getenv(SIGNATURE_STUB_ENABLED_KEY):
            request_id = f"stub-{uuid.uuid4().hex[:24]}"
            return ProviderSignatureRequest(
                request_id=request_id,
                embedded_sign_url=f"https://app.hellosign.com/editor/embeddedSign?signature_id={request_id}",
            )

        order_id = metadata.get("order_id")
        body: dict[str, Any] = {
            "test_mode": 1 if self.test_mode else 0,
            "title": title or f"Purchase order {order_id}",
            "file_urls": [document_ref],
            "metadata": metadata,
        }
        if signers:
            body["signers"] = signers
        if self.client_id:
            body["client_id"] = self.client_id

        logger.info(json.dumps({
            "event": "signature_request_send",
            "order_id": order_id,
            "test_mode": self.test_mode,
        }))

        try:
            async with self._client() as client:
                resp = await client.post("/signature_request/send", json=body)
        except httpx.HTTPError as e:
            logger.error(json.dumps({
                "event": "signature_request_send_failed",
                "order_id": order_id,
                "error": repr(e),
            }))
            raise ProviderUnavailable(f"Signature provider unreachable: {e!r}") from e

        if resp.status_code == 404 or _error_name(resp) in DOCUMENT_ERROR_NAMES:
            raise InvalidDocumentReference(document_ref, reason=resp.text[:200])

        if resp.status_code >= 300:
            logger.error(json.dumps({
                "event": "signature_request_send_failed",
                "order_id": order_id,
                "status": resp.status_code,
                "body": resp.text[:500],
            }))
            raise ProviderUnavailable(
                f"Signature provider error: {resp.status_code} {resp.text[:200]}",
                status=resp.status_code,
            )

        data = resp.json()
        sig_request = data.get("signature_request") or {}
        request_id = sig_request.get("signature_request_id")
        if not request_id:
            raise ProviderUnavailable("Signature provider returned no signature_request_id")

        logger.info(json.dumps({
            "event": "signature_request_sent",
            "order_id": order_id,
            "signature_request_id": request_id,
        }))
        return ProviderSignatureRequest(
            request_id=request_id,
            embedded_sign_url=sig_request.get("signing_url") or None,
        )

    async def get_files_url(self, request_id: str) -> str:
        """Return a download URL for the signed document of request_id."""
        if os.getenv(SIGNATURE_STUB_ENABLED_KEY):
            return f"https://stub.hellosign.local/files/{request_id}.pdf"

        try:
            async with self._client() as client:
                resp = await client.get(
                    f"/signature_request/files/{request_id}",
                    params={"get_url": 1},
                )
        except httpx.HTTPError as e:
            raise ProviderUnavailable(f"Signature provider unreachable: {e!r}") from e

        if resp.status_code != 200:
            raise ProviderUnavailable(
                f"Signed file lookup failed: {resp.status_code} {resp.text[:200]}",
                status=resp.status_code,
            )
        file_url = (resp.json() or {}).get("file_url")
        if not file_url:
            raise ProviderUnavailable("Signature provider returned no file_url")
        return file_url

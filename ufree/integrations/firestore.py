"""Cloud Firestore REST integration.

A small async client over the Firestore v1 REST API: single-document
reads, structured queries, merge writes through `documents:commit`, and
document creation. Adapters build on this; they never talk HTTP directly.

Firestore wraps every value in a typed envelope ({"stringValue": "x"});
`encode_fields` / `decode_fields` convert to and from plain Python.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx

logger = logging.getLogger(__name__)

_FIRESTORE_URL = "https://firestore.googleapis.com/v1"

TokenProvider = Callable[[], Awaitable[str]]


class FirestoreError(Exception):
    """Raised when a Firestore request fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# ---------------------------------------------------------------------------
# Value encoding
# ---------------------------------------------------------------------------


class Reference(str):
    """A document path to be encoded as a referenceValue."""


def encode_value(value: Any) -> dict:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, Reference):
        return {"referenceValue": str(value)}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        stamp = value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")
        return {"timestampValue": stamp}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    if isinstance(value, dict):
        return {"mapValue": {"fields": encode_fields(value)}}
    raise TypeError(f"Cannot encode {type(value).__name__} for Firestore")


def encode_fields(data: dict[str, Any]) -> dict[str, dict]:
    return {key: encode_value(val) for key, val in data.items()}


def _parse_timestamp(raw: str) -> datetime:
    """Parse an RFC 3339 timestamp; Firestore may send nanoseconds."""
    raw = raw.replace("Z", "+00:00")
    if "." in raw:
        head, _, rest = raw.partition(".")
        frac = ""
        tail = ""
        for i, ch in enumerate(rest):
            if not ch.isdigit():
                tail = rest[i:]
                break
            frac += ch
        raw = f"{head}.{frac[:6].ljust(6, '0')}{tail}"
    return datetime.fromisoformat(raw)


def decode_value(value: dict) -> Any:
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return _parse_timestamp(value["timestampValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values", [])]
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields", {}))
    logger.debug("Unsupported Firestore value type: %s", list(value))
    return None


def decode_fields(fields: dict[str, dict]) -> dict[str, Any]:
    return {key: decode_value(val) for key, val in fields.items()}


def document_id(document: dict) -> str:
    """Last path segment of a document's resource name."""
    return document.get("name", "").rsplit("/", 1)[-1]


# ---------------------------------------------------------------------------
# Query building
# ---------------------------------------------------------------------------


def field_filter(field_path: str, op: str, value: Any) -> dict:
    """A structured-query field filter (op: EQUAL, IN, GREATER_THAN_OR_EQUAL, ...)."""
    return {
        "fieldFilter": {
            "field": {"fieldPath": field_path},
            "op": op,
            "value": encode_value(value),
        }
    }


def all_of(*filters: dict) -> dict:
    if len(filters) == 1:
        return filters[0]
    return {"compositeFilter": {"op": "AND", "filters": list(filters)}}


def structured_query(
    collection_id: str,
    where: dict | None = None,
    order_by: str | None = None,
    descending: bool = False,
    limit: int | None = None,
) -> dict:
    query: dict[str, Any] = {"from": [{"collectionId": collection_id}]}
    if where is not None:
        query["where"] = where
    if order_by:
        query["orderBy"] = [{
            "field": {"fieldPath": order_by},
            "direction": "DESCENDING" if descending else "ASCENDING",
        }]
    if limit is not None:
        query["limit"] = limit
    return query


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class FirestoreClient:
    """Async Firestore REST client for one project/database."""

    def __init__(
        self,
        project_id: str,
        database: str = "(default)",
        token_provider: TokenProvider | None = None,
        timeout: float = 10,
    ) -> None:
        self._root = f"projects/{project_id}/databases/{database}/documents"
        self._token_provider = token_provider
        self._timeout = timeout

    def name(self, path: str) -> str:
        """Full resource name for a document path like 'users/abc'."""
        return f"{self._root}/{path.strip('/')}"

    def reference(self, path: str) -> Reference:
        return Reference(self.name(path))

    async def _headers(self) -> dict[str, str]:
        if self._token_provider is None:
            return {}
        try:
            token = await self._token_provider()
        except Exception as exc:
            logger.error("Could not obtain an ID token: %s", exc)
            raise FirestoreError(f"Authentication failed: {exc}") from exc
        return {"Authorization": f"Bearer {token}"}

    async def _request(
        self, method: str, url: str, json: dict | None = None, allow_404: bool = False,
    ) -> Any:
        headers = await self._headers()
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.request(method, url, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.error("Firestore %s %s failed: %s", method, url, exc)
            raise FirestoreError(f"Firestore request failed: {exc}") from exc

        if allow_404 and resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            logger.error(
                "Firestore %s %s returned %d: %s",
                method, url, resp.status_code, resp.text[:200],
            )
            raise FirestoreError(
                f"Firestore returned HTTP {resp.status_code}", status_code=resp.status_code,
            )
        try:
            return resp.json()
        except ValueError as exc:
            logger.error("Firestore %s %s returned a non-JSON body: %s", method, url, resp.text[:200])
            raise FirestoreError(
                "Firestore returned an unreadable response", status_code=resp.status_code,
            ) from exc

    async def get_document(self, path: str) -> dict | None:
        """Fetch one document; None if it does not exist."""
        return await self._request(
            "GET", f"{_FIRESTORE_URL}/{self.name(path)}", allow_404=True,
        )

    async def run_query(self, query: dict, parent: str = "") -> list[dict]:
        """Run a structured query under `parent` (a document path, or root)."""
        parent_name = self.name(parent) if parent else self._root
        results = await self._request(
            "POST",
            f"{_FIRESTORE_URL}/{parent_name}:runQuery",
            json={"structuredQuery": query},
        )
        if not isinstance(results, list):
            raise FirestoreError("Firestore returned an unexpected query response")
        return [r["document"] for r in results if "document" in r]

    async def create_document(self, collection_path: str, data: dict[str, Any]) -> dict:
        """Create a document with a server-generated id."""
        return await self._request(
            "POST",
            f"{_FIRESTORE_URL}/{self.name(collection_path)}",
            json={"fields": encode_fields(data)},
        )

    async def commit(self, writes: list[dict]) -> dict:
        return await self._request(
            "POST", f"{_FIRESTORE_URL}/{self._root}:commit", json={"writes": writes},
        )

    def create_write(self, path: str, data: dict[str, Any]) -> dict:
        """Build a write that creates `path`; the commit fails if it already exists."""
        return {
            "update": {"name": self.name(path), "fields": encode_fields(data)},
            "currentDocument": {"exists": False},
        }

    def merge_write(
        self,
        path: str,
        data: dict[str, Any] | None = None,
        server_timestamps: list[str] | None = None,
        array_union: dict[str, list] | None = None,
        array_remove: dict[str, list] | None = None,
    ) -> dict:
        """Build a merge write: only the named fields change, the rest stay."""
        data = data or {}
        transforms: list[dict] = []
        for field_path in server_timestamps or []:
            transforms.append({"fieldPath": field_path, "setToServerValue": "REQUEST_TIME"})
        for field_path, values in (array_union or {}).items():
            transforms.append({
                "fieldPath": field_path,
                "appendMissingElements": {"values": [encode_value(v) for v in values]},
            })
        for field_path, values in (array_remove or {}).items():
            transforms.append({
                "fieldPath": field_path,
                "removeAllFromArray": {"values": [encode_value(v) for v in values]},
            })

        write: dict[str, Any] = {
            "update": {"name": self.name(path), "fields": encode_fields(data)},
            "updateMask": {"fieldPaths": list(data)},
        }
        if transforms:
            write["updateTransforms"] = transforms
        return write

    async def merge(self, path: str, data: dict[str, Any], **kwargs: Any) -> dict:
        """Merge-write a single document."""
        return await self.commit([self.merge_write(path, data, **kwargs)])


def create_firestore_client(token_provider: TokenProvider | None = None) -> FirestoreClient:
    """Build a client from settings, authenticated with the stored session."""
    from ufree.config import settings

    if token_provider is None:
        from ufree.integrations.firebase_auth import get_id_token
        token_provider = get_id_token

    return FirestoreClient(
        project_id=settings.FIREBASE_PROJECT_ID,
        database=settings.FIRESTORE_DATABASE,
        token_provider=token_provider,
        timeout=settings.REMOTE_TIMEOUT_SECONDS,
    )

"""Tests for ufree.integrations.firestore — value codec and REST client.

All HTTP calls are mocked.
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from ufree.integrations.firestore import (
    FirestoreClient,
    FirestoreError,
    Reference,
    all_of,
    decode_fields,
    decode_value,
    document_id,
    encode_value,
    field_filter,
    structured_query,
)


_PATCH_CLIENT = "ufree.integrations.firestore.httpx.AsyncClient"


def _mock_http(status_code=200, payload=None, exc=None, body=None):
    """Patch httpx.AsyncClient; returns (patcher, inner client mock).

    With `body`, the response carries that text and is not valid JSON.
    """
    resp = MagicMock()
    resp.status_code = status_code
    resp.text = body or "error body"
    if body is not None:
        resp.json.side_effect = json.JSONDecodeError("Expecting value", body, 0)
    else:
        resp.json.return_value = payload if payload is not None else {}

    inner = MagicMock()
    inner.request = AsyncMock(side_effect=exc) if exc else AsyncMock(return_value=resp)

    cls = MagicMock()
    cls.return_value.__aenter__ = AsyncMock(return_value=inner)
    cls.return_value.__aexit__ = AsyncMock(return_value=False)
    return patch(_PATCH_CLIENT, cls), inner


# ---------------------------------------------------------------------------
# Codec
# ---------------------------------------------------------------------------


class TestEncodeValue:
    def test_scalars(self):
        assert encode_value(None) == {"nullValue": None}
        assert encode_value(True) == {"booleanValue": True}
        assert encode_value(3) == {"integerValue": "3"}
        assert encode_value(1.5) == {"doubleValue": 1.5}
        assert encode_value("hi") == {"stringValue": "hi"}

    def test_bool_not_encoded_as_int(self):
        assert "booleanValue" in encode_value(False)

    def test_datetime_as_utc_timestamp(self):
        value = encode_value(datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc))
        assert value == {"timestampValue": "2026-03-02T10:00:00Z"}

    def test_reference(self):
        assert encode_value(Reference("projects/p/databases/(default)/documents/users/a")) == {
            "referenceValue": "projects/p/databases/(default)/documents/users/a"
        }

    def test_nested(self):
        value = encode_value({"ids": ["a"]})
        assert value == {"mapValue": {"fields": {
            "ids": {"arrayValue": {"values": [{"stringValue": "a"}]}},
        }}}

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            encode_value(object())


class TestDecodeValue:
    def test_fields(self):
        fields = {
            "name": {"stringValue": "Dana"},
            "status": {"integerValue": "1"},
            "friendIds": {"arrayValue": {"values": [{"stringValue": "u2"}]}},
            "empty": {"arrayValue": {}},
            "note": {"nullValue": None},
        }
        assert decode_fields(fields) == {
            "name": "Dana", "status": 1, "friendIds": ["u2"], "empty": [], "note": None,
        }

    def test_nanosecond_timestamp(self):
        value = decode_value({"timestampValue": "2026-03-02T10:00:00.123456789Z"})
        assert value == datetime(2026, 3, 2, 10, 0, 0, 123456, tzinfo=timezone.utc)

    def test_document_id(self):
        assert document_id({"name": "projects/p/databases/d/documents/users/abc"}) == "abc"


class TestQueryBuilders:
    def test_single_filter_not_wrapped(self):
        f = field_filter("toId", "EQUAL", "me")
        assert all_of(f) is f

    def test_composite_filter(self):
        f = all_of(field_filter("a", "EQUAL", 1), field_filter("b", "EQUAL", 2))
        assert f["compositeFilter"]["op"] == "AND"
        assert len(f["compositeFilter"]["filters"]) == 2

    def test_structured_query(self):
        q = structured_query("notifications", order_by="date", descending=True, limit=5)
        assert q["from"] == [{"collectionId": "notifications"}]
        assert q["orderBy"][0]["direction"] == "DESCENDING"
        assert q["limit"] == 5
        assert "where" not in q


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class TestFirestoreClient:
    def test_names(self):
        client = FirestoreClient("proj")
        assert client.name("users/abc") == "projects/proj/databases/(default)/documents/users/abc"
        assert isinstance(client.reference("users/abc"), Reference)

    @pytest.mark.asyncio
    async def test_get_document_missing_returns_none(self):
        patcher, _ = _mock_http(status_code=404)
        with patcher:
            assert await FirestoreClient("proj").get_document("users/nope") is None

    @pytest.mark.asyncio
    async def test_sends_bearer_token(self):
        patcher, inner = _mock_http(payload={"name": "x"})
        client = FirestoreClient("proj", token_provider=AsyncMock(return_value="tok"))
        with patcher:
            await client.get_document("users/a")
        headers = inner.request.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer tok"}

    @pytest.mark.asyncio
    async def test_run_query_keeps_documents_only(self):
        payload = [{"readTime": "t"}, {"document": {"name": "n1"}}, {"document": {"name": "n2"}}]
        patcher, inner = _mock_http(payload=payload)
        with patcher:
            docs = await FirestoreClient("proj").run_query(
                structured_query("availability"), parent="users/a",
            )
        assert docs == [{"name": "n1"}, {"name": "n2"}]
        url = inner.request.call_args.args[1]
        assert url.endswith("/documents/users/a:runQuery")

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self):
        patcher, _ = _mock_http(status_code=503)
        with patcher:
            with pytest.raises(FirestoreError) as exc_info:
                await FirestoreClient("proj").run_query(structured_query("users"))
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_transport_error_raises(self):
        patcher, _ = _mock_http(exc=httpx.ConnectError("offline"))
        with patcher:
            with pytest.raises(FirestoreError):
                await FirestoreClient("proj").commit([])

    def test_merge_write_mask_and_transforms(self):
        client = FirestoreClient("proj")
        write = client.merge_write(
            "users/a/availability/2026-03-02",
            {"status": 1},
            server_timestamps=["updatedAt"],
            array_union={"friendIds": ["b"]},
        )
        assert write["updateMask"] == {"fieldPaths": ["status"]}
        assert write["update"]["fields"] == {"status": {"integerValue": "1"}}
        assert write["updateTransforms"][0] == {
            "fieldPath": "updatedAt", "setToServerValue": "REQUEST_TIME",
        }
        assert write["updateTransforms"][1]["appendMissingElements"] == {
            "values": [{"stringValue": "b"}],
        }

    def test_merge_write_without_transforms(self):
        write = FirestoreClient("proj").merge_write("users/a", {"displayName": "A"})
        assert "updateTransforms" not in write

    @pytest.mark.asyncio
    async def test_non_json_success_body_raises(self):
        patcher, _ = _mock_http(status_code=200, body="<html>captive portal</html>")
        with patcher:
            with pytest.raises(FirestoreError) as exc_info:
                await FirestoreClient("proj").get_document("users/a")
        assert exc_info.value.status_code == 200

    @pytest.mark.asyncio
    async def test_non_list_query_response_raises(self):
        patcher, _ = _mock_http(payload={"error": "odd"})
        with patcher:
            with pytest.raises(FirestoreError):
                await FirestoreClient("proj").run_query(structured_query("users"))

    @pytest.mark.asyncio
    async def test_token_provider_failure_raises(self):
        patcher, inner = _mock_http()
        client = FirestoreClient("proj", token_provider=AsyncMock(side_effect=RuntimeError("no session")))
        with patcher:
            with pytest.raises(FirestoreError):
                await client.get_document("users/a")
        inner.request.assert_not_awaited()

    def test_create_write_requires_missing_document(self):
        write = FirestoreClient("proj").create_write("friendRequests/r1", {"status": "pending"})
        assert write["currentDocument"] == {"exists": False}
        assert "updateMask" not in write
        assert write["update"]["name"].endswith("/documents/friendRequests/r1")

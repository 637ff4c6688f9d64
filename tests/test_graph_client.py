"""Tests for GraphClient: request/error mapping, bounded pagination, uploads, self-test."""

import asyncio
import json
import math
import os
import sys
import unittest
from pathlib import Path

os.environ.setdefault("MYOFFICE_LOG_FILE", "")
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import httpx
from pydantic import BaseModel

from myoffice.errors import HttpError, NetworkError, NotAuthenticated, TransportError, UploadSessionError
from myoffice.graph import UPLOAD_CHUNK_ALIGNMENT, GraphClient

BASE = "https://graph.microsoft.com/v1.0"
UPLOAD_URL = "https://upload.example.com/drive/session/abc"


class StaticTokens:
    """Token provider double."""

    def __init__(self, token: str = "token-123", error: Exception | None = None):
        self.token = token
        self.error = error
        self.calls = 0

    async def get_access_token(self) -> str:
        self.calls += 1
        if self.error:
            raise self.error
        return self.token


def run_with(handler, coro_factory, tokens: StaticTokens | None = None):
    """Run coro_factory(client) against a MockTransport-backed client."""

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            client = GraphClient(tokens or StaticTokens(), http_client=http, base_url=BASE)
            return await coro_factory(client)

    return asyncio.run(run())


class TestRequest(unittest.TestCase):
    """Single authenticated calls and how responses are mapped."""

    def test_sends_bearer_token_and_json_body(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(201, json={"id": "evt-1"})

        result = run_with(
            handler,
            lambda c: c.request("/me/events", method="POST", body={"subject": "Standup"}, params={"$top": 5}),
        )

        self.assertEqual(result, {"id": "evt-1"})
        request = seen[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/v1.0/me/events")
        self.assertEqual(request.url.params["$top"], "5")
        self.assertEqual(request.headers["Authorization"], "Bearer token-123")
        self.assertEqual(request.headers["Content-Type"], "application/json")
        self.assertEqual(json.loads(request.content), {"subject": "Standup"})

    def test_no_content_and_accepted_return_empty(self):
        for status in (202, 204):
            with self.subTest(status=status):
                result = run_with(
                    lambda r, s=status: httpx.Response(s),
                    lambda c: c.request("/me/sendMail", method="POST", body={"message": {}}),
                )
                self.assertEqual(result, {})

    def test_graph_error_body_message(self):
        body = {"error": {"code": "ErrorItemNotFound", "message": "The specified object was not found in the store."}}
        with self.assertRaises(HttpError) as ctx:
            run_with(lambda r: httpx.Response(404, json=body), lambda c: c.request("/me/messages/x"))
        self.assertEqual(ctx.exception.status, 404)
        self.assertEqual(ctx.exception.code, "ErrorItemNotFound")
        self.assertEqual(ctx.exception.message, "The specified object was not found in the store.")
        self.assertIn("(404)", str(ctx.exception))

    def test_error_falls_back_to_raw_text(self):
        with self.assertRaises(HttpError) as ctx:
            run_with(lambda r: httpx.Response(502, text="Bad gateway upstream"), lambda c: c.request("/me"))
        self.assertEqual(ctx.exception.status, 502)
        self.assertEqual(ctx.exception.message, "Bad gateway upstream")
        self.assertIsNone(ctx.exception.code)

    def test_invalid_json_success_body(self):
        with self.assertRaises(TransportError):
            run_with(lambda r: httpx.Response(200, text="<html>"), lambda c: c.request("/me"))

    def test_connection_failure_is_network_error(self):
        def handler(request):
            raise httpx.ConnectError("Name or service not known", request=request)

        with self.assertRaises(NetworkError) as ctx:
            run_with(handler, lambda c: c.request("/me"))
        self.assertIsInstance(ctx.exception.__cause__, httpx.ConnectError)

    def test_auth_failure_stops_before_http(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={})

        with self.assertRaises(NotAuthenticated):
            run_with(handler, lambda c: c.request("/me"), tokens=StaticTokens(error=NotAuthenticated()))
        self.assertEqual(calls, [])

    def test_no_automatic_retry(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, json={"error": {"code": "serviceNotAvailable", "message": "Try later"}})

        with self.assertRaises(HttpError):
            run_with(handler, lambda c: c.request("/me"))
        self.assertEqual(len(calls), 1)


def paged_handler(total: int, page_size: int, log: list):
    """Deterministic collection of `total` items served `page_size` at a time."""

    def handler(request: httpx.Request) -> httpx.Response:
        log.append(str(request.url))
        skip = int(request.url.params.get("$skip", "0"))
        chunk = [{"id": f"item-{i}", "n": i} for i in range(skip, min(skip + page_size, total))]
        body = {"@odata.context": f"{BASE}/$metadata#items", "value": chunk}
        if skip + page_size < total:
            body["@odata.nextLink"] = f"{BASE}/me/items?$skip={skip + page_size}"
        return httpx.Response(200, json=body)

    return handler


class Item(BaseModel):
    id: str
    n: int


class TestListItems(unittest.TestCase):
    """Cursor pagination bounded by max_items."""

    def test_never_exceeds_max_items(self):
        cases = [
            (0, 3, 5),
            (7, 3, 100),
            (9, 3, 9),
            (10, 3, 5),   # bound falls inside the second page
            (10, 5, 5),   # bound on a page boundary
            (10, 4, 1),
            (25, 10, 24),
            (4, 10, 2),   # single page truncated
        ]
        for total, page_size, max_items in cases:
            with self.subTest(total=total, page_size=page_size, max_items=max_items):
                log: list = []
                items = run_with(
                    paged_handler(total, page_size, log),
                    lambda c: c.list_items("/me/items", max_items=max_items),
                )
                expected = min(total, max_items)
                self.assertEqual([i["n"] for i in items], list(range(expected)))
                self.assertLessEqual(len(items), max_items)
                expected_pages = max(1, math.ceil(expected / page_size))
                self.assertEqual(len(log), expected_pages)

    def test_zero_max_items_makes_no_request(self):
        log: list = []
        items = run_with(paged_handler(5, 2, log), lambda c: c.list_items("/me/items", max_items=0))
        self.assertEqual(items, [])
        self.assertEqual(log, [])

    def test_follows_cursor_in_order(self):
        log: list = []
        run_with(paged_handler(7, 3, log), lambda c: c.list_items("/me/items", max_items=50))
        urls = [httpx.URL(u) for u in log]
        self.assertEqual({u.path for u in urls}, {"/v1.0/me/items"})
        self.assertEqual([u.params.get("$skip") for u in urls], [None, "3", "6"])

    def test_repeated_calls_are_identical(self):
        log: list = []
        handler = paged_handler(11, 4, log)

        async def twice(client):
            first = await client.list_items("/me/items", max_items=9)
            second = await client.list_items("/me/items", max_items=9)
            return first, second

        first, second = run_with(handler, twice)
        self.assertEqual(first, second)
        self.assertEqual(len(first), 9)

    def test_items_validated_into_model(self):
        log: list = []
        items = run_with(
            paged_handler(3, 2, log),
            lambda c: c.list_items("/me/items", max_items=10, model=Item),
        )
        self.assertEqual(items, [Item(id="item-0", n=0), Item(id="item-1", n=1), Item(id="item-2", n=2)])

    def test_null_value_page_is_transport_error(self):
        handler = lambda request: httpx.Response(200, json={"value": None})
        with self.assertRaises(TransportError) as ctx:
            run_with(handler, lambda c: c.list_items("/me/items"))
        self.assertNotIsInstance(ctx.exception, HttpError)

    def test_item_not_matching_model_is_transport_error(self):
        handler = lambda request: httpx.Response(200, json={"value": [{"id": "item-0", "n": "not-a-number"}]})
        with self.assertRaises(TransportError):
            run_with(handler, lambda c: c.list_items("/me/items", model=Item))


class TestUploads(unittest.TestCase):
    """Single-shot PUT and chunked upload sessions."""

    def test_upload_simple_puts_raw_bytes(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(201, json={"id": "file-1", "size": len(request.content)})

        payload = b"hello graph"
        result = run_with(
            handler,
            lambda c: c.upload_simple("/me/drive/root:/notes.txt:/content", payload, content_type="text/plain"),
        )
        self.assertEqual(result, {"id": "file-1", "size": len(payload)})
        request = seen[0]
        self.assertEqual(request.method, "PUT")
        self.assertEqual(request.content, payload)
        self.assertEqual(request.headers["Content-Type"], "text/plain")
        self.assertEqual(request.headers["Authorization"], "Bearer token-123")

    def _session_handler(self, state: dict, fail_at_chunk: int | None = None, session_status: int = 200):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith(":/createUploadSession"):
                state["session_requests"].append(request)
                if session_status != 200:
                    return httpx.Response(
                        session_status,
                        json={"error": {"code": "accessDenied", "message": "Access denied"}},
                    )
                return httpx.Response(200, json={"uploadUrl": UPLOAD_URL, "expirationDateTime": "2030-01-01T00:00:00Z"})

            state["chunks"].append(request)
            if fail_at_chunk is not None and len(state["chunks"]) == fail_at_chunk:
                return httpx.Response(500, text="chunk store unavailable")
            content_range = request.headers["Content-Range"]
            start_end, total = content_range.removeprefix("bytes ").split("/")
            end = int(start_end.split("-")[1])
            if end + 1 == int(total):
                return httpx.Response(201, json={"id": "big-file", "size": int(total)})
            return httpx.Response(202, json={"nextExpectedRanges": [f"{end + 1}-"]})

        return handler

    def _new_state(self) -> dict:
        return {"session_requests": [], "chunks": []}

    def test_resumable_upload_chunks(self):
        chunk_size = UPLOAD_CHUNK_ALIGNMENT
        payload = bytes(range(256)) * ((3 * chunk_size + 1234) // 256) + b"tail"
        state = self._new_state()
        progress = []

        result = run_with(
            self._session_handler(state),
            lambda c: c.upload_resumable(
                "/me/drive/root:/big.bin",
                payload,
                on_progress=lambda done, total: progress.append((done, total)),
                chunk_size=chunk_size,
            ),
        )

        self.assertEqual(result, {"id": "big-file", "size": len(payload)})
        session_request = state["session_requests"][0]
        self.assertEqual(session_request.method, "POST")
        self.assertEqual(session_request.url.path, "/v1.0/me/drive/root:/big.bin:/createUploadSession")
        self.assertEqual(
            json.loads(session_request.content),
            {"item": {"@microsoft.graph.conflictBehavior": "rename"}},
        )

        chunks = state["chunks"]
        self.assertEqual(len(chunks), math.ceil(len(payload) / chunk_size))
        ends = []
        for request in chunks:
            self.assertEqual(str(request.url), UPLOAD_URL)
            self.assertEqual(request.method, "PUT")
            self.assertNotIn("Authorization", request.headers)
            start_end, total = request.headers["Content-Range"].removeprefix("bytes ").split("/")
            start, end = (int(x) for x in start_end.split("-"))
            self.assertEqual(int(total), len(payload))
            self.assertEqual(len(request.content), end - start + 1)
            ends.append(end)
        self.assertEqual(ends, sorted(set(ends)))
        self.assertEqual(ends[-1], len(payload) - 1)
        self.assertEqual(b"".join(r.content for r in chunks), payload)
        self.assertEqual(progress[-1], (len(payload), len(payload)))
        self.assertEqual([done for done, _ in progress], [end + 1 for end in ends])

    def test_resumable_exact_multiple_of_chunk_size(self):
        chunk_size = UPLOAD_CHUNK_ALIGNMENT
        payload = b"\x01" * (2 * chunk_size)
        state = self._new_state()
        run_with(
            self._session_handler(state),
            lambda c: c.upload_resumable("/me/drive/root:/even.bin", payload, chunk_size=chunk_size),
        )
        ranges = [r.headers["Content-Range"] for r in state["chunks"]]
        self.assertEqual(
            ranges,
            [
                f"bytes 0-{chunk_size - 1}/{2 * chunk_size}",
                f"bytes {chunk_size}-{2 * chunk_size - 1}/{2 * chunk_size}",
            ],
        )

    def test_failed_chunk_aborts_upload(self):
        chunk_size = UPLOAD_CHUNK_ALIGNMENT
        payload = b"\x02" * (3 * chunk_size)
        state = self._new_state()
        with self.assertRaises(UploadSessionError) as ctx:
            run_with(
                self._session_handler(state, fail_at_chunk=2),
                lambda c: c.upload_resumable("/me/drive/root:/x.bin", payload, chunk_size=chunk_size),
            )
        self.assertEqual(ctx.exception.status, 500)
        self.assertEqual(ctx.exception.offset, chunk_size)
        self.assertIn("chunk store unavailable", str(ctx.exception))
        self.assertEqual(len(state["chunks"]), 2)

    def test_session_creation_failure(self):
        state = self._new_state()
        with self.assertRaises(UploadSessionError) as ctx:
            run_with(
                self._session_handler(state, session_status=403),
                lambda c: c.upload_resumable("/me/drive/root:/x.bin", b"\x03" * 10),
            )
        self.assertEqual(ctx.exception.status, 403)
        self.assertIn("Access denied", str(ctx.exception))
        self.assertEqual(state["chunks"], [])

    def test_chunk_network_failure(self):
        def handler(request):
            if request.url.path.endswith(":/createUploadSession"):
                return httpx.Response(200, json={"uploadUrl": UPLOAD_URL})
            raise httpx.WriteError("connection reset", request=request)

        with self.assertRaises(UploadSessionError) as ctx:
            run_with(handler, lambda c: c.upload_resumable("/me/drive/root:/x.bin", b"\x04" * 10))
        self.assertEqual(ctx.exception.offset, 0)

    def test_chunk_size_must_be_aligned(self):
        for bad in (0, -UPLOAD_CHUNK_ALIGNMENT, UPLOAD_CHUNK_ALIGNMENT + 1, 1000):
            with self.subTest(chunk_size=bad):
                with self.assertRaises(ValueError):
                    run_with(
                        lambda r: httpx.Response(500),
                        lambda c, b=bad: c.upload_resumable("/me/drive/root:/x.bin", b"x", chunk_size=b),
                    )


class TestConnectivity(unittest.TestCase):
    """Bounded /me self-test."""

    def test_ok(self):
        report = run_with(
            lambda r: httpx.Response(200, json={"userPrincipalName": "ada@example.com"}),
            lambda c: c.check_connectivity(timeout=5),
        )
        self.assertEqual(report.status, "OK")
        self.assertEqual(report.user, "ada@example.com")
        self.assertIsNotNone(report.response_time_ms)

    def test_timeout_is_reported_not_raised(self):
        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        report = run_with(slow, lambda c: c.check_connectivity(timeout=0.05))
        self.assertEqual(report.status, "FAILED")
        self.assertIn("Timeout", report.error)

    def test_auth_failure_is_reported(self):
        report = run_with(
            lambda r: httpx.Response(200, json={}),
            lambda c: c.check_connectivity(),
            tokens=StaticTokens(error=NotAuthenticated()),
        )
        self.assertEqual(report.status, "FAILED")
        self.assertEqual(report.error, "Not authenticated")


if __name__ == "__main__":
    unittest.main()

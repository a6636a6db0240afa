"""Tests for the httpx-based application-data client."""

import json
from collections.abc import Callable

import httpx
import pytest

from src.backend.base import reply_message
from src.backend.client import HttpBackend
from src.core.config import BackendConfig
from src.core.errors import BackendError

Handler = Callable[[httpx.Request], httpx.Response]


def _backend(handler: Handler, config: BackendConfig | None = None) -> HttpBackend:
    config = config or BackendConfig(base_url="https://ats.example.com")
    client = httpx.AsyncClient(base_url=config.base_url, transport=httpx.MockTransport(handler))
    return HttpBackend(config, client=client)


class TestQueryApplications:
    async def test_returns_applications(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"applications": [{"id": 1}, {"id": 2}, "junk"]})

        async with _backend(handler) as backend:
            apps = await backend.query_applications({"status": "pending", "jobId": "3"})

        assert apps == [{"id": 1}, {"id": 2}]
        assert seen[0].method == "GET"
        assert seen[0].url.path == "/api/ats/applications"
        assert seen[0].url.params["status"] == "pending"
        assert seen[0].url.params["jobId"] == "3"

    async def test_missing_list_gives_empty(self) -> None:
        async with _backend(lambda r: httpx.Response(200, json={"ok": True})) as backend:
            assert await backend.query_applications({}) == []

    async def test_error_status_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={"error": "Unauthorized"})

        async with _backend(handler) as backend:
            with pytest.raises(BackendError) as exc_info:
                await backend.query_applications({})
        assert exc_info.value.status == 401
        assert exc_info.value.message == "Unauthorized"

    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        async with _backend(handler) as backend:
            with pytest.raises(BackendError) as exc_info:
                await backend.query_applications({})
        assert exc_info.value.status is None


class TestUpdateStage:
    async def test_patch_body(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "PATCH"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"application": {"id": 7, "stage": "offer"}})

        async with _backend(handler) as backend:
            reply = await backend.update_application_stage(7, "offer")

        assert bodies == [{"applicationId": 7, "stage": "offer"}]
        assert reply == {"application": {"id": 7, "stage": "offer"}}

    async def test_non_json_error_uses_fallback(self) -> None:
        async with _backend(lambda r: httpx.Response(502, text="Bad Gateway")) as backend:
            with pytest.raises(BackendError, match="Request failed"):
                await backend.update_application_stage(7, "offer")


class TestBulk:
    async def test_post_body(self) -> None:
        bodies: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/ats/applications/bulk"
            bodies.append(json.loads(request.content))
            return httpx.Response(200, json={"success": True, "updatedCount": 2})

        async with _backend(handler) as backend:
            reply = await backend.bulk_application_action([1, 2], "tag", {"tags": ["python"]})

        assert bodies == [{"applicationIds": [1, 2], "action": "tag", "payload": {"tags": ["python"]}}]
        assert reply["updatedCount"] == 2

    async def test_success_false_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": False, "error": "Invalid action"})

        async with _backend(handler) as backend:
            with pytest.raises(BackendError, match="Invalid action"):
                await backend.bulk_application_action([1], "archive", {})


class TestExport:
    async def test_binary_reply(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content) == {"applicationIds": [1], "format": "csv"}
            return httpx.Response(
                200,
                content=b"id\n1\n",
                headers={"content-type": "text/csv", "content-disposition": 'attachment; filename="a.csv"'},
            )

        async with _backend(handler) as backend:
            response = await backend.export_applications([1], "csv")

        assert response.is_binary
        assert response.content == b"id\n1\n"
        assert response.content_disposition == 'attachment; filename="a.csv"'

    async def test_json_reply(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"success": True, "sheetUrl": "https://sheet"})

        async with _backend(handler) as backend:
            response = await backend.export_applications([1], "google_sheets")

        assert not response.is_binary
        assert response.data == {"success": True, "sheetUrl": "https://sheet"}

    async def test_requires_setup(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(428, json={"requiresSetup": True, "message": "Connect Google Sheets first"})

        async with _backend(handler) as backend:
            with pytest.raises(BackendError) as exc_info:
                await backend.export_applications([1], "google_sheets")
        assert exc_info.value.status == 428
        assert exc_info.value.message == "Connect Google Sheets first"

    async def test_error_fallback_message(self) -> None:
        async with _backend(lambda r: httpx.Response(500, json={})) as backend:
            with pytest.raises(BackendError, match="Failed to export applications"):
                await backend.export_applications([1], "csv")


class TestRevealContact:
    async def test_insufficient_credits(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/applications/reveal-contact"
            return httpx.Response(402, json={"error": "Insufficient credits"})

        async with _backend(handler) as backend:
            with pytest.raises(BackendError, match="Insufficient credits"):
                await backend.reveal_contact(3)


class TestLifecycle:
    def test_client_requires_context(self) -> None:
        backend = HttpBackend(BackendConfig())
        with pytest.raises(RuntimeError):
            _ = backend.client

    async def test_owned_client_has_auth_header(self) -> None:
        backend = HttpBackend(BackendConfig(api_token="secret"))
        async with backend:
            assert backend.client.headers["Authorization"] == "Bearer secret"
            assert str(backend.client.base_url).startswith("http://localhost:3000")
        with pytest.raises(RuntimeError):
            _ = backend.client

    async def test_injected_client_left_open(self) -> None:
        backend = _backend(lambda r: httpx.Response(200, json={}))
        async with backend:
            pass
        assert not backend.client.is_closed
        await backend.client.aclose()


class TestReplyMessage:
    def test_error_key_preferred(self) -> None:
        assert reply_message({"error": " Quota exceeded ", "message": "ignored"}, "fallback") == "Quota exceeded"

    def test_message_key_used(self) -> None:
        assert reply_message({"error": "", "message": "Try later"}, "fallback") == "Try later"

    def test_fallback_for_non_dict_or_blank(self) -> None:
        assert reply_message(None, "fallback") == "fallback"
        assert reply_message(["error"], "fallback") == "fallback"
        assert reply_message({"error": 42}, "fallback") == "fallback"

"""Tests for the console HTTP API."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import test_utils

from kagami.api.server import create_app
from kagami.storage.call_log import CallLogRepository, LlmCallRecord

ORIGIN = "http://localhost:5173"


@pytest.fixture
def repo(tmp_path):
    r = CallLogRepository(tmp_path / "api.db")
    r.insert_sync(LlmCallRecord(timestamp="2025-01-01 10:00:00", status="success", input="{}", output="[]"))
    r.insert_sync(LlmCallRecord(timestamp="2025-01-01 11:00:00", status="fail", input="{}", output="timeout"))
    r.insert_sync(LlmCallRecord(timestamp="2025-01-02 10:00:00", status="success", input="{}", output="[]"))
    yield r
    r.close()


def make_client(repository, registry=None) -> test_utils.TestClient:
    app = create_app(repository, registry, allowed_origins=[ORIGIN], tz="Asia/Shanghai")
    return test_utils.TestClient(test_utils.TestServer(app))


class TestLogs:

    @pytest.mark.asyncio
    async def test_list_defaults(self, repo):
        async with make_client(repo) as client:
            resp = await client.get("/api/llm-logs")
            assert resp.status == 200
            body = await resp.json()

        assert body["total"] == 3
        assert body["page"] == 1
        assert body["limit"] == 20
        assert [r["id"] for r in body["data"]] == [3, 2, 1]

    @pytest.mark.asyncio
    async def test_filters_and_paging(self, repo):
        async with make_client(repo) as client:
            resp = await client.get("/api/llm-logs", params={
                "status": "success", "limit": "1", "page": "2", "orderDirection": "asc",
            })
            body = await resp.json()

        assert body["total"] == 2
        assert [r["id"] for r in body["data"]] == [3]

    @pytest.mark.asyncio
    async def test_time_range_converted_to_gateway_timezone(self, repo):
        async with make_client(repo) as client:
            # 02:00-03:30 UTC is 10:00-11:30 in Asia/Shanghai
            resp = await client.get("/api/llm-logs", params={
                "startTime": "2025-01-01T02:00:00Z", "endTime": "2025-01-01T03:30:00Z",
            })
            body = await resp.json()

        assert body["total"] == 2
        assert {r["id"] for r in body["data"]} == {1, 2}

    @pytest.mark.parametrize("query", [
        {"page": "0"},
        {"limit": "101"},
        {"limit": "abc"},
        {"status": "maybe"},
        {"orderBy": "input"},
        {"orderDirection": "up"},
        {"startTime": "yesterday"},
    ])
    @pytest.mark.asyncio
    async def test_bad_query(self, repo, query):
        async with make_client(repo) as client:
            resp = await client.get("/api/llm-logs", params=query)
            assert resp.status == 400
            body = await resp.json()
        assert body["error"]

    @pytest.mark.asyncio
    async def test_get_one(self, repo):
        async with make_client(repo) as client:
            resp = await client.get("/api/llm-logs/2")
            assert resp.status == 200
            body = await resp.json()
        assert body == {"id": 2, "timestamp": "2025-01-01 11:00:00", "status": "fail", "input": "{}", "output": "timeout"}

    @pytest.mark.asyncio
    async def test_get_invalid_id(self, repo):
        async with make_client(repo) as client:
            resp = await client.get("/api/llm-logs/abc")
            assert resp.status == 400
            assert (await resp.json())["error"] == "Invalid ID parameter"

    @pytest.mark.asyncio
    async def test_get_missing(self, repo):
        async with make_client(repo) as client:
            resp = await client.get("/api/llm-logs/999")
            assert resp.status == 404
            assert (await resp.json())["error"] == "Log not found"

    @pytest.mark.asyncio
    async def test_repository_error_is_500(self):
        broken = MagicMock()
        broken.find = AsyncMock(side_effect=RuntimeError("db locked"))
        async with make_client(broken) as client:
            resp = await client.get("/api/llm-logs")
            assert resp.status == 500
            assert (await resp.json())["error"] == "Internal server error"


class TestRooms:

    @pytest.mark.asyncio
    async def test_room_status(self, repo):
        registry = MagicMock()
        registry.status.return_value = [{"room_id": "111", "energy": "99/100"}]
        async with make_client(repo, registry) as client:
            resp = await client.get("/api/rooms")
            body = await resp.json()
        assert body == {"rooms": [{"room_id": "111", "energy": "99/100"}]}

    @pytest.mark.asyncio
    async def test_without_registry(self, repo):
        async with make_client(repo) as client:
            resp = await client.get("/api/rooms")
            assert await resp.json() == {"rooms": []}


class TestCors:

    @pytest.mark.asyncio
    async def test_allowed_origin(self, repo):
        async with make_client(repo) as client:
            resp = await client.get("/api/rooms", headers={"Origin": ORIGIN})
            assert resp.headers["Access-Control-Allow-Origin"] == ORIGIN

    @pytest.mark.asyncio
    async def test_other_origin(self, repo):
        async with make_client(repo) as client:
            resp = await client.get("/api/rooms", headers={"Origin": "http://evil.example"})
            assert resp.status == 200
            assert "Access-Control-Allow-Origin" not in resp.headers

    @pytest.mark.asyncio
    async def test_preflight(self, repo):
        async with make_client(repo) as client:
            resp = await client.options("/api/llm-logs", headers={
                "Origin": ORIGIN, "Access-Control-Request-Method": "GET",
            })
            assert resp.status == 204
            assert "GET" in resp.headers["Access-Control-Allow-Methods"]

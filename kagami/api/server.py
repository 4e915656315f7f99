"""Read-only HTTP API for the web console.

Endpoints:
    GET /api/llm-logs        paged call log list with filters
    GET /api/llm-logs/{id}   one call log
    GET /api/rooms           per-room agent status

Runs alongside the gateway on the same event loop.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Literal

from aiohttp import web
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from kagami.storage.call_log import CallLogRepository
from kagami.utils.timefmt import DEFAULT_TIMEZONE, format_timestamp

if TYPE_CHECKING:
    from kagami.agent.registry import RoomAgentRegistry

ALLOWED_METHODS = "GET, OPTIONS"
ALLOWED_HEADERS = "Content-Type, Authorization"


class LogQueryParams(BaseModel):
    """Query string of GET /api/llm-logs."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)
    status: Literal["success", "fail"] | None = None
    start_time: datetime | None = Field(default=None, alias="startTime")
    end_time: datetime | None = Field(default=None, alias="endTime")
    order_by: Literal["timestamp", "status", "id"] = Field(default="timestamp", alias="orderBy")
    order_direction: Literal["asc", "desc"] = Field(default="desc", alias="orderDirection")


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _describe_validation_error(e: ValidationError) -> str:
    return ", ".join(
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
    )


def create_api_routes(
    repository: CallLogRepository,
    registry: "RoomAgentRegistry | None" = None,
    tz: str = DEFAULT_TIMEZONE,
) -> list[web.RouteDef]:
    """Route definitions for the console API."""

    async def list_logs(request: web.Request) -> web.Response:
        try:
            params = LogQueryParams.model_validate(dict(request.query))
        except ValidationError as e:
            return _error(400, _describe_validation_error(e))

        try:
            records, total = await repository.find(
                page=params.page,
                limit=params.limit,
                status=params.status,
                start_time=format_timestamp(params.start_time, tz) if params.start_time else None,
                end_time=format_timestamp(params.end_time, tz) if params.end_time else None,
                order_by=params.order_by,
                order_direction=params.order_direction,
            )
        except Exception as e:
            logger.exception(f"API: querying LLM logs failed: {e}")
            return _error(500, "Internal server error")

        return web.json_response({
            "data": [r.to_dict() for r in records],
            "total": total,
            "page": params.page,
            "limit": params.limit,
        })

    async def get_log(request: web.Request) -> web.Response:
        raw_id = request.match_info.get("id", "")
        try:
            record_id = int(raw_id)
        except ValueError:
            return _error(400, "Invalid ID parameter")

        try:
            record = await repository.find_by_id(record_id)
        except Exception as e:
            logger.exception(f"API: fetching LLM log {record_id} failed: {e}")
            return _error(500, "Internal server error")

        if record is None:
            return _error(404, "Log not found")
        return web.json_response(record.to_dict())

    async def rooms(request: web.Request) -> web.Response:
        data = registry.status() if registry is not None else []
        return web.json_response({"rooms": data})

    return [
        web.get("/api/llm-logs", list_logs),
        web.get("/api/llm-logs/{id}", get_log),
        web.get("/api/rooms", rooms),
    ]


def cors_middleware_factory(allowed_origins: list[str]):
    """CORS for the configured origins only. Preflight requests short-circuit."""
    origins = set(allowed_origins)

    @web.middleware
    async def cors_middleware(request: web.Request, handler):
        origin = request.headers.get("Origin")
        allowed = origin is not None and ("*" in origins or origin in origins)

        if request.method == "OPTIONS":
            response: web.StreamResponse = web.Response(status=204)
        else:
            response = await handler(request)

        if allowed:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = ALLOWED_METHODS
            response.headers["Access-Control-Allow-Headers"] = ALLOWED_HEADERS
        return response

    return cors_middleware


def create_app(
    repository: CallLogRepository,
    registry: "RoomAgentRegistry | None" = None,
    allowed_origins: list[str] | None = None,
    tz: str = DEFAULT_TIMEZONE,
) -> web.Application:
    app = web.Application(middlewares=[cors_middleware_factory(allowed_origins or [])])
    app.router.add_routes(create_api_routes(repository, registry, tz=tz))
    return app


class ApiServer:
    """aiohttp runner wrapper with start/stop."""

    def __init__(
        self,
        repository: CallLogRepository,
        registry: "RoomAgentRegistry | None" = None,
        host: str = "127.0.0.1",
        port: int = 8080,
        allowed_origins: list[str] | None = None,
        tz: str = DEFAULT_TIMEZONE,
    ):
        self._repository = repository
        self._registry = registry
        self._host = host
        self._port = port
        self._allowed_origins = allowed_origins or []
        self._tz = tz
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        app = create_app(self._repository, self._registry, self._allowed_origins, tz=self._tz)
        self._runner = web.AppRunner(app)
        await self._runner.setup()

        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info(f"HTTP API: http://{self._host}:{self._port}/api")

    async def stop(self) -> None:
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
            logger.debug("HTTP API stopped")

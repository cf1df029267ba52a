"""HTTP API for thumbnail batches.

Routes:
    GET  /api/health         liveness plus queue snapshot
    POST /api/scan           list .strm files under a directory
    POST /api/process        run a batch, streamed as Server-Sent Events
    GET  /api/queue/status   running / queued / limit / stats
    POST /api/queue/clear    discard jobs that have not started
    GET  /api/cache/stats    duration cache counters

When ``server.api_token`` is configured every route except /api/health
requires ``Authorization: Bearer <token>`` or ``X-API-Key: <token>``.

A batch started by /api/process runs to completion even if the client
disconnects; only the stream is abandoned.
"""
import hmac
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.responses import StreamingResponse

from strmthumb.config.models import AppConfig, BatchOptions
from strmthumb.domain.errors import StrmThumbError, UnsafeSourceError
from strmthumb.services import Services, build_services

logger = logging.getLogger(__name__)

SSE_MAX_BUFFER = 1000


class ScanRequest(BaseModel):
    directory: str


class ProcessRequest(BaseModel):
    files: List[str]
    options: BatchOptions = Field(default_factory=BatchOptions)


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"success": False, "error": message}, status_code=status_code)


def create_app(config: Optional[AppConfig] = None, services: Optional[Services] = None) -> FastAPI:
    config = config or (services.config if services else AppConfig())
    services = services or build_services(config)

    @asynccontextmanager
    async def lifespan(app_obj: FastAPI):
        await services.startup()
        logger.info(f"API ready on {config.server.host}:{config.server.port}")
        yield
        logger.info("API shutting down")
        await services.shutdown()

    app = FastAPI(title="strmthumb", lifespan=lifespan)
    app.state.services = services

    def require_token(
        authorization: Optional[str] = Header(default=None),
        x_api_key: Optional[str] = Header(default=None),
    ) -> None:
        expected = config.server.api_token
        if not expected:
            return
        supplied = x_api_key
        if authorization and authorization.lower().startswith("bearer "):
            supplied = authorization[7:].strip()
        if not supplied or not hmac.compare_digest(supplied.encode(), expected.encode()):
            raise HTTPException(status_code=401, detail="Unauthorized")

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error(str(exc.detail), exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = first.get("msg", "Invalid request")
        return _error(f"{location}: {message}" if location else message, 400)

    @app.exception_handler(UnsafeSourceError)
    async def unsafe_source_handler(request: Request, exc: UnsafeSourceError):
        return _error(str(exc), 400)

    @app.get("/api/health")
    async def health():
        status = services.orchestrator.queue_status()
        return {"status": "ok", "queue": status.model_dump()}

    @app.post("/api/scan", dependencies=[Depends(require_token)])
    async def scan(body: ScanRequest):
        directory = services.path_guard.validate(body.directory, must_exist=True, must_be_dir=True)
        files = services.scanner.scan(directory)
        logger.info(f"Scan of {directory}: {len(files)} .strm files")
        return {"success": True, "files": files, "count": len(files)}

    @app.post("/api/process", dependencies=[Depends(require_token)])
    async def process(body: ProcessRequest):
        options = body.options
        if options.output_directory is not None:
            output_dir = services.path_guard.validate(options.output_directory)
            options = options.model_copy(update={"output_directory": Path(output_dir)})
        try:
            events = services.orchestrator.stream_batch(body.files, options, max_buffer=SSE_MAX_BUFFER)
        except (ValueError, StrmThumbError) as e:
            return _error(str(e), 400)

        async def event_stream():
            async for event in events:
                yield f"data: {event.model_dump_json()}\n\n"

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    @app.get("/api/queue/status", dependencies=[Depends(require_token)])
    async def queue_status():
        status = services.orchestrator.queue_status()
        payload = status.model_dump()
        payload["stats"]["success_rate"] = status.stats.success_rate
        return payload

    @app.post("/api/queue/clear", dependencies=[Depends(require_token)])
    async def queue_clear():
        cleared = services.task_queue.clear()
        return {"success": True, "cleared": cleared}

    @app.get("/api/cache/stats", dependencies=[Depends(require_token)])
    async def cache_stats():
        return services.cache.stats()

    return app

import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from uptimewatch.api.health import router as health_router
from uptimewatch.api.metrics import router as metrics_router
from uptimewatch.api.scheduler import router as scheduler_router
from uptimewatch.api.services import router as services_router
from uptimewatch.core.logging import configure_logging
from uptimewatch.services.prober import PROBE_TIMEOUT_S, http_probe
from uptimewatch.services.scheduler import PollScheduler
from uptimewatch.storage.repository import InMemoryRepository, RepositoryUnavailableError
from uptimewatch.storage.sqlite_repository import SQLiteRepository

SERVICE_NAME = 'uptimewatch'
SERVICE_VERSION = '0.1.0'

DEFAULT_INTERVAL_S = 60.0
DEFAULT_WARMUP_S = 5.0


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _request_id(request: Request) -> str:
    if not getattr(request.state, 'request_id', None):
        request.state.request_id = str(uuid4())
    return request.state.request_id


def _request_fields(request: Request, status_code: int, **fields: object) -> dict[str, object]:
    """Log context shared by the request middleware and the error handlers."""
    return {
        'request_id': _request_id(request),
        'method': request.method,
        'path': request.url.path,
        'status_code': status_code,
        **fields,
    }


def _error_response(request: Request, status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={'detail': detail},
        headers={'X-Request-ID': _request_id(request)},
    )


def create_app(
    scheduler_interval_s: float | None = None,
    warmup_s: float | None = None,
    probe_timeout_s: float | None = None,
    storage_backend: str | None = None,
    sqlite_path: str | None = None,
    admin_secret: str | None = None,
) -> FastAPI:
    configure_logging()
    interval = scheduler_interval_s
    if interval is None:
        interval = _env_float('UPTIMEWATCH_SCHEDULER_INTERVAL_S', DEFAULT_INTERVAL_S)
        if 0 < interval < 1.0:
            interval = 1.0
    if interval <= 0:
        interval = DEFAULT_INTERVAL_S
    warmup = warmup_s
    if warmup is None:
        warmup = _env_float('UPTIMEWATCH_WARMUP_S', DEFAULT_WARMUP_S)
    warmup = max(0.0, warmup)
    timeout_s = probe_timeout_s
    if timeout_s is None:
        timeout_s = _env_float('UPTIMEWATCH_PROBE_TIMEOUT_S', PROBE_TIMEOUT_S)
    if timeout_s <= 0:
        timeout_s = PROBE_TIMEOUT_S
    elif timeout_s < 0.1:
        timeout_s = 0.1
    backend = storage_backend or os.getenv('UPTIMEWATCH_STORAGE_BACKEND', 'memory')
    db_path = sqlite_path or os.getenv('UPTIMEWATCH_SQLITE_PATH', './uptimewatch.sqlite3')
    secret = admin_secret if admin_secret is not None else os.getenv('UPTIMEWATCH_ADMIN_SECRET')

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await app.state.scheduler.start()
        try:
            yield
        finally:
            await app.state.scheduler.stop()

    app = FastAPI(title='uptimewatch API', version=SERVICE_VERSION, lifespan=lifespan)
    app.state.service_name = SERVICE_NAME
    app.state.version = SERVICE_VERSION
    app.state.started_at = datetime.now(UTC)
    app.state.storage_backend = backend if backend == 'sqlite' else 'memory'
    app.state.storage_path_display = (
        Path(db_path).name if app.state.storage_backend == 'sqlite' else 'memory'
    )
    if app.state.storage_backend == 'sqlite':
        app.state.repository = SQLiteRepository(db_path)
        try:
            app.state.repository.initialize()
            site_started_at = app.state.repository.site_started_at(app.state.started_at)
        except RepositoryUnavailableError as exc:
            raise RuntimeError(
                f'Failed to initialize SQLite repository at {db_path}'
            ) from exc
    else:
        app.state.repository = InMemoryRepository()
        site_started_at = app.state.repository.site_started_at(app.state.started_at)
    # survives restarts when the backend is persistent
    app.state.site_started_at = site_started_at
    app.state.admin_secret = secret or None
    app.state.clock = None
    app.state.probe_timeout_s = timeout_s
    app.state.probe_target = lambda url: http_probe(url, timeout_s=app.state.probe_timeout_s)
    app.state.scheduler = PollScheduler(app, interval, warmup_s=warmup)

    logger = logging.getLogger('uptimewatch.http')

    @app.exception_handler(RepositoryUnavailableError)
    async def repository_unavailable_handler(
        request: Request, exc: RepositoryUnavailableError
    ) -> JSONResponse:
        logger.error('repository_unavailable', extra=_request_fields(request, 503, error=str(exc)))
        return _error_response(request, 503, 'Storage unavailable')

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception('unhandled_exception', extra=_request_fields(request, 500))
        return _error_response(request, 500, 'Internal Server Error')

    @app.middleware('http')
    async def request_logging(request: Request, call_next):
        request.state.request_id = request.headers.get('X-Request-ID') or str(uuid4())
        started = time.perf_counter()
        response = await call_next(request)
        response.headers['X-Request-ID'] = request.state.request_id
        logger.info(
            'request_complete',
            extra=_request_fields(
                request,
                response.status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 3),
            ),
        )
        return response

    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(services_router)
    app.include_router(scheduler_router)
    return app


app = create_app()

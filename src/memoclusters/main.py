from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from .config import settings
from .errors import NotFoundError, SessionStateError, StoreError, UnauthorizedError
from .logging import configure_logging, logger
from .middleware import AccessLogAndMetricsMiddleware, RequestIDMiddleware
from .routers import clusters, health, review


async def _not_found(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


async def _unauthorized(request: Request, exc: UnauthorizedError) -> JSONResponse:
    return JSONResponse(status_code=403, content={"detail": str(exc)})


async def _session_state(request: Request, exc: SessionStateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


async def _store_unavailable(request: Request, exc: StoreError) -> JSONResponse:
    # 取得失敗はセッション開始にとって致命的（load error）。詳細は返さずログに残す
    logger.error("store_unavailable", path=request.url.path, error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(status_code=503, content={"detail": "load error"})


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    # 終了時、発行済みのスケジュール書き込みが落ち着くまで待つ
    service = review.get_service()
    pending = service.pending_writes
    await service.drain()
    logger.info("review_writes_drained", drained=pending, live_sessions=len(review.sessions))


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    configure_logging()
    app = FastAPI(title="MemoClusters API", version="0.1.0", lifespan=_lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Starlette では後から追加したミドルウェアが外側で実行される。
    # AccessLog は RequestID の内側で request_id を参照する。
    app.add_middleware(AccessLogAndMetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Starlette は例外の MRO 順にハンドラを探すため、派生クラス側が優先される
    app.add_exception_handler(NotFoundError, _not_found)
    app.add_exception_handler(UnauthorizedError, _unauthorized)
    app.add_exception_handler(SessionStateError, _session_state)
    app.add_exception_handler(StoreError, _store_unavailable)

    app.include_router(health.router)
    app.include_router(clusters.router, prefix="/api")
    app.include_router(review.router, prefix="/api")

    logger.info("app_created", environment=settings.environment, batch_size=settings.review_batch_size)
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("memoclusters.main:app", host="0.0.0.0", port=8000)

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from .config import settings
from .errors import (
    NotFoundError,
    ProviderError,
    StoreError,
    ValidationError,
)
from .logging import configure_logging, logger
from .middleware import AccessLogAndMetricsMiddleware, RequestIDMiddleware
from .providers import shutdown_providers
from .routers import health, history, items, quiz, story, translate
from .session import LingoLogSession, build_session


def _error_body(code: str, message: str, **extra: object) -> dict[str, object]:
    return {"error": {"code": code, "message": message, **extra}}


def _install_error_handlers(app: FastAPI) -> None:
    """Map domain errors onto HTTP status codes.

    ルータ側では例外を送出するだけにして、ステータスコードへの変換はここに集約する。
    """

    @app.exception_handler(ValidationError)
    async def _on_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content=_error_body("validation_error", str(exc)))

    @app.exception_handler(NotFoundError)
    async def _on_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(
            status_code=404,
            content=_error_body("not_found", str(exc), item_id=exc.item_id),
        )

    @app.exception_handler(StoreError)
    async def _on_store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("store_error_response", path=request.url.path, error=str(exc)[:200])
        return JSONResponse(status_code=503, content=_error_body("store_error", "storage unavailable"))

    @app.exception_handler(ProviderError)
    async def _on_provider_error(request: Request, exc: ProviderError) -> JSONResponse:
        logger.warning(
            "provider_error_response",
            path=request.url.path,
            provider_error=type(exc).__name__,
            reason=exc.reason,
        )
        return JSONResponse(
            status_code=502,
            content=_error_body("provider_error", str(exc), reason=exc.reason),
        )


def create_app(session: LingoLogSession | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    `session` を渡すとそれを使い（テスト用）、未指定なら設定値から1組だけ組み立てる。
    """

    configure_logging()

    @asynccontextmanager
    async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        app.state.session.close()
        shutdown_providers()

    app = FastAPI(title="LingoLog API", version="0.1.0", lifespan=_lifespan)
    app.state.session = session or build_session()
    logger.info(
        "app_created",
        environment=settings.environment,
        items=len(app.state.session.repository),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # Starlette では後から追加したミドルウェアが外側で実行される。
    # RequestID を外側に置き、AccessLog が採番済みの request_id を参照できるようにする。
    app.add_middleware(AccessLogAndMetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    _install_error_handlers(app)

    app.include_router(health.router)
    app.include_router(items.router, prefix="/api/items")
    app.include_router(quiz.router, prefix="/api/quiz")
    app.include_router(history.router, prefix="/api")
    app.include_router(translate.router, prefix="/api/translate")
    app.include_router(story.router, prefix="/api/story")

    return app


def run() -> None:
    """Console entry point: serve the API with uvicorn."""

    import uvicorn

    uvicorn.run(create_app(), host="127.0.0.1", port=8000)

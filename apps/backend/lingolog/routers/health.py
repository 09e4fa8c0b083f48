from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..metrics import registry

router = APIRouter(tags=["health"])


@router.get("/healthz")
def health_check() -> dict[str, str]:
    """Simple health check endpoint.

    ライブネス確認用の簡易エンドポイント。ストアには触れない。
    """
    return {"status": "ok"}


@router.get("/metrics")
def metrics() -> JSONResponse:
    """Return in-memory metrics snapshot.

    p50/p95/エラー/件数をパス別に返す簡易メトリクス。
    """
    return JSONResponse(content={"paths": registry.snapshot()})

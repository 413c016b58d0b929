from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from . import __version__
from .config import Settings, settings as default_settings
from .errors import ContactNotFound, CoreMemoryError, InvalidRating, InvalidState, ScheduleOverflow, SessionStateError
from .logging import configure_logging, logger
from .metrics import MetricsRegistry
from .middleware import AccessLogAndMetricsMiddleware, RequestIDMiddleware
from .mnemonic import build_mnemonic_provider
from .routers import contacts, health, review
from .session import SessionRegistry
from .store import ContactStore


_STATUS_BY_ERROR: tuple[tuple[type[CoreMemoryError], int], ...] = (
    (InvalidRating, 422),
    (ScheduleOverflow, 422),
    (InvalidState, 409),
    (ContactNotFound, 404),
    (SessionStateError, 409),
)


def _status_for(exc: CoreMemoryError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def _handle_domain_error(request: Request, exc: CoreMemoryError) -> JSONResponse:
    """Translate domain errors into `{"detail", "error"}` JSON responses."""
    if isinstance(exc, InvalidState):
        # 永続データの破損を示すため補正せずに記録する
        logger.error(
            "invalid_review_state",
            contact_id=exc.contact_id,
            field=exc.field,
            detail=str(exc),
            request_id=getattr(request.state, "request_id", None),
        )
    return JSONResponse(status_code=_status_for(exc), content={"detail": str(exc), "error": exc.code})


def create_app(settings: Settings | None = None, store: ContactStore | None = None) -> FastAPI:
    """Create and configure the FastAPI application instance.

    ストア・記憶フック生成器・セッション管理・メトリクスはすべて ``app.state`` に保持する。
    テストでは ``tmp_path`` 上の ``ContactStore`` を渡して独立した DB を使う。
    """
    cfg = settings or default_settings
    configure_logging(cfg)
    app = FastAPI(title="Core Memory API", version=__version__)

    app.state.settings = cfg
    app.state.store = store or ContactStore(cfg.db_path)
    app.state.mnemonic_provider = build_mnemonic_provider(cfg)
    app.state.sessions = SessionRegistry(max_sessions=cfg.max_review_sessions)
    app.state.metrics = MetricsRegistry()

    configured_origins = list(cfg.allowed_cors_origins)
    allow_credentials = bool(configured_origins)
    if not configured_origins:
        configured_origins = ["*"]
    # ワイルドカード許可時は資格情報付き CORS を無効化する
    app.add_middleware(
        CORSMiddleware,
        allow_origins=configured_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # 後から追加したミドルウェアが外側: RequestID で採番 → AccessLog が記録
    app.add_middleware(AccessLogAndMetricsMiddleware, registry=app.state.metrics)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(CoreMemoryError, _handle_domain_error)  # type: ignore[arg-type]

    app.include_router(health.router)
    app.include_router(contacts.router, prefix="/api")
    app.include_router(review.router, prefix="/api/review")

    logger.info(
        "app_created",
        environment=cfg.environment,
        db_path=app.state.store.db_path,
        review_timezone=cfg.review_timezone,
        mnemonic_provider=app.state.mnemonic_provider.name,
    )
    return app

import logging
from contextlib import asynccontextmanager
from logging.handlers import RotatingFileHandler
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from quotedesk.config import Settings, settings as default_settings
from quotedesk.container import build_container
from quotedesk.errors import QuoteDeskError
from quotedesk.interfaces import PaymentVerifier
from quotedesk.routers import bookings, operators, quotes, wallets

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    """Console + rotating file logging, configured once per process."""
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(),
            RotatingFileHandler(
                log_dir / "quotedesk.log",
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=5,
                encoding="utf-8",
            ),
        ],
    )

    # Quiet noisy libraries
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


async def handle_domain_error(request: Request, exc: QuoteDeskError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": type(exc).__name__,
            "detail": exc.message,
            "context": {k: v for k, v in exc.details.items() if v is not None},
        },
    )


def create_app(settings: Settings | None = None, verifier: PaymentVerifier | None = None) -> FastAPI:
    settings = settings or default_settings
    container = build_container(settings, verifier=verifier)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"QuoteDesk starting ({settings.storage_backend} storage)")
        yield
        await container.close()
        logger.info("QuoteDesk stopped")

    app = FastAPI(
        title="QuoteDesk",
        description="Travel quote, booking and operator workflow engine",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(QuoteDeskError, handle_domain_error)

    app.include_router(quotes.router, prefix="/api/quotes", tags=["quotes"])
    app.include_router(bookings.router, prefix="/api/bookings", tags=["bookings"])
    app.include_router(operators.router, prefix="/api", tags=["operators"])
    app.include_router(wallets.router, prefix="/api/wallets", tags=["wallets"])

    @app.get("/api/health")
    async def health_check():
        return {"status": "ok", "service": "quotedesk"}

    return app


def app_factory() -> FastAPI:
    """Entry point for `uvicorn quotedesk.main:app_factory --factory`."""
    configure_logging(default_settings)
    return create_app(default_settings)

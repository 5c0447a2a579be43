import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.core.logging import configure_logging
from app.db.init_db import init_db
from app.db.session import engine
from app.services.errors import LinkLockerError, TransientFailure

# Import routers
from app.api.auth import router as auth_router
from app.api.links import router as links_router
from app.api.access import router as access_router
from app.api.billing import router as billing_router
from app.api.mp_webhook import router as mp_webhook_router
from app.api.coinbase_webhook import router as coinbase_webhook_router

logger = logging.getLogger(__name__)

@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(engine)
    yield

def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    @app.get("/health")
    def health():
        return {"status" : "ok", "env" : settings.app_env}

    # Business-rule refusals carry their own status and code
    @app.exception_handler(LinkLockerError)
    async def link_locker_error(request: Request, exc: LinkLockerError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_detail()})

    # Database trouble is a retryable failure, never a quota refusal
    @app.exception_handler(OperationalError)
    async def database_unavailable(request: Request, exc: OperationalError):
        logger.error("database_unavailable", extra={"path": request.url.path, "error": str(exc.orig)})
        failure = TransientFailure()
        return JSONResponse(status_code=failure.status_code, content={"detail": failure.to_detail()})

    app.include_router(auth_router)
    app.include_router(links_router)
    # Public link access
    app.include_router(access_router)
    app.include_router(billing_router)
    # Payment provider webhooks
    app.include_router(mp_webhook_router)
    app.include_router(coinbase_webhook_router)

    # Uploaded files
    app.mount("/files", StaticFiles(directory=settings.storage_dir, check_dir=False), name="files")

    return app

app = create_app()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from planner.api.v1.router import api_router
from planner.core.config import settings
from planner.core.database import SessionLocal
from planner.core.logging import configure_logging
from planner.services.erp_client import build_erp_client
from planner.services.rotation_service import check_and_rotate

logger = logging.getLogger(__name__)


def run_startup_rotation() -> None:
    """Month rollover check. Never blocks startup."""
    db = SessionLocal()
    try:
        result = check_and_rotate(db)
        logger.info("Startup rotation check finished", extra={"result": result})
    except Exception:
        db.rollback()
        logger.error("Startup rotation check failed", exc_info=True)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.ERP_BASE_URL:
        app.state.erp_client = build_erp_client()
    else:
        app.state.erp_client = None
        logger.warning("ERP_BASE_URL is not set; live ERP data is disabled")

    run_startup_rotation()
    yield

    if app.state.erp_client is not None:
        await app.state.erp_client.aclose()


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(title=settings.PROJECT_NAME, lifespan=lifespan)

    # Allow frontend callers (dev server/static file served)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)
    return app


app = create_app()

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.orm import Session

from planner.core.database import SessionLocal
from planner.services.erp_client import ERPClient, build_erp_client

logger = logging.getLogger(__name__)

T = TypeVar("T")

SyncJob = Callable[[Session, ERPClient], Awaitable[T]]


async def _run(job: SyncJob) -> T:
    db = SessionLocal()
    try:
        async with build_erp_client() as client:
            return await job(db, client)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def run_sync_job(job: SyncJob) -> T:
    """Run an async sync job outside the API: fresh session, fresh ERP client, own event loop."""
    return asyncio.run(_run(job))


def run_db_job(job: Callable[[Session], T]) -> T:
    db = SessionLocal()
    try:
        return job(db)
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

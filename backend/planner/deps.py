from typing import Callable, Generator, Optional

from fastapi import Request
from sqlalchemy.orm import Session

from planner.core.database import SessionLocal
from planner.services.erp_client import ERPClient


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """For long-running responses (SSE) that must own their session."""
    return SessionLocal


def get_erp_client(request: Request) -> Optional[ERPClient]:
    """Shared ERP client built at startup; None when the ERP is not configured."""
    return getattr(request.app.state, "erp_client", None)

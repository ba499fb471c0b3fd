import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from planner.deps import get_db
from planner.services.rotation_service import check_and_rotate, latest_historical_period, needs_rotation
from planner.utils.periods import current_period

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/check", summary="Whether the month rollover is pending")
def check_rotation(db: Session = Depends(get_db)):
    latest = latest_historical_period(db)
    year, month = current_period()
    return {
        "needs_rotation": needs_rotation(db),
        "current_month": {"year": year, "month": month},
        "latest_historical_month": {"year": latest[0], "month": latest[1]} if latest else None,
    }


@router.post("/run", summary="Rotate current-month sales into history and prune old data")
def run_rotation(force: bool = False, db: Session = Depends(get_db)):
    try:
        return check_and_rotate(db, force=force)
    except Exception as exc:
        db.rollback()
        logger.error("Rotation failed: %s", exc, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Rotation failed: {exc}",
        )

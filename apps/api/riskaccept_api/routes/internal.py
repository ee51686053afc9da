"""Internal endpoints for scheduler-driven tasks."""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from riskaccept_api.auth.users import verify_internal_key
from riskaccept_api.db.session import get_db
from riskaccept_api.utils.clock import to_naive_utc, utcnow
from riskaccept_api.workflow.sweeper import ExpirySweeper

router = APIRouter(prefix="/internal", tags=["scheduler"])


class SweepRequest(BaseModel):
    """Optional clock override for the sweep."""

    now: Optional[datetime] = Field(None, description="Sweep as of this instant (defaults to current UTC time)")


class SweepResponse(BaseModel):
    """Result of one sweep run."""

    expired: int
    now: datetime


@router.post("/risk-acceptances/expiry-sweep", response_model=SweepResponse)
async def run_expiry_sweep(
    request: Request,
    request_data: Optional[SweepRequest] = None,
    db: Session = Depends(get_db),
    _: bool = Depends(verify_internal_key),
):
    """
    Expire approved acceptances whose review date has passed.

    System-automatic; safe to call repeatedly.
    """
    now = to_naive_utc(request_data.now) if request_data and request_data.now else utcnow()
    correlation_id = getattr(request.state, "correlation_id", None)
    expired = ExpirySweeper(db).sweep(now=now, correlation_id=correlation_id)
    return SweepResponse(expired=expired, now=now)

"""
Admin / observability endpoints
===============================

GET /api/v1/admin/audit   -- run the seat-consistency audit now (admin only)
GET /api/v1/admin/health  -- simple health check
"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from carpool.api.dependencies import get_actor_id, get_db
from carpool.api.middleware import RATE_LIMIT, limiter
from carpool.api.schemas import AuditResponse, HealthResponse
from carpool.domain.errors import Forbidden
from carpool.infrastructure.repositories import UserRepository
from carpool.services.booking_engine import is_admin
from carpool.workers.auditor import audit_trips

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get(
    "/audit",
    response_model=AuditResponse,
    summary="Check available seats against active bookings for every trip",
)
@limiter.limit(RATE_LIMIT)
async def run_audit(
    request: Request,
    actor_id: int = Depends(get_actor_id),
    db: AsyncSession = Depends(get_db),
):
    if not is_admin(await UserRepository(db).get_by_id(actor_id)):
        raise Forbidden(actor_id, "run the audit")
    return AuditResponse.model_validate(await audit_trips(db))


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()

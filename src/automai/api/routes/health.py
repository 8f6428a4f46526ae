"""GET /health/live: liveness probe (no auth, no outbound calls)."""

from __future__ import annotations

from fastapi import APIRouter

from automai.api.schemas import LivenessResponse

router = APIRouter()


@router.get("/health/live", response_model=LivenessResponse)
async def liveness_probe() -> LivenessResponse:
    """Fast liveness probe. Returns immediately without touching any gateway."""
    return LivenessResponse(status="alive")

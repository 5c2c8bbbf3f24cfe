import logging

from fastapi import APIRouter, Body, HTTPException

from ..schemas import DashboardPayload, DashboardRequest
from ..services.dashboard_errors import BackendError, FallbackExhausted, GenerationTimeoutError
from ..services.dashboard_service import get_dashboard_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/dashboard", tags=["dashboard"])


@router.post("/daily", response_model=DashboardPayload)
async def daily_dashboard(
    req: DashboardRequest = Body(
        ...,
        example={
            "profile": {
                "name": "Maya",
                "birthdate": "1992-04-03",
                "mood": "Curious",
                "personality": "The Seeker",
            },
            "date": "2025-05-01",
        },
    )
) -> DashboardPayload:
    service = get_dashboard_service()
    try:
        return await service.run(req.profile, req.date, req.session)
    except GenerationTimeoutError as exc:
        logger.warning("dashboard_backend_timeout", extra={"date_iso": req.date})
        raise HTTPException(status_code=504, detail=str(exc)) from exc
    except BackendError as exc:
        logger.warning("dashboard_backend_failed", extra={"date_iso": req.date})
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except FallbackExhausted as exc:
        logger.exception("dashboard_fallback_exhausted", extra={"date_iso": req.date})
        raise HTTPException(status_code=500, detail="Unable to build daily dashboard") from exc

"""AI routes: research, comparison, optimisation, plan changes, suggestions, packing."""

from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from core.cache import AICacheService
from core.cleanup import CleanupService
from core.container import container
from core.logging import get_logger
from models.ai import (
    AIResponse, CompareRequest, OptimiseRequest, PackingRequest,
    PlanChangeRequest, ResearchRequest, SuggestionsRequest,
)
from services.ai import InvalidAIRequest, TripAIService

logger = get_logger(__name__)
router = APIRouter(prefix="/api/ai", tags=["ai"])


def get_ai_service() -> TripAIService:
    return container.trip_ai_service()


def get_ai_cache() -> AICacheService:
    return container.ai_cache()


def get_cleanup_service() -> CleanupService:
    return container.cleanup_service()


async def _run(operation: str, call: Callable[[], Awaitable[Dict[str, Any]]]):
    try:
        return await call()
    except InvalidAIRequest as e:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": str(e)})
    except Exception as e:
        logger.error("AI operation failed", operation=operation, error=str(e))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": f"{operation} failed"}
        )


@router.post("/research", response_model=AIResponse)
async def research(request: ResearchRequest, service: TripAIService = Depends(get_ai_service)):
    """Destination research (hotels, activities, restaurants, transport)."""
    return await _run("AI research", lambda: service.research(request))


@router.post("/compare", response_model=AIResponse)
async def compare(request: CompareRequest, service: TripAIService = Depends(get_ai_service)):
    """Compare two or more plan versions of a trip."""
    return await _run("Plan comparison", lambda: service.compare_plans(request))


@router.post("/optimise", response_model=AIResponse)
async def optimise(request: OptimiseRequest, service: TripAIService = Depends(get_ai_service)):
    return await _run("Cost optimization", lambda: service.optimise_costs(request))


@router.post("/plan-change", response_model=AIResponse)
async def plan_change(request: PlanChangeRequest, service: TripAIService = Depends(get_ai_service)):
    return await _run("Plan change research", lambda: service.plan_change(request))


@router.post("/suggestions", response_model=AIResponse)
async def suggestions(request: SuggestionsRequest, service: TripAIService = Depends(get_ai_service)):
    return await _run("Suggestions", lambda: service.suggestions(request))


@router.post("/packing", response_model=AIResponse)
async def packing(request: PackingRequest, service: TripAIService = Depends(get_ai_service)):
    return await _run("Packing list generation", lambda: service.packing_list(request))


# ============================================================================
# Cache maintenance
# ============================================================================

@router.post("/cache/cleanup")
async def cleanup_cache(cleanup: CleanupService = Depends(get_cleanup_service)):
    """Run one expired-entry sweep, for external cron."""
    results = await cleanup.run_once()
    return {"deleted": results["expired_cache"]}


@router.get("/cache/ttl")
async def cache_ttl(cache: AICacheService = Depends(get_ai_cache)):
    """Effective TTL per query type, in hours."""
    return {"ttl_hours": cache.ttl_table_hours()}

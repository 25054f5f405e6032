from typing import List

from fastapi import APIRouter, Depends, Query

from tirecode.api.deps import get_search_log_service
from tirecode.core.deps import get_current_admin
from tirecode.schemas.analytics import AnalyticsOverview, TopSearch
from tirecode.services.search_log import SearchLogService

router = APIRouter(
    prefix="/v1/admin/analytics",
    tags=["analytics"],
    dependencies=[Depends(get_current_admin)],
)


@router.get("/overview", response_model=AnalyticsOverview)
async def overview(
    days: int = Query(7, ge=1, le=365),
    service: SearchLogService = Depends(get_search_log_service),
):
    return await service.get_analytics(days=days)


@router.get("/top-searches", response_model=List[TopSearch])
async def top_searches(
    limit: int = Query(10, ge=1, le=100),
    days: int = Query(7, ge=1, le=365),
    service: SearchLogService = Depends(get_search_log_service),
):
    return await service.get_top_searches(limit=limit, days=days)

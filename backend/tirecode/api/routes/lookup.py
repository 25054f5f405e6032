from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from tirecode.api.deps import get_lookup_service, get_suggestions_service
from tirecode.core.config import settings
from tirecode.core.rate_limit import client_ip, limiter
from tirecode.domain.errors import BadRequestError, MissingParameterError
from tirecode.schemas.lookup import LookupOut, SuggestionOut
from tirecode.services.lookup import LookupService
from tirecode.services.suggestions import SuggestionsService

router = APIRouter(prefix="/v1/lookup", tags=["lookup"])


@router.get("", response_model=LookupOut, response_model_exclude_none=True)
@limiter.limit(settings.LOOKUP_RATE)
async def lookup(
    request: Request,
    code: Optional[str] = Query(None, max_length=64),
    size: Optional[str] = Query(None, max_length=64),
    li: Optional[str] = Query(None, max_length=8),
    si: Optional[str] = Query(None, max_length=8),
    service: LookupService = Depends(get_lookup_service),
):
    has_code = bool(code and code.strip())
    has_size = bool(size and size.strip())
    if has_code and has_size:
        raise BadRequestError('Provide either "code" or "size", not both')
    if not has_code and not has_size:
        raise MissingParameterError('Either "code" or "size" query parameter is required')

    ip = client_ip(request)
    if has_code:
        return await service.find_by_code(code, load_index=li, speed_index=si, ip=ip)
    return await service.find_by_size(size, load_index=li, speed_index=si, ip=ip)


@router.get("/suggestions", response_model=List[SuggestionOut])
@limiter.limit(settings.LOOKUP_RATE)
async def suggestions(
    request: Request,
    query: str = Query("", max_length=64),
    limit: int = Query(10, ge=1, le=50),
    service: SuggestionsService = Depends(get_suggestions_service),
):
    return await service.get_suggestions(query, limit)

from fastapi import APIRouter, Depends, status

from tirecode.api.deps import get_mapping_service
from tirecode.core.deps import get_current_admin
from tirecode.schemas.mapping import MappingCreate, MappingOut, MappingUpdate
from tirecode.services.mappings import MappingService

router = APIRouter(
    prefix="/v1/admin/mappings",
    tags=["admin"],
    dependencies=[Depends(get_current_admin)],
)


@router.post(
    "",
    response_model=MappingOut,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
async def create_mapping(
    payload: MappingCreate,
    service: MappingService = Depends(get_mapping_service),
):
    return await service.create(
        size_raw=payload.size_raw,
        code_public=payload.code_public,
        load_index=payload.load_index,
        speed_index=payload.speed_index,
    )


@router.get("/{mapping_id}", response_model=MappingOut, response_model_exclude_none=True)
async def get_mapping(
    mapping_id: str,
    service: MappingService = Depends(get_mapping_service),
):
    return await service.get(mapping_id)


@router.patch("/{mapping_id}", response_model=MappingOut, response_model_exclude_none=True)
async def update_mapping(
    mapping_id: str,
    payload: MappingUpdate,
    service: MappingService = Depends(get_mapping_service),
):
    return await service.update(
        mapping_id,
        code_public=payload.code_public,
        size_raw=payload.size_raw,
        load_index=payload.load_index,
        speed_index=payload.speed_index,
    )


@router.delete("/{mapping_id}", response_model=MappingOut, response_model_exclude_none=True)
async def delete_mapping(
    mapping_id: str,
    service: MappingService = Depends(get_mapping_service),
):
    return await service.delete(mapping_id)

from typing import Optional

from fastapi import APIRouter, Depends, File, Request, UploadFile, status
from loguru import logger

from tirecode.api.deps import get_csv_import_service
from tirecode.core.config import settings
from tirecode.core.deps import get_current_admin
from tirecode.core.rate_limit import limiter
from tirecode.domain.errors import BadRequestError
from tirecode.schemas.csv_import import ImportAccepted, ImportJobOut
from tirecode.services.csv_import import EMPTY_CSV_MESSAGE, CsvImportService

router = APIRouter(
    prefix="/v1/admin/import",
    tags=["import"],
    dependencies=[Depends(get_current_admin)],
)


@router.post("/csv", response_model=ImportAccepted, status_code=status.HTTP_202_ACCEPTED)
@limiter.limit(settings.CSV_UPLOAD_RATE)
async def upload_csv(
    request: Request,
    file: Optional[UploadFile] = File(None),
    service: CsvImportService = Depends(get_csv_import_service),
):
    if file is None:
        raise BadRequestError("No file uploaded")
    if not (file.filename or "").lower().endswith(".csv"):
        raise BadRequestError("File must be a CSV")

    content = await file.read()
    if len(content) > settings.MAX_UPLOAD_BYTES:
        raise BadRequestError("CSV file is too large")
    if not content.strip():
        raise BadRequestError(EMPTY_CSV_MESSAGE)

    rows = await service.parse(content)
    job_id = await service.submit(rows)
    logger.bind(job_id=job_id, filename=file.filename, rows=len(rows)).info("csv_upload_accepted")
    return {"job_id": job_id, "rows": len(rows)}


@router.get("/jobs/{job_id}", response_model=ImportJobOut, response_model_exclude_none=True)
async def job_status(
    job_id: str,
    service: CsvImportService = Depends(get_csv_import_service),
):
    return await service.get_job_status(job_id)

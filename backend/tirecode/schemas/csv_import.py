from typing import List, Optional

from pydantic import BaseModel

from tirecode.schemas.base import CamelModel


class ImportAccepted(CamelModel):
    job_id: str
    rows: int
    message: str = "CSV import job created"


class RowError(BaseModel):
    row: int
    message: str


class ImportResult(CamelModel):
    total: int
    created: int
    existing: int
    variants_added: int
    failed: int
    errors: List[RowError]


class ImportJobOut(CamelModel):
    id: str
    state: str
    rows: int
    submitted_at: str
    result: Optional[ImportResult] = None
    failed_reason: Optional[str] = None

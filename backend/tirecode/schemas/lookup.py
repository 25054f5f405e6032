from typing import List, Optional

from tirecode.schemas.base import CamelModel


class VariantOut(CamelModel):
    load_index: Optional[int] = None
    speed_index: Optional[str] = None


class LookupOut(CamelModel):
    code: str
    size_normalized: str
    size_raw: str
    variant: Optional[VariantOut] = None
    variants: Optional[List[VariantOut]] = None
    warning: Optional[str] = None


class SuggestionOut(CamelModel):
    size_normalized: str
    search_count: int

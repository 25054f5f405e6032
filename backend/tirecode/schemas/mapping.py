from typing import List, Optional, Union

from pydantic import Field

from tirecode.schemas.base import CamelModel
from tirecode.schemas.lookup import VariantOut


class MappingCreate(CamelModel):
    size_raw: Optional[str] = Field(default=None, max_length=32)
    code_public: Optional[str] = Field(default=None, max_length=32)
    load_index: Optional[Union[int, str]] = None
    speed_index: Optional[str] = Field(default=None, max_length=2)


class MappingUpdate(CamelModel):
    code_public: Optional[str] = Field(default=None, max_length=32)
    size_raw: Optional[str] = Field(default=None, max_length=32)
    load_index: Optional[Union[int, str]] = None
    speed_index: Optional[str] = Field(default=None, max_length=2)


class MappingOut(CamelModel):
    id: str
    code_public: str
    size_raw: str
    size_normalized: str
    variants: Optional[List[VariantOut]] = None

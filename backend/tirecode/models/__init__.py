"""ORM model exports for convenient imports elsewhere in the app."""

from tirecode.models.base import Base
from tirecode.models.admin_user import AdminRefreshToken, AdminUser
from tirecode.models.generic_sequence import GenericSequence
from tirecode.models.search_log import SearchLog
from tirecode.models.tire_code import TireCode
from tirecode.models.tire_size import TireSize
from tirecode.models.tire_variant import TireVariant

__all__ = [
    "Base",
    "AdminRefreshToken",
    "AdminUser",
    "GenericSequence",
    "SearchLog",
    "TireCode",
    "TireSize",
    "TireVariant",
]

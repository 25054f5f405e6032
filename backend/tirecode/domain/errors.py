"""Domain error taxonomy.

These exceptions never carry HTTP status codes; ``tirecode.core.errors``
owns the translation to transport responses.
"""

from __future__ import annotations


class TireCodeError(Exception):
    """Base class for every error the catalog surfaces to callers."""

    kind = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidFormatError(TireCodeError):
    kind = "invalid_format"


class InvalidVariantFormatError(InvalidFormatError):
    kind = "invalid_variant_format"


class MissingParameterError(TireCodeError):
    kind = "missing_parameter"


class MissingColumnError(MissingParameterError):
    kind = "missing_column"


class IncompleteVariantParamsError(TireCodeError):
    kind = "incomplete_variant_params"


class BadRequestError(TireCodeError):
    kind = "bad_request"


class ConflictError(TireCodeError):
    kind = "conflict"


class NotFoundError(TireCodeError):
    kind = "not_found"


class DataIntegrityError(TireCodeError):
    """A code exists without its size (or the reverse); the stored data is corrupt."""

    kind = "data_integrity"

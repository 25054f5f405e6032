"""Resolve the effective variant of a lookup from its parameters."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Optional

from loguru import logger

from tirecode.domain.errors import IncompleteVariantParamsError
from tirecode.domain.normalizer import Variant, parse_variant

INCOMPLETE_VARIANT_MESSAGE = 'Both "li" and "si" are required'

_TRAILING_VARIANT = re.compile(r"\s+(\d+[A-Za-z])\s*\Z", re.ASCII)


@dataclass(frozen=True, slots=True)
class ResolvedQuery:
    code: Optional[str]
    size: Optional[str]
    variant: Optional[Variant]


def _provided(value: Any) -> bool:
    return value is not None and str(value).strip() != ""


def resolve_variant_input(
    code: Optional[str] = None,
    size: Optional[str] = None,
    load_index: Any = None,
    speed_index: Any = None,
) -> ResolvedQuery:
    """Pick the single variant token that applies to a code or size query.

    Precedence: explicit ``load_index``/``speed_index`` (both or neither),
    then a second whitespace-separated token in ``code`` (``"100 91V"``),
    then a trailing ``91V``-style token after the size body.
    """

    resolved_code = code.strip() if code is not None else None
    resolved_size = size.strip() if size is not None else None
    token: Optional[str] = None

    if _provided(load_index) or _provided(speed_index):
        if not (_provided(load_index) and _provided(speed_index)):
            logger.bind(load_index=load_index, speed_index=speed_index).warning(
                "incomplete_variant_params"
            )
            raise IncompleteVariantParamsError(INCOMPLETE_VARIANT_MESSAGE)
        token = f"{str(load_index).strip()}{str(speed_index).strip()}"

    if token is None and resolved_code:
        parts = resolved_code.split()
        if len(parts) > 1:
            resolved_code, token = parts[0], parts[1]

    if token is None and resolved_size:
        match = _TRAILING_VARIANT.search(resolved_size)
        if match:
            token = match.group(1)
            resolved_size = resolved_size[: match.start()].strip()

    variant = parse_variant(token.upper()) if token else None
    return ResolvedQuery(code=resolved_code, size=resolved_size, variant=variant)


def variant_from_fields(load_index: Any, speed_index: Any) -> Optional[Variant]:
    """Validate an optional (load index, speed index) pair from a request body or CSV row."""

    return resolve_variant_input(load_index=load_index, speed_index=speed_index).variant

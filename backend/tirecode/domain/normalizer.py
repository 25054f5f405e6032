"""Tire size and variant string normalization."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from tirecode.domain.errors import InvalidFormatError, InvalidVariantFormatError

SIZE_FORMAT_EXAMPLE = "205/55R16"
VARIANT_FORMAT_EXAMPLE = "91V"

TIRE_SIZE_PATTERN = re.compile(r"(\d{3})/(\d{2})R(\d{2})", re.ASCII)
VARIANT_PATTERN = re.compile(r"(\d+)([A-Z])", re.ASCII | re.IGNORECASE)

SIZE_ERROR_MESSAGE = f"Invalid tire size format. Expected: {SIZE_FORMAT_EXAMPLE}"
VARIANT_ERROR_MESSAGE = (
    f"Invalid variant format. Expected: {VARIANT_FORMAT_EXAMPLE} (number + single letter)"
)

_WHITESPACE = re.compile(r"\s+")
_RIM_DESIGNATOR = re.compile(r"r", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class SizeComponents:
    size_raw: str
    size_normalized: str
    width: int
    aspect_ratio: int
    rim_diameter: int


@dataclass(frozen=True, slots=True)
class Variant:
    load_index: int
    speed_index: str

    @property
    def token(self) -> str:
        return f"{self.load_index}{self.speed_index}"


def normalize(raw: Optional[str]) -> str:
    """Return the canonical ``NNN/NNRNN`` form of a tire size.

    Whitespace anywhere in the input is dropped and the rim designator is
    upper-cased, so ``"205 / 55 r16"`` becomes ``"205/55R16"``.
    """

    if not raw or not isinstance(raw, str):
        raise InvalidFormatError(SIZE_ERROR_MESSAGE)

    compact = _WHITESPACE.sub("", raw)
    compact = _RIM_DESIGNATOR.sub("R", compact, count=1)
    if not TIRE_SIZE_PATTERN.fullmatch(compact):
        raise InvalidFormatError(SIZE_ERROR_MESSAGE)
    return compact


def parse_components(raw: str) -> SizeComponents:
    """Normalize ``raw`` and split it into its numeric parts.

    ``size_raw`` keeps the caller's spacing and case (trimmed) for auditing.
    """

    normalized = normalize(raw)
    match = TIRE_SIZE_PATTERN.fullmatch(normalized)
    width, aspect_ratio, rim_diameter = (int(group) for group in match.groups())
    return SizeComponents(
        size_raw=raw.strip(),
        size_normalized=normalized,
        width=width,
        aspect_ratio=aspect_ratio,
        rim_diameter=rim_diameter,
    )


def parse_variant(token: Optional[str]) -> Optional[Variant]:
    """Parse a load/speed index token such as ``"91V"``.

    Returns ``None`` when no token is given; a missing variant is valid.
    """

    if not token:
        return None

    match = VARIANT_PATTERN.fullmatch(token)
    if not match:
        raise InvalidVariantFormatError(VARIANT_ERROR_MESSAGE)
    return Variant(load_index=int(match.group(1)), speed_index=match.group(2).upper())

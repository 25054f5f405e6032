"""Resolve a tire code to its size (and the reverse), with caching and search logging."""

from __future__ import annotations

import asyncio
from typing import Any, Literal, Optional, Protocol

from loguru import logger

from tirecode.core.cache import CacheClient
from tirecode.core.config import settings
from tirecode.domain.errors import DataIntegrityError, MissingParameterError, NotFoundError
from tirecode.domain.normalizer import Variant, normalize
from tirecode.domain.variants import resolve_variant_input
from tirecode.models.tire_code import TireCode
from tirecode.models.tire_size import TireSize
from tirecode.models.tire_variant import TireVariant
from tirecode.services.catalog import CatalogReader
from tirecode.services.search_log import SearchLogService

Axis = Literal["code", "size"]

VARIANT_NOT_FOUND_WARNING = "variant_not_found"

# Rotated by every mapping mutation; a lookup that saw a different value
# before its reads does not write its result back.
CACHE_GENERATION_KEY = "lookup:generation"

_GLOB_ESCAPES = str.maketrans({"*": "[*]", "?": "[?]", "[": "[[]", "\\": "[\\\\]"})


class SearchLogSink(Protocol):
    def log_search_nowait(
        self, query: str, query_type: str, result_found: bool, ip: Optional[str] = None
    ) -> Any: ...


def build_cache_key(axis: Axis, identifier: str, variant: Optional[Variant]) -> str:
    return f"lookup:{axis}:{identifier}:{variant.token if variant else 'base'}"


def cache_key_pattern(axis: Axis, identifier: str) -> str:
    """Glob matching every cached lookup for ``identifier``, whatever the variant.

    Metacharacters in the identifier are bracketed so they match literally under
    both Redis ``SCAN MATCH`` and ``fnmatch``.
    """

    return f"lookup:{axis}:{identifier.translate(_GLOB_ESCAPES)}:*"


def _variant_dict(item: TireVariant) -> dict[str, Any]:
    return {"loadIndex": item.load_index, "speedIndex": item.speed_index}


class LookupService:
    def __init__(
        self,
        catalog: CatalogReader,
        cache: CacheClient,
        search_log: SearchLogService | SearchLogSink,
        *,
        ttl: Optional[int] = None,
    ) -> None:
        self._catalog = catalog
        self._cache = cache
        self._search_log = search_log
        self._ttl = ttl if ttl is not None else settings.LOOKUP_CACHE_TTL_SEC

    async def find_by_code(
        self,
        code: Optional[str],
        *,
        load_index: Any = None,
        speed_index: Any = None,
        ip: Optional[str] = None,
    ) -> dict[str, Any]:
        """Look up the size mapped to a public code such as ``"100"`` or ``"100 91V"``."""

        query = resolve_variant_input(code=code, load_index=load_index, speed_index=speed_index)
        if not query.code:
            logger.warning("lookup_code_missing")
            raise MissingParameterError('"code" is required')

        key = build_cache_key("code", query.code, query.variant)
        cached = await self._cache.get(key)
        if cached is not None:
            logger.bind(key=key).debug("lookup_cache_hit")
            return cached

        generation = await self._cache.get(CACHE_GENERATION_KEY)
        tire_code = await self._catalog.get_code_by_public(query.code)
        if tire_code is None:
            self._log(query.code, "code", False, ip)
            logger.bind(code=query.code).warning("lookup_not_found")
            raise NotFoundError(f'Tire code "{query.code}" not found')

        tire_size, variants = await asyncio.gather(
            self._catalog.get_size_by_id(tire_code.tire_size_id),
            self._catalog.get_variants_by_size_id(tire_code.tire_size_id),
        )
        if tire_size is None:
            logger.bind(code=query.code, tire_size_id=tire_code.tire_size_id).error(
                "lookup_size_missing_for_code"
            )
            raise DataIntegrityError(f'Tire size data missing for code "{query.code}"')

        response = self._respond(tire_code, tire_size, variants, query.variant)
        await self._store(key, response, generation)
        self._log(query.code, "code", True, ip)
        return response

    async def find_by_size(
        self,
        size: Optional[str],
        *,
        load_index: Any = None,
        speed_index: Any = None,
        ip: Optional[str] = None,
    ) -> dict[str, Any]:
        """Look up the code mapped to a size such as ``"205/55 r16"`` or ``"205/55R16 91V"``."""

        query = resolve_variant_input(size=size, load_index=load_index, speed_index=speed_index)
        if not query.size:
            logger.warning("lookup_size_missing")
            raise MissingParameterError('"size" is required')
        normalized = normalize(query.size)

        key = build_cache_key("size", normalized, query.variant)
        cached = await self._cache.get(key)
        if cached is not None:
            logger.bind(key=key).debug("lookup_cache_hit")
            return cached

        generation = await self._cache.get(CACHE_GENERATION_KEY)
        tire_size = await self._catalog.get_size_by_normalized(normalized)
        if tire_size is None:
            self._log(normalized, "size", False, ip)
            logger.bind(size=normalized).warning("lookup_not_found")
            raise NotFoundError(f'Tire size "{normalized}" not found')

        tire_code, variants = await asyncio.gather(
            self._catalog.get_code_by_size_id(tire_size.id),
            self._catalog.get_variants_by_size_id(tire_size.id),
        )
        if tire_code is None:
            logger.bind(size=normalized, tire_size_id=tire_size.id).error(
                "lookup_code_missing_for_size"
            )
            raise DataIntegrityError(f'No code found for tire size "{normalized}"')

        response = self._respond(tire_code, tire_size, variants, query.variant)
        await self._store(key, response, generation)
        self._log(normalized, "size", True, ip)
        return response

    async def _store(self, key: str, response: dict[str, Any], generation: Any) -> None:
        if await self._cache.get(CACHE_GENERATION_KEY) != generation:
            logger.bind(key=key).info("lookup_cache_write_skipped")
            return
        await self._cache.set(key, response, self._ttl)

    def _respond(
        self,
        tire_code: TireCode,
        tire_size: TireSize,
        variants: list[TireVariant],
        requested: Optional[Variant],
    ) -> dict[str, Any]:
        response: dict[str, Any] = {
            "code": tire_code.code_public,
            "sizeNormalized": tire_size.size_normalized,
            "sizeRaw": tire_size.size_raw,
        }
        if requested is None:
            if variants:
                response["variants"] = [_variant_dict(item) for item in variants]
            logger.bind(code=tire_code.code_public).info("lookup_succeeded")
            return response

        matched = next(
            (
                item
                for item in variants
                if item.load_index == requested.load_index
                and item.speed_index == requested.speed_index
            ),
            None,
        )
        if matched is None:
            logger.bind(code=tire_code.code_public, variant=requested.token).warning(
                "variant_not_found"
            )
            response["warning"] = VARIANT_NOT_FOUND_WARNING
        else:
            logger.bind(code=tire_code.code_public, variant=requested.token).info(
                "lookup_succeeded"
            )
            response["variant"] = _variant_dict(matched)
        return response

    def _log(self, query: str, query_type: Axis, found: bool, ip: Optional[str]) -> None:
        try:
            self._search_log.log_search_nowait(query, query_type, found, ip)
        except Exception as exc:
            logger.bind(query=query, error=str(exc)).error("search_log_dispatch_failed")

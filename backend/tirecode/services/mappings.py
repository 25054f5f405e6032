"""Admin management of code <-> size mappings."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar
from uuid import uuid4

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from tirecode.core.cache import CacheClient
from tirecode.core.config import settings
from tirecode.core.db_retry import raise_on_lock_conflict, with_db_retry
from tirecode.domain.errors import (
    BadRequestError,
    ConflictError,
    DataIntegrityError,
    MissingParameterError,
    NotFoundError,
    TireCodeError,
)
from tirecode.domain.normalizer import SizeComponents, Variant, parse_components
from tirecode.domain.variants import variant_from_fields
from tirecode.models.base import new_uuid
from tirecode.models.tire_code import TireCode
from tirecode.models.tire_size import TireSize
from tirecode.models.tire_variant import TireVariant
from tirecode.services.code_issuer import SequenceCodeIssuer
from tirecode.services.lookup import CACHE_GENERATION_KEY, cache_key_pattern

T = TypeVar("T")


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class MappingService:
    """Creates, updates and deletes mappings and keeps the lookup cache honest.

    Every mutation commits first and then drops all cached lookups for the
    codes and sizes it touched, old and new. It also rotates the lookup cache
    generation so a lookup that read the rows before the commit does not write
    its stale answer back.
    """

    def __init__(
        self,
        session: AsyncSession,
        cache: CacheClient,
        code_issuer: Optional[SequenceCodeIssuer] = None,
    ) -> None:
        self.session = session
        self._cache = cache
        self._issuer = code_issuer or SequenceCodeIssuer()

    async def get(self, mapping_id: str) -> dict[str, Any]:
        tire_code, tire_size = await self._load(mapping_id)
        return await self._snapshot(tire_code, tire_size)

    async def create(
        self,
        *,
        size_raw: Optional[str],
        code_public: Optional[str] = None,
        load_index: Any = None,
        speed_index: Any = None,
    ) -> dict[str, Any]:
        if not _clean(size_raw):
            raise MissingParameterError('"sizeRaw" is required')
        components = parse_components(size_raw)
        variant = variant_from_fields(load_index, speed_index)
        code_public = _clean(code_public)

        async def _create() -> tuple[TireCode, TireSize]:
            tire_size = await self._size_by_normalized(components.size_normalized)
            if tire_size is None:
                tire_size = self._new_size(components)
            elif await self._code_for_size(tire_size.id) is not None:
                logger.bind(size=components.size_normalized).warning("mapping_size_taken")
                raise ConflictError(
                    f'Tire size "{components.size_normalized}" already has a mapping'
                )

            if code_public and await self._code_taken(code_public):
                logger.bind(code=code_public).warning("mapping_code_taken")
                raise ConflictError(f'Tire code "{code_public}" already exists')

            tire_code = TireCode(
                code_public=code_public or await self._issuer.issue(self.session),
                tire_size_id=tire_size.id,
            )
            self.session.add(tire_code)
            if variant:
                await self._add_variant(tire_size.id, variant)
            await self.session.commit()
            return tire_code, tire_size

        tire_code, tire_size = await self._run("mapping_create", _create)
        await self._invalidate([tire_code.code_public], [tire_size.size_normalized])
        logger.bind(id=tire_code.id, code=tire_code.code_public).info("mapping_created")
        return await self._snapshot(tire_code, tire_size)

    async def update(
        self,
        mapping_id: str,
        *,
        code_public: Optional[str] = None,
        size_raw: Optional[str] = None,
        load_index: Any = None,
        speed_index: Any = None,
    ) -> dict[str, Any]:
        code_public = _clean(code_public)
        variant_given = any(
            value is not None and str(value).strip() != "" for value in (load_index, speed_index)
        )
        if not code_public and not _clean(size_raw) and not variant_given:
            logger.bind(id=mapping_id).warning("mapping_update_empty")
            raise BadRequestError(
                'Provide "codePublic", "sizeRaw" or "loadIndex"/"speedIndex" to update'
            )
        components = parse_components(size_raw) if _clean(size_raw) else None
        variant = variant_from_fields(load_index, speed_index)

        async def _update() -> tuple[TireCode, TireSize, str, str]:
            tire_code, tire_size = await self._load(mapping_id)
            old_code, old_size = tire_code.code_public, tire_size.size_normalized

            if code_public and code_public != old_code:
                clash = await self.session.scalar(
                    select(TireCode.id).where(
                        TireCode.code_public == code_public, TireCode.id != tire_code.id
                    )
                )
                if clash:
                    raise ConflictError(f'Tire code "{code_public}" already exists')
                tire_code.code_public = code_public

            if components:
                clash = await self.session.scalar(
                    select(TireSize.id).where(
                        TireSize.size_normalized == components.size_normalized,
                        TireSize.id != tire_size.id,
                    )
                )
                if clash:
                    raise ConflictError(
                        f'Tire size "{components.size_normalized}" already exists'
                    )
                tire_size.size_raw = components.size_raw
                tire_size.size_normalized = components.size_normalized
                tire_size.width = components.width
                tire_size.aspect_ratio = components.aspect_ratio
                tire_size.rim_diameter = components.rim_diameter

            if variant:
                await self._add_variant(tire_size.id, variant)
            await self.session.commit()
            return tire_code, tire_size, old_code, old_size

        tire_code, tire_size, old_code, old_size = await self._run("mapping_update", _update)
        await self._invalidate(
            [old_code, tire_code.code_public], [old_size, tire_size.size_normalized]
        )
        logger.bind(id=mapping_id, code=tire_code.code_public).info("mapping_updated")
        return await self._snapshot(tire_code, tire_size)

    async def delete(self, mapping_id: str) -> dict[str, Any]:
        """Delete the mapping's size together with its code and variants; return the prior state."""

        async def _delete() -> dict[str, Any]:
            tire_code, tire_size = await self._load(mapping_id)
            snapshot = await self._snapshot(tire_code, tire_size)
            await self.session.execute(
                delete(TireVariant).where(TireVariant.tire_size_id == tire_size.id)
            )
            await self.session.execute(delete(TireCode).where(TireCode.id == tire_code.id))
            await self.session.execute(delete(TireSize).where(TireSize.id == tire_size.id))
            await self.session.commit()
            return snapshot

        snapshot = await self._run("mapping_delete", _delete)
        await self._invalidate([snapshot["codePublic"]], [snapshot["sizeNormalized"]])
        logger.bind(id=mapping_id, code=snapshot["codePublic"]).info("mapping_deleted")
        return snapshot

    async def import_row(
        self,
        *,
        size: str,
        load_index: Any = None,
        speed_index: Any = None,
    ) -> dict[str, Any]:
        """Apply one CSV row; safe to repeat with the same input."""

        components = parse_components(size)
        variant = variant_from_fields(load_index, speed_index)

        async def _apply() -> tuple[TireCode, TireSize, bool, bool]:
            tire_size = await self._size_by_normalized(components.size_normalized)
            if tire_size is None:
                tire_size = self._new_size(components)
            tire_code = await self._code_for_size(tire_size.id)
            created = tire_code is None
            if created:
                tire_code = TireCode(
                    code_public=await self._issuer.issue(self.session),
                    tire_size_id=tire_size.id,
                )
                self.session.add(tire_code)
            variant_added = await self._add_variant(tire_size.id, variant) if variant else False
            await self.session.commit()
            return tire_code, tire_size, created, variant_added

        tire_code, tire_size, created, variant_added = await self._run("csv_row_apply", _apply)
        if created or variant_added:
            await self._invalidate([tire_code.code_public], [tire_size.size_normalized])
        return {
            "status": "created" if created else "existing",
            "variantAdded": variant_added,
            "code": tire_code.code_public,
            "sizeNormalized": tire_size.size_normalized,
        }

    async def _run(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await with_db_retry(self.session, operation, operation_name=name)
        except TireCodeError:
            await self.session.rollback()
            raise
        except IntegrityError as exc:
            # Lost a race against a concurrent writer on a unique column.
            await self.session.rollback()
            logger.bind(operation=name, error=str(exc.orig)).warning("mapping_unique_violation")
            raise ConflictError("Tire code or size already exists") from exc
        except OperationalError as exc:
            await self.session.rollback()
            raise_on_lock_conflict(exc)
            raise

    async def _load(self, mapping_id: str) -> tuple[TireCode, TireSize]:
        tire_code = await self.session.get(TireCode, mapping_id)
        if tire_code is None:
            logger.bind(id=mapping_id).warning("mapping_not_found")
            raise NotFoundError(f'Mapping "{mapping_id}" not found')
        tire_size = await self.session.get(TireSize, tire_code.tire_size_id)
        if tire_size is None:
            logger.bind(id=mapping_id, tire_size_id=tire_code.tire_size_id).error(
                "mapping_size_missing"
            )
            raise DataIntegrityError(f'Mapping "{mapping_id}" has no tire size')
        return tire_code, tire_size

    def _new_size(self, components: SizeComponents) -> TireSize:
        tire_size = TireSize(
            id=new_uuid(),
            size_raw=components.size_raw,
            size_normalized=components.size_normalized,
            width=components.width,
            aspect_ratio=components.aspect_ratio,
            rim_diameter=components.rim_diameter,
        )
        self.session.add(tire_size)
        return tire_size

    async def _size_by_normalized(self, size_normalized: str) -> Optional[TireSize]:
        return await self.session.scalar(
            select(TireSize).where(TireSize.size_normalized == size_normalized)
        )

    async def _code_for_size(self, tire_size_id: str) -> Optional[TireCode]:
        return await self.session.scalar(
            select(TireCode).where(TireCode.tire_size_id == tire_size_id)
        )

    async def _code_taken(self, code_public: str) -> bool:
        found = await self.session.scalar(
            select(TireCode.id).where(TireCode.code_public == code_public)
        )
        return found is not None

    async def _add_variant(self, tire_size_id: str, variant: Variant) -> bool:
        existing = await self.session.scalar(
            select(TireVariant.id).where(
                TireVariant.tire_size_id == tire_size_id,
                TireVariant.load_index == variant.load_index,
                TireVariant.speed_index == variant.speed_index,
            )
        )
        if existing:
            return False
        self.session.add(
            TireVariant(
                tire_size_id=tire_size_id,
                load_index=variant.load_index,
                speed_index=variant.speed_index,
            )
        )
        return True

    async def _snapshot(self, tire_code: TireCode, tire_size: TireSize) -> dict[str, Any]:
        variants = (
            await self.session.execute(
                select(TireVariant)
                .where(TireVariant.tire_size_id == tire_size.id)
                .order_by(TireVariant.load_index, TireVariant.speed_index)
            )
        ).scalars().all()
        snapshot: dict[str, Any] = {
            "id": tire_code.id,
            "codePublic": tire_code.code_public,
            "sizeRaw": tire_size.size_raw,
            "sizeNormalized": tire_size.size_normalized,
        }
        if variants:
            snapshot["variants"] = [
                {"loadIndex": item.load_index, "speedIndex": item.speed_index}
                for item in variants
            ]
        return snapshot

    async def _invalidate(self, codes: Iterable[str], sizes: Iterable[str]) -> None:
        await self._cache.set(
            CACHE_GENERATION_KEY, uuid4().hex, settings.LOOKUP_CACHE_TTL_SEC
        )
        for code in set(codes):
            await self._cache.delete_pattern(cache_key_pattern("code", code))
        for size in set(sizes):
            await self._cache.delete_pattern(cache_key_pattern("size", size))

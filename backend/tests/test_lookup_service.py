import asyncio

import anyio
import pytest
from sqlalchemy import delete, select

from tirecode.domain.errors import (
    DataIntegrityError,
    IncompleteVariantParamsError,
    InvalidFormatError,
    MissingParameterError,
    NotFoundError,
)
from tirecode.models import SearchLog, TireCode, TireVariant
from tirecode.services.catalog import CatalogReader
from tirecode.services.lookup import LookupService, build_cache_key
from tirecode.services.search_log import SearchLogService, hash_ip


@pytest.fixture
def lookup(session_factory, cache, search_log):
    return LookupService(CatalogReader(session_factory), cache, search_log)


async def _search_rows(session_factory):
    async with session_factory() as session:
        return (await session.execute(select(SearchLog).order_by(SearchLog.id))).scalars().all()


@pytest.mark.anyio
async def test_code_lookup_returns_size_and_variants(lookup, seed_mapping):
    await seed_mapping("205/55R16", "100", variants=[(94, "W"), (91, "V")])

    result = await lookup.find_by_code("100")

    assert result["code"] == "100"
    assert result["sizeNormalized"] == "205/55R16"
    assert result["sizeRaw"] == "205/55R16"
    assert result["variants"] == [
        {"loadIndex": 91, "speedIndex": "V"},
        {"loadIndex": 94, "speedIndex": "W"},
    ]
    assert "variant" not in result
    assert "warning" not in result


@pytest.mark.anyio
async def test_lookup_without_variants_omits_the_list(lookup, seed_mapping):
    await seed_mapping("195/65R15", "101")

    result = await lookup.find_by_code("101")

    assert "variants" not in result


@pytest.mark.anyio
async def test_size_lookup_normalizes_input(lookup, seed_mapping):
    await seed_mapping("205/55R16", "100")

    result = await lookup.find_by_size(" 205 / 55 r16 ")

    assert result["code"] == "100"
    assert result["sizeNormalized"] == "205/55R16"


@pytest.mark.anyio
async def test_requested_variant_is_returned(lookup, seed_mapping):
    await seed_mapping("205/55R16", "100", variants=[(91, "V")])

    by_token = await lookup.find_by_code("100 91v")
    by_params = await lookup.find_by_code("100", load_index="91", speed_index="V")
    by_size = await lookup.find_by_size("205/55R16 91V")

    for result in (by_token, by_params, by_size):
        assert result["variant"] == {"loadIndex": 91, "speedIndex": "V"}
        assert "variants" not in result
        assert "warning" not in result


@pytest.mark.anyio
async def test_unknown_variant_yields_warning_not_error(lookup, seed_mapping):
    await seed_mapping("205/55R16", "100", variants=[(91, "V")])

    result = await lookup.find_by_code("100", load_index=94, speed_index="W")

    assert result["code"] == "100"
    assert result["warning"] == "variant_not_found"
    assert "variant" not in result


@pytest.mark.anyio
async def test_input_errors(lookup):
    with pytest.raises(MissingParameterError):
        await lookup.find_by_code("   ")
    with pytest.raises(MissingParameterError):
        await lookup.find_by_size(None)
    with pytest.raises(InvalidFormatError):
        await lookup.find_by_size("205-55-16")
    with pytest.raises(IncompleteVariantParamsError):
        await lookup.find_by_code("100", load_index="91")


@pytest.mark.anyio
async def test_not_found_is_logged_as_failed_search(lookup, search_log, session_factory):
    with pytest.raises(NotFoundError) as ctx:
        await lookup.find_by_code("999", ip="10.0.0.1")
    assert ctx.value.message == 'Tire code "999" not found'

    await search_log.drain()
    rows = await _search_rows(session_factory)
    assert [(row.query, row.query_type, row.result_found) for row in rows] == [
        ("999", "code", False)
    ]
    assert rows[0].ip_hash == hash_ip("10.0.0.1")
    assert rows[0].ip_hash != "10.0.0.1"


@pytest.mark.anyio
async def test_misses_are_not_cached(lookup, seed_mapping, cache):
    with pytest.raises(NotFoundError):
        await lookup.find_by_code("100")
    with pytest.raises(NotFoundError):
        await lookup.find_by_size("205/55R16")
    assert await cache.get(build_cache_key("code", "100", None)) is None
    assert await cache.get(build_cache_key("size", "205/55R16", None)) is None

    await seed_mapping("205/55R16", "100")

    assert (await lookup.find_by_code("100"))["sizeNormalized"] == "205/55R16"
    assert (await lookup.find_by_size("205/55R16"))["code"] == "100"


@pytest.mark.anyio
async def test_cache_hit_skips_database_and_logging(
    lookup, seed_mapping, search_log, session_factory, cache
):
    await seed_mapping("205/55R16", "100")
    first = await lookup.find_by_code("100")
    assert await cache.get(build_cache_key("code", "100", None)) == first

    # Remove the row behind the service's back; the cached answer still wins.
    async with session_factory() as session:
        await session.execute(delete(TireCode))
        await session.commit()
    second = await lookup.find_by_code("100")

    assert second == first
    await search_log.drain()
    rows = await _search_rows(session_factory)
    assert len(rows) == 1
    assert rows[0].result_found is True


@pytest.mark.anyio
async def test_cache_is_keyed_per_variant(lookup, seed_mapping, session_factory):
    await seed_mapping("205/55R16", "100", variants=[(91, "V")])
    await lookup.find_by_code("100 91V")

    async with session_factory() as session:
        await session.execute(delete(TireVariant))
        await session.commit()

    assert (await lookup.find_by_code("100 91V"))["variant"]["speedIndex"] == "V"
    assert "variants" not in await lookup.find_by_code("100")


@pytest.mark.anyio
async def test_missing_counterpart_is_a_data_integrity_error(lookup, seed_mapping, session_factory):
    await seed_mapping("205/55R16", "100")
    async with session_factory() as session:
        await session.execute(delete(TireCode))
        await session.commit()

    with pytest.raises(DataIntegrityError):
        await lookup.find_by_size("205/55R16")


class RendezvousCatalog(CatalogReader):
    """Each half of the paired fetch waits until the other half has started."""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self.size_started = asyncio.Event()
        self.variants_started = asyncio.Event()

    async def get_size_by_id(self, tire_size_id):
        self.size_started.set()
        await self.variants_started.wait()
        return await super().get_size_by_id(tire_size_id)

    async def get_variants_by_size_id(self, tire_size_id):
        self.variants_started.set()
        await self.size_started.wait()
        return await super().get_variants_by_size_id(tire_size_id)


@pytest.mark.anyio
async def test_counterpart_and_variants_are_fetched_concurrently(
    session_factory, cache, search_log, seed_mapping
):
    await seed_mapping("205/55R16", "100", variants=[(91, "V")])
    service = LookupService(RendezvousCatalog(session_factory), cache, search_log)

    with anyio.fail_after(5):
        result = await service.find_by_code("100")

    assert result["sizeNormalized"] == "205/55R16"


class ExplodingSearchLog:
    def log_search_nowait(self, *args, **kwargs):
        raise RuntimeError("search log unavailable")


@pytest.mark.anyio
async def test_search_log_failure_does_not_fail_lookup(session_factory, cache, seed_mapping):
    await seed_mapping("205/55R16", "100")
    service = LookupService(CatalogReader(session_factory), cache, ExplodingSearchLog())

    assert (await service.find_by_code("100"))["sizeNormalized"] == "205/55R16"
    with pytest.raises(NotFoundError):
        await service.find_by_code("404")


@pytest.mark.anyio
async def test_search_log_write_errors_are_swallowed(session_factory, cache, seed_mapping):
    await seed_mapping("205/55R16", "100")

    def broken_factory():
        raise RuntimeError("database gone")

    broken_log = SearchLogService(broken_factory)
    service = LookupService(CatalogReader(session_factory), cache, broken_log)

    result = await service.find_by_code("100")
    await broken_log.drain()

    assert result["code"] == "100"

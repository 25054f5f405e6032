import pytest
from sqlalchemy import func, select

from tirecode.core.config import settings
from tirecode.domain.errors import (
    BadRequestError,
    ConflictError,
    IncompleteVariantParamsError,
    InvalidFormatError,
    InvalidVariantFormatError,
    MissingParameterError,
    NotFoundError,
)
from tirecode.models import GenericSequence, TireCode, TireSize, TireVariant
from tirecode.services.catalog import CatalogReader
from tirecode.services.code_issuer import SequenceCodeIssuer
from tirecode.services.lookup import LookupService, build_cache_key
from tirecode.services.mappings import MappingService


@pytest.fixture
async def mappings(session_factory, cache):
    async with session_factory() as session:
        yield MappingService(session, cache)


@pytest.fixture
def lookup(session_factory, cache, search_log):
    return LookupService(CatalogReader(session_factory), cache, search_log)


async def _count(session_factory, model):
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(model))


@pytest.mark.anyio
async def test_create_issues_sequential_codes(mappings):
    first = await mappings.create(size_raw="205/55 r16")
    second = await mappings.create(size_raw="195/65R15")

    start = settings.CODE_SEQUENCE_START
    assert first["codePublic"] == str(start)
    assert second["codePublic"] == str(start + 1)
    assert first["sizeNormalized"] == "205/55R16"
    assert first["sizeRaw"] == "205/55 r16"
    assert "variants" not in first


@pytest.mark.anyio
async def test_issuer_skips_codes_assigned_by_hand(mappings):
    start = settings.CODE_SEQUENCE_START
    await mappings.create(size_raw="205/55R16", code_public=str(start))

    issued = await mappings.create(size_raw="195/65R15")

    assert issued["codePublic"] == str(start + 1)


@pytest.mark.anyio
async def test_create_with_variant(mappings):
    snapshot = await mappings.create(
        size_raw="205/55R16", code_public="100", load_index="91", speed_index="v"
    )

    assert snapshot["codePublic"] == "100"
    assert snapshot["variants"] == [{"loadIndex": 91, "speedIndex": "V"}]


@pytest.mark.anyio
async def test_create_rejects_bad_input(mappings):
    with pytest.raises(MissingParameterError):
        await mappings.create(size_raw="  ")
    with pytest.raises(InvalidFormatError):
        await mappings.create(size_raw="205/55/16")
    with pytest.raises(IncompleteVariantParamsError):
        await mappings.create(size_raw="205/55R16", load_index=91)
    with pytest.raises(InvalidVariantFormatError):
        await mappings.create(size_raw="205/55R16", load_index="x", speed_index="V")
    with pytest.raises(InvalidFormatError):
        await mappings.create(size_raw="\uff12\uff10\uff15/55R16")


@pytest.mark.anyio
async def test_create_conflicts(mappings, session_factory):
    await mappings.create(size_raw="205/55R16", code_public="100")

    with pytest.raises(ConflictError):
        await mappings.create(size_raw="205/55 R16")
    with pytest.raises(ConflictError):
        await mappings.create(size_raw="195/65R15", code_public="100")

    assert await _count(session_factory, TireCode) == 1
    assert await _count(session_factory, TireSize) == 1


@pytest.mark.anyio
async def test_create_reuses_unmapped_size(mappings, session_factory):
    async with session_factory() as session:
        session.add(
            TireSize(
                size_raw="205/55R16",
                size_normalized="205/55R16",
                width=205,
                aspect_ratio=55,
                rim_diameter=16,
            )
        )
        await session.commit()

    snapshot = await mappings.create(size_raw="205/55R16", code_public="100")

    assert snapshot["sizeNormalized"] == "205/55R16"
    assert await _count(session_factory, TireSize) == 1


@pytest.mark.anyio
async def test_get_and_not_found(mappings):
    created = await mappings.create(size_raw="205/55R16", code_public="100")

    assert await mappings.get(created["id"]) == created
    with pytest.raises(NotFoundError):
        await mappings.get("missing-id")


@pytest.mark.anyio
async def test_update_size_keeps_code(mappings):
    created = await mappings.create(size_raw="205/55R16")

    updated = await mappings.update(created["id"], size_raw="225/45 R17")

    assert updated["id"] == created["id"]
    assert updated["codePublic"] == created["codePublic"]
    assert updated["sizeNormalized"] == "225/45R17"
    assert updated["sizeRaw"] == "225/45 R17"


@pytest.mark.anyio
async def test_update_code_only(mappings):
    created = await mappings.create(size_raw="205/55R16", code_public="100")

    updated = await mappings.update(created["id"], code_public="A-1")

    assert updated["codePublic"] == "A-1"
    assert updated["sizeNormalized"] == "205/55R16"


@pytest.mark.anyio
async def test_update_validation_and_conflicts(mappings):
    first = await mappings.create(size_raw="205/55R16", code_public="100")
    await mappings.create(size_raw="195/65R15", code_public="101")

    with pytest.raises(BadRequestError):
        await mappings.update(first["id"])
    with pytest.raises(NotFoundError):
        await mappings.update("missing-id", size_raw="225/45R17")
    with pytest.raises(ConflictError):
        await mappings.update(first["id"], size_raw="195/65R15")
    with pytest.raises(ConflictError):
        await mappings.update(first["id"], code_public="101")

    # A failed update leaves the mapping untouched.
    assert await mappings.get(first["id"]) == first


@pytest.mark.anyio
async def test_variants_are_added_never_modified(mappings, session_factory):
    created = await mappings.create(size_raw="205/55R16", load_index=91, speed_index="V")

    await mappings.update(created["id"], load_index=94, speed_index="W")
    again = await mappings.update(created["id"], load_index=91, speed_index="V")

    assert again["variants"] == [
        {"loadIndex": 91, "speedIndex": "V"},
        {"loadIndex": 94, "speedIndex": "W"},
    ]
    assert await _count(session_factory, TireVariant) == 2


@pytest.mark.anyio
async def test_delete_returns_snapshot_and_removes_everything(mappings, session_factory):
    created = await mappings.create(size_raw="205/55R16", load_index=91, speed_index="V")

    deleted = await mappings.delete(created["id"])

    assert deleted == created
    for model in (TireCode, TireSize, TireVariant):
        assert await _count(session_factory, model) == 0
    with pytest.raises(NotFoundError):
        await mappings.delete(created["id"])


@pytest.mark.anyio
async def test_update_invalidates_cached_lookups(mappings, lookup):
    created = await mappings.create(size_raw="205/55R16", code_public="100")
    assert (await lookup.find_by_code("100"))["sizeNormalized"] == "205/55R16"
    assert (await lookup.find_by_size("205/55R16"))["code"] == "100"
    assert (await lookup.find_by_code("100 91V"))["warning"] == "variant_not_found"

    await mappings.update(created["id"], size_raw="225/45R17", load_index=91, speed_index="V")

    assert (await lookup.find_by_code("100"))["sizeNormalized"] == "225/45R17"
    assert (await lookup.find_by_code("100 91V"))["variant"] == {"loadIndex": 91, "speedIndex": "V"}
    with pytest.raises(NotFoundError):
        await lookup.find_by_size("205/55R16")


@pytest.mark.anyio
async def test_code_change_invalidates_old_code(mappings, lookup):
    created = await mappings.create(size_raw="205/55R16", code_public="100")
    await lookup.find_by_code("100")

    await mappings.update(created["id"], code_public="200")

    with pytest.raises(NotFoundError):
        await lookup.find_by_code("100")
    assert (await lookup.find_by_size("205/55R16"))["code"] == "200"


@pytest.mark.anyio
async def test_delete_invalidates_cached_lookups(mappings, lookup):
    created = await mappings.create(size_raw="205/55R16", code_public="100")
    await lookup.find_by_code("100")
    await lookup.find_by_size("205/55R16")

    await mappings.delete(created["id"])

    with pytest.raises(NotFoundError):
        await lookup.find_by_code("100")
    with pytest.raises(NotFoundError):
        await lookup.find_by_size("205/55R16")


@pytest.mark.anyio
@pytest.mark.parametrize("code", ["A[1]", "A*", "A?", "A\\1"])
async def test_update_invalidates_codes_with_glob_characters(mappings, lookup, code):
    created = await mappings.create(size_raw="205/55R16", code_public=code)
    assert (await lookup.find_by_code(code))["sizeNormalized"] == "205/55R16"

    await mappings.update(created["id"], size_raw="225/45R17")

    assert (await lookup.find_by_code(code))["sizeNormalized"] == "225/45R17"


@pytest.mark.anyio
async def test_glob_characters_do_not_widen_invalidation(mappings, lookup, cache):
    await mappings.create(size_raw="195/65R15", code_public="A1")
    created = await mappings.create(size_raw="205/55R16", code_public="A?")
    await lookup.find_by_code("A1")

    await mappings.update(created["id"], size_raw="225/45R17")

    assert await cache.get(build_cache_key("code", "A1", None)) is not None


class UpdateDuringReadCatalog(CatalogReader):
    """Runs a mapping update right after the size row has been read."""

    def __init__(self, session_factory, on_read):
        super().__init__(session_factory)
        self._on_read = on_read

    async def get_size_by_id(self, tire_size_id):
        row = await super().get_size_by_id(tire_size_id)
        on_read, self._on_read = self._on_read, None
        if on_read is not None:
            await on_read()
        return row


@pytest.mark.anyio
async def test_lookup_racing_an_update_does_not_cache_stale_rows(
    mappings, session_factory, cache, search_log
):
    created = await mappings.create(size_raw="205/55R16", code_public="100")

    async def update_mapping():
        async with session_factory() as session:
            await MappingService(session, cache).update(created["id"], size_raw="225/45R17")

    catalog = UpdateDuringReadCatalog(session_factory, update_mapping)
    racing = LookupService(catalog, cache, search_log)
    stale = await racing.find_by_code("100")

    assert stale["sizeNormalized"] == "205/55R16"
    assert await cache.get(build_cache_key("code", "100", None)) is None
    fresh = LookupService(CatalogReader(session_factory), cache, search_log)
    assert (await fresh.find_by_code("100"))["sizeNormalized"] == "225/45R17"


@pytest.mark.anyio
async def test_import_row_is_idempotent(mappings, session_factory):
    first = await mappings.import_row(size="205/55R16", load_index=91, speed_index="V")
    second = await mappings.import_row(size="205/55 r16", load_index=91, speed_index="V")
    third = await mappings.import_row(size="205/55R16", load_index=94, speed_index="W")

    assert first["status"] == "created" and first["variantAdded"] is True
    assert second["status"] == "existing" and second["variantAdded"] is False
    assert third["status"] == "existing" and third["variantAdded"] is True
    assert first["code"] == second["code"] == third["code"]
    assert await _count(session_factory, TireCode) == 1
    assert await _count(session_factory, TireVariant) == 2


@pytest.mark.anyio
async def test_custom_sequence_is_created_on_first_use(session_factory, cache):
    async with session_factory() as session:
        service = MappingService(session, cache, SequenceCodeIssuer("test_seq", 5000))
        snapshot = await service.create(size_raw="205/55R16")

    assert snapshot["codePublic"] == "5000"
    async with session_factory() as session:
        row = await session.scalar(
            select(GenericSequence).where(GenericSequence.seq_name == "test_seq")
        )
    assert row.seq_no == 5001


@pytest.mark.anyio
async def test_unique_violation_from_a_racing_writer_is_a_conflict(
    mappings, session_factory, monkeypatch
):
    await mappings.create(size_raw="205/55R16", code_public="100")

    async def never_taken(code_public):
        return False

    # Simulate losing the race: the pre-check passes, the unique index does not.
    monkeypatch.setattr(mappings, "_code_taken", never_taken)
    with pytest.raises(ConflictError):
        await mappings.create(size_raw="195/65R15", code_public="100")

    assert await _count(session_factory, TireSize) == 1

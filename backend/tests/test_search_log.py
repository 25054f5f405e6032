from datetime import datetime, timedelta

import pytest

from tirecode.models import SearchLog
from tirecode.services.suggestions import SuggestionsService


async def _log_many(search_log, entries):
    for query, query_type, found in entries:
        await search_log.log_search(query, query_type, found, ip="127.0.0.1")


@pytest.mark.anyio
async def test_analytics_overview(search_log, session_factory):
    await _log_many(
        search_log,
        [
            ("100", "code", True),
            ("100", "code", True),
            ("999", "code", False),
            ("205/55R16", "size", True),
        ],
    )
    async with session_factory() as session:
        session.add(
            SearchLog(
                query="old",
                query_type="code",
                result_found=False,
                created_at=datetime.now() - timedelta(days=30),
            )
        )
        await session.commit()

    overview = await search_log.get_analytics(days=7)

    assert overview["totalSearches"] == 4
    assert overview["successfulSearches"] == 3
    assert overview["failedSearches"] == 1
    assert overview["successRate"] == "75.00%"
    assert overview["searchesByType"] == [
        {"type": "code", "count": 3},
        {"type": "size", "count": 1},
    ]
    assert len(overview["recentSearches"]) == 4
    assert overview["recentSearches"][0]["query"] == "205/55R16"


@pytest.mark.anyio
async def test_analytics_with_no_searches(search_log):
    overview = await search_log.get_analytics()

    assert overview["totalSearches"] == 0
    assert overview["successRate"] == "0.00%"
    assert overview["recentSearches"] == []


@pytest.mark.anyio
async def test_top_searches(search_log):
    await _log_many(
        search_log,
        [
            ("205/55R16", "size", True),
            ("100", "code", True),
            ("205/55R16", "size", True),
            ("205/55R16", "size", True),
            ("100", "code", True),
            ("999", "code", False),
        ],
    )

    top = await search_log.get_top_searches(limit=2)

    assert top == [
        {"query": "205/55R16", "queryType": "size", "resultFound": True, "count": 3},
        {"query": "100", "queryType": "code", "resultFound": True, "count": 2},
    ]


@pytest.mark.anyio
async def test_ip_is_stored_hashed(search_log, session_factory):
    await search_log.log_search("100", "code", True, ip="192.168.1.20")

    async with session_factory() as session:
        row = (await session.execute(SearchLog.__table__.select())).one()
    assert row.ip_hash and len(row.ip_hash) == 64
    assert "192.168" not in row.ip_hash


@pytest.fixture
def suggestions(session_factory, cache):
    return SuggestionsService(session_factory, cache)


@pytest.mark.anyio
async def test_suggestions_rank_popular_searches_first(suggestions, search_log, seed_mapping):
    for size in ("195/65R15", "205/65R15", "205/60R16", "205/55R16"):
        await seed_mapping(size)
    await _log_many(
        search_log,
        [
            ("205/55R16", "size", True),
            ("205/55R16", "size", True),
            ("205/60R16", "size", True),
            ("205/99R99", "size", False),
        ],
    )

    result = await suggestions.get_suggestions(" 205 ")

    assert result == [
        {"sizeNormalized": "205/55R16", "searchCount": 2},
        {"sizeNormalized": "205/60R16", "searchCount": 1},
        {"sizeNormalized": "205/65R15", "searchCount": 0},
    ]


@pytest.mark.anyio
async def test_suggestions_respect_limit_and_case(suggestions, seed_mapping):
    for size in ("205/55R16", "205/55R17", "205/60R16"):
        await seed_mapping(size)

    result = await suggestions.get_suggestions("205/55r", limit=1)

    assert len(result) == 1
    assert result[0]["sizeNormalized"].startswith("205/55R")


@pytest.mark.anyio
async def test_empty_query_has_no_suggestions(suggestions):
    assert await suggestions.get_suggestions("   ") == []

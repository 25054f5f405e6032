"""Service providers for the route layer; tests swap them via ``app.dependency_overrides``."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tirecode.core.cache import cache_client
from tirecode.core.db import SessionLocal, get_session, get_session_factory
from tirecode.services.catalog import CatalogReader
from tirecode.services.csv_import import CeleryTaskRunner, CsvImportService, TaskRunner
from tirecode.services.lookup import LookupService
from tirecode.services.mappings import MappingService
from tirecode.services.search_log import SearchLogService
from tirecode.services.suggestions import SuggestionsService

# Shared so shutdown can wait for in-flight search log writes.
search_log_service = SearchLogService(SessionLocal)
_task_runner = CeleryTaskRunner()


def get_search_log_service() -> SearchLogService:
    return search_log_service


def get_task_runner() -> TaskRunner:
    return _task_runner


def get_lookup_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
    search_log: SearchLogService = Depends(get_search_log_service),
) -> LookupService:
    return LookupService(CatalogReader(session_factory), cache_client, search_log)


def get_suggestions_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SuggestionsService:
    return SuggestionsService(session_factory, cache_client)


def get_mapping_service(session: AsyncSession = Depends(get_session)) -> MappingService:
    return MappingService(session, cache_client)


def get_csv_import_service(runner: TaskRunner = Depends(get_task_runner)) -> CsvImportService:
    return CsvImportService(runner, cache_client)

import os
import sys
import tempfile
from pathlib import Path

import pytest

# Ensure required environment variables are present before settings import
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ["REDIS_ENABLED"] = "false"
os.environ.setdefault(
    "DB_URL",
    f"sqlite+aiosqlite:///{Path(tempfile.gettempdir()) / 'tirecode-unused.db'}",
)
os.environ.setdefault("DB_ISOLATION_LEVEL", "SERIALIZABLE")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

# Add the backend directory so `tirecode` package imports resolve during tests
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.append(str(BACKEND_DIR))

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402

from tirecode.core.cache import CacheClient, clear_memory_cache  # noqa: E402
from tirecode.core.rate_limit import limiter  # noqa: E402
from tirecode.models import Base  # noqa: E402
from tirecode.services.search_log import SearchLogService  # noqa: E402


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _fresh_cache():
    clear_memory_cache()
    limiter.reset()
    yield
    clear_memory_cache()


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def search_log(session_factory):
    service = SearchLogService(session_factory)
    yield service
    await service.drain()


@pytest.fixture
def cache():
    return CacheClient()


@pytest.fixture
def seed_mapping(session_factory, cache):
    """Create a mapping (plus optional variants) through the admin service."""

    from tirecode.services.mappings import MappingService

    async def _seed(size, code=None, variants=()):
        async with session_factory() as session:
            service = MappingService(session, cache)
            snapshot = await service.create(size_raw=size, code_public=code)
            for load_index, speed_index in variants:
                snapshot = await service.update(
                    snapshot["id"], load_index=load_index, speed_index=speed_index
                )
        return snapshot

    return _seed

"""Pytest configuration and fixtures."""

import os
import sys
from datetime import date, datetime, timedelta

import pytest
import pytest_asyncio

# Add the project root to the Python path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Set test environment variables before importing applytrak modules
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ["AUTO_BACKUP_ENABLED"] = "false"
os.environ.pop("CLOUD_API_URL", None)


class InMemoryRedis:
    """Just enough of ``redis.asyncio.Redis`` for the local backup cache."""

    def __init__(self):
        self.lists: dict[str, list[str]] = {}
        self.ttls: dict[str, int] = {}

    @staticmethod
    def _slice(values: list[str], start: int, end: int) -> list[str]:
        return values[start:] if end == -1 else values[start : end + 1]

    def pipeline(self):
        return _InMemoryPipeline(self)

    async def lpush(self, key, *values):
        items = self.lists.setdefault(key, [])
        for value in values:
            items.insert(0, value)
        return len(items)

    async def ltrim(self, key, start, end):
        self.lists[key] = self._slice(self.lists.get(key, []), start, end)
        return True

    async def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    async def lrange(self, key, start, end):
        return self._slice(self.lists.get(key, []), start, end)

    async def lrem(self, key, count, value):
        items = self.lists.get(key, [])
        kept = [item for item in items if item != value]
        self.lists[key] = kept
        return len(items) - len(kept)

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += key in self.lists
            self.lists.pop(key, None)
            self.ttls.pop(key, None)
        return removed


class _InMemoryPipeline:
    def __init__(self, redis: InMemoryRedis):
        self._redis = redis
        self._calls = []

    def __getattr__(self, name):
        def queue(*args):
            self._calls.append((name, args))
            return self

        return queue

    async def execute(self):
        results = []
        for name, args in self._calls:
            results.append(await getattr(self._redis, name)(*args))
        self._calls = []
        return results


class UnavailableRedis(InMemoryRedis):
    """Redis double whose every command fails with a connection error."""

    async def _fail(self, *args):
        from redis.exceptions import ConnectionError

        raise ConnectionError("Connection refused")

    lpush = ltrim = expire = lrange = lrem = delete = _fail


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Temporary SQLite database with every table created."""
    from sqlalchemy.ext.asyncio import create_async_engine

    from applytrak.core.storage import init_models

    test_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'applytrak.db'}")
    await init_models(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    from sqlalchemy.ext.asyncio import AsyncSession
    from sqlalchemy.orm import sessionmaker

    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory):
    from applytrak.services.record_store import RecordStore

    return RecordStore(session_factory)


@pytest.fixture
def fake_redis():
    return InMemoryRedis()


@pytest.fixture
def local_cache(fake_redis):
    from applytrak.core.redis_client import LocalBackupCache

    return LocalBackupCache(redis=fake_redis, slots=2, ttl_seconds=3600)


@pytest.fixture
def test_settings():
    """Settings with the defaults the backup tests rely on."""
    from applytrak.core.config import Settings

    return Settings(
        backup_max_age_days=30,
        local_cache_slots=2,
        local_cache_notes_limit=500,
        restore_dedupe_by_business_key=False,
        default_strategy="local-wins",
    )


@pytest.fixture
def backup_manager(store, session_factory, local_cache, test_settings):
    from applytrak.services.backup_manager import BackupManager

    return BackupManager(
        store,
        session_factory=session_factory,
        local_cache=local_cache,
        config=test_settings,
    )


@pytest.fixture
def orchestrator(store, backup_manager, test_settings):
    from applytrak.services.recovery_orchestrator import RecoveryOrchestrator

    return RecoveryOrchestrator(store, backup_manager, config=test_settings)


@pytest.fixture
def base_time():
    return datetime(2024, 3, 1, 12, 0, 0)


@pytest.fixture
def make_record(base_time):
    """Factory for application records with sensible defaults."""
    from applytrak.schemas.application import ApplicationRecord

    def _make(**overrides):
        values = {
            "id": "app-1",
            "company": "Acme",
            "position": "Backend Engineer",
            "date_applied": date(2024, 2, 20),
            "status": "Applied",
            "employment_type": "Remote",
            "location": "Berlin",
            "created_at": base_time,
            "updated_at": base_time,
        }
        values.update(overrides)
        return ApplicationRecord(**values)

    return _make


@pytest.fixture
def make_attachment():
    from applytrak.schemas.application import Attachment

    def _make(name="resume.pdf", content="UEsDBBQ=", **overrides):
        return Attachment(name=name, content=content, media_type="application/pdf", **overrides)

    return _make


@pytest.fixture
def sample_application_data():
    """Sample create request payload."""
    return {
        "company": "Globex",
        "position": "Data Engineer",
        "date_applied": "2024-02-21",
        "status": "Applied",
        "employment_type": "Hybrid",
        "location": "Lisbon",
        "salary": "70k EUR",
        "source": "LinkedIn",
        "url": "https://jobs.example.com/globex/123",
        "notes": "Referred by a former colleague",
    }


@pytest.fixture
def later(base_time):
    return base_time + timedelta(hours=2)


@pytest.fixture
def unavailable_cache():
    """Local backup cache whose Redis refuses every command."""
    from applytrak.core.redis_client import LocalBackupCache

    return LocalBackupCache(redis=UnavailableRedis(), slots=2, ttl_seconds=3600)

import asyncio
import inspect
import os
import sys
from pathlib import Path

# Configure the environment before any personnel import reads it
os.environ.setdefault("TEST_MODE", "true")
os.environ.setdefault("USE_MEMORY_STORE", "true")
os.environ.setdefault("USE_MEMORY_CACHE", "true")
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-testing-only-do-not-use-in-production")
# Cheap argon2 parameters keep the suite fast
os.environ.setdefault("ARGON2_TIME_COST", "1")
os.environ.setdefault("ARGON2_MEMORY_COST_KIB", "8192")
os.environ.setdefault("ARGON2_PARALLELISM", "1")

import pytest  # noqa: E402

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from personnel.config import Settings, reset_settings_cache  # noqa: E402
from personnel.service.auth import Authenticator, AuthorizationGate  # noqa: E402
from personnel.service.sessions import SessionCache  # noqa: E402
from personnel.service.tokens import TokenCodec  # noqa: E402
from personnel.storage.memory import MemoryCache, MemoryStore  # noqa: E402
from personnel.storage.models import Role  # noqa: E402

TEST_SECRET = "Test-Secret-Key_for-Automation-Only-987654321!"


class FakeClock:
    """Settable clock shared by the token codec and the memory cache."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def reset_settings_state():
    reset_settings_cache()
    yield
    reset_settings_cache()


@pytest.fixture
def settings():
    return Settings(
        jwt_secret=TEST_SECRET,
        access_token_ttl_minutes=15,
        refresh_token_ttl_minutes=60 * 24,
        argon2_time_cost=1,
        argon2_memory_cost_kib=8192,
        argon2_parallelism=1,
        use_memory_store=True,
        use_memory_cache=True,
        test_mode=True,
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def memory_cache(clock):
    return MemoryCache(clock=clock)


@pytest.fixture
def sessions(memory_cache):
    return SessionCache(memory_cache)


@pytest.fixture
def codec(clock):
    return TokenCodec(TEST_SECRET, clock=clock)


@pytest.fixture
def authenticator(memory_store, sessions, codec, settings):
    return Authenticator(memory_store, sessions, codec, settings)


@pytest.fixture
def gate(sessions, codec, settings):
    return AuthorizationGate(sessions, codec, settings)


@pytest.fixture
def department(memory_store):
    return memory_store.create_department({"name": "Engineering"})


@pytest.fixture
def make_employee(memory_store, authenticator, department):
    """Create an employee with a real argon2 hash of ``password``."""

    def _make(email="a@b.com", password="secret123", role=Role.ADMIN, **extra):
        values = {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "email": email,
            "role": role,
            "department_id": department.id,
            **extra,
        }
        return memory_store.create_employee(values, authenticator.hash_password(password))

    return _make


def pytest_pyfunc_call(pyfuncitem):
    if inspect.iscoroutinefunction(pyfuncitem.obj):
        call_kwargs = {
            name: pyfuncitem.funcargs[name]
            for name in pyfuncitem._fixtureinfo.argnames
            if name in pyfuncitem.funcargs
        }
        asyncio.run(pyfuncitem.obj(**call_kwargs))
        return True
    return None


def pytest_configure(config):
    config.addinivalue_line("markers", "asyncio: mark test as async")

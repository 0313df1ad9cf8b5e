"""
Test configuration and fixtures for the NoteNeo backend.

Settings are read when ``noteneo.settings`` is first imported, so the
environment is pointed at throwaway locations before any test module
imports the package.
"""

import os
import tempfile

_TMP = tempfile.mkdtemp(prefix="noteneo-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP}/auth.db"
os.environ["NOTENEO_UPLOAD_DIR"] = os.path.join(_TMP, "uploads")
os.environ["NOTENEO_STORAGE_BACKEND"] = "memory"
os.environ["JWT_SECRET_KEY"] = "test-secret"
os.environ.pop("GEMINI_API_KEY", None)
os.environ.pop("OPENROUTER_API_KEY", None)

import pytest

from fakes import FakeCapabilities, MemoryFiles


def pytest_configure(config):
    config.addinivalue_line("markers", "invariant: ledger and admission invariants")


@pytest.fixture
def caps():
    return FakeCapabilities()


@pytest.fixture
def files():
    return MemoryFiles()


@pytest.fixture
def memory_store():
    from noteneo.storage.memory import MemoryCatalogStore

    return MemoryCatalogStore()


@pytest.fixture
def sql_store(tmp_path):
    from noteneo.db import Base, make_engine, make_sessionmaker
    from noteneo import models  # noqa: F401  (registers tables)
    from noteneo.storage.sql import SqlCatalogStore

    engine = make_engine(f"sqlite:///{tmp_path}/catalog.db")
    Base.metadata.create_all(engine)
    yield SqlCatalogStore(make_sessionmaker(engine))
    engine.dispose()


@pytest.fixture(params=["memory", "sql"])
def store(request):
    """Every catalog store implementation must satisfy the same contract."""
    return request.getfixturevalue(f"{request.param}_store")


@pytest.fixture
def services(store, caps, files):
    from noteneo.services import build_services
    from noteneo.settings import settings

    return build_services(settings, store=store, capabilities=caps, files=files)

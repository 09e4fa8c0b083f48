"""Pytest configuration: import path, deterministic settings and shared fixtures."""

import os
import sys
from pathlib import Path

import pytest

_BACKEND_ROOT = Path(__file__).resolve().parents[1] / "apps" / "backend"
if str(_BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(_BACKEND_ROOT))

# テストではディスクへ書き込まず、外部プロバイダの鍵も使わない。
os.environ.setdefault("LINGOLOG_DB_PATH", ":memory:")
for _key in ("TRANSLATOR_API_KEY", "TRANSLATOR_PROXY_URL", "OPENAI_API_KEY", "SENTRY_DSN"):
    os.environ.pop(_key, None)

from factories import T0  # noqa: E402
from lingolog.clock import FrozenClock  # noqa: E402
from lingolog.store import InMemoryReviewItemStore, SQLiteReviewItemStore  # noqa: E402


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(T0)


@pytest.fixture
def memory_store() -> InMemoryReviewItemStore:
    return InMemoryReviewItemStore()


@pytest.fixture
def sqlite_store(tmp_path: Path):
    store = SQLiteReviewItemStore(str(tmp_path / "lingolog.sqlite3"))
    try:
        yield store
    finally:
        store.close()

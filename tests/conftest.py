"""Pytest configuration for test isolation.

The CLI and the database client read configuration from the environment
(``DATABASE_URL``, ``MPESA_SYNC_MAX_WORKERS``...) and from a ``.env`` in the
current directory, and ``db.client`` caches one engine per process. Any of
these leaking between tests makes results depend on test order.

The autouse fixture below clears the relevant variables, runs each test from
its own temporary directory, and disposes the shared engine afterwards.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Make sure `packages/` and `libs/db/src` are importable without an install.
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import reset_engine  # noqa: E402

_ENV_VARS = ("DATABASE_URL", "MPESA_SYNC_MAX_WORKERS", "MPESA_ANALYSIS_LOG_LEVEL")


@pytest.fixture(autouse=True)
def _isolate_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    work = tmp_path / "cwd"
    work.mkdir(parents=True, exist_ok=True)
    monkeypatch.chdir(work)
    reset_engine()
    yield
    reset_engine()
    # The CLI loads .env into os.environ; drop anything it added.
    for name in _ENV_VARS:
        os.environ.pop(name, None)

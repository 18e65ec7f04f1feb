"""Shared test fixtures for the pagekeep test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from pagekeep.config import PagekeepConfig
from pagekeep.engine import PageEngine
from pagekeep.models import Page, PageVersion
from pagekeep.store.memory import InMemoryPageStore

OWNER = "user-1"
NOTEBOOK = "nb-1"

_BASE_TS = datetime(2024, 1, 1, tzinfo=timezone.utc)


def make_page(
    page_id: str,
    parent_page_id: str | None = None,
    *,
    title: str | None = None,
    content: str = "",
    version: int = 1,
    notebook_id: str = NOTEBOOK,
    owner: str = OWNER,
    minutes: int = 0,
) -> Page:
    """Build a page with deterministic timestamps."""
    ts = _BASE_TS + timedelta(minutes=minutes)
    return Page(
        id=page_id,
        title=title or page_id.upper(),
        content=content,
        version=version,
        notebook_id=notebook_id,
        owner=owner,
        parent_page_id=parent_page_id,
        created_at=ts,
        updated_at=ts,
    )


def make_version(
    version_id: str,
    page_id: str,
    version: int,
    *,
    title: str = "T",
    content: str = "",
    owner: str = OWNER,
) -> PageVersion:
    return PageVersion(
        id=version_id,
        page_id=page_id,
        title=title,
        content=content,
        version=version,
        owner=owner,
        created_at=_BASE_TS + timedelta(minutes=version),
    )


class RecordingMetrics:
    """Metrics hook that remembers every call."""

    def __init__(self) -> None:
        self.increments: list[tuple[str, int, dict | None]] = []
        self.timings: list[tuple[str, float, dict | None]] = []
        self.gauges: list[tuple[str, float, dict | None]] = []

    def increment(self, name, value=1, tags=None):
        self.increments.append((name, value, tags))

    def timing(self, name, ms, tags=None):
        self.timings.append((name, ms, tags))

    def gauge(self, name, value, tags=None):
        self.gauges.append((name, value, tags))

    def count(self, name: str) -> int:
        return sum(value for n, value, _ in self.increments if n == name)


@pytest.fixture
def metrics() -> RecordingMetrics:
    return RecordingMetrics()


@pytest.fixture
def config(metrics: RecordingMetrics) -> PagekeepConfig:
    """Default test configuration wired to a recording metrics hook."""
    return PagekeepConfig(metrics=metrics)


@pytest.fixture
def store() -> InMemoryPageStore:
    return InMemoryPageStore()


@pytest.fixture
def engine(store: InMemoryPageStore, config: PagekeepConfig) -> PageEngine:
    return PageEngine(store, OWNER, config)

# tests/conftest.py
from datetime import timedelta
from typing import Callable

import pytest

from src.core.models import CandidateRecord, MetricKey
from src.core.storage import MemoryStore
from src.services.matching.title_resolver import TitleResolver


class FakeClock:
    """Manually advanced clock usable as both wall clock and monotonic clock."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_candidate(
    name: str = "Portal 2",
    source_id: str = "1234",
    main_story: float | None = 8.5,
    main_extras: float | None = 13.0,
    completionist: float | None = 22.0,
    all_styles: float | None = 10.5,
    aliases: tuple[str, ...] = (),
) -> CandidateRecord:
    """Creates a CandidateRecord with hour values converted to durations."""

    def hours(value: float | None) -> timedelta | None:
        return timedelta(hours=value) if value is not None else None

    return CandidateRecord(
        source_id=source_id,
        display_name=name,
        metrics={
            MetricKey.MAIN_STORY: hours(main_story),
            MetricKey.MAIN_EXTRAS: hours(main_extras),
            MetricKey.COMPLETIONIST: hours(completionist),
            MetricKey.ALL_STYLES: hours(all_styles),
        },
        aliases=aliases,
    )


@pytest.fixture
def candidate_factory() -> Callable[..., CandidateRecord]:
    """Factory for CandidateRecord objects."""
    return make_candidate


@pytest.fixture
def fake_clock() -> FakeClock:
    """Clock that only moves when a test advances it."""
    return FakeClock()


@pytest.fixture
def memory_store() -> MemoryStore:
    """Fresh in-memory key-value store."""
    return MemoryStore()


@pytest.fixture
def resolver() -> TitleResolver:
    """TitleResolver with the bundled override tables and default thresholds."""
    return TitleResolver()

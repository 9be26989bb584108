"""Test configuration for the game flow project."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

import pytest

from gameflow.pages import Page, PersistedPageId
from gameflow.storage import InMemoryGameStore, StorageError

T0 = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock returning a fixed instant until the test moves it."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingStore(InMemoryGameStore):
    """In-memory store that logs page calls and can fail on demand."""

    def __init__(self, *, clock: FakeClock | None = None) -> None:
        super().__init__(clock=clock or FakeClock())
        self.calls: list[tuple[str, str]] = []
        self.fail_on: tuple[str, str | None] | None = None

    def _check(self, operation: str, page_id: str | None) -> None:
        if self.fail_on is None:
            return
        failing_operation, failing_id = self.fail_on
        if operation == failing_operation and failing_id in (None, page_id):
            raise StorageError(f"{operation} rejected")

    def create_page(self, *, game_id: str, page_type: str, page_order: int, config: Mapping[str, Any]) -> Page:
        self._check("create", None)
        page = super().create_page(game_id=game_id, page_type=page_type, page_order=page_order, config=config)
        self.calls.append(("create", str(page.id)))
        return page

    def update_page(self, page_id: PersistedPageId, **changes: Any) -> Page:
        self._check("update", str(page_id))
        page = super().update_page(page_id, **changes)
        self.calls.append(("update", str(page_id)))
        return page

    def delete_page(self, page_id: PersistedPageId) -> None:
        self._check("delete", str(page_id))
        super().delete_page(page_id)
        self.calls.append(("delete", str(page_id)))

    def operations(self, kind: str) -> list[str]:
        return [page_id for operation, page_id in self.calls if operation == kind]


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def store(clock: FakeClock) -> InMemoryGameStore:
    return InMemoryGameStore(clock=clock)


@pytest.fixture()
def recording_store(clock: FakeClock) -> RecordingStore:
    return RecordingStore(clock=clock)


__all__ = ["FakeClock", "RecordingStore", "T0", "clock", "store", "recording_store"]

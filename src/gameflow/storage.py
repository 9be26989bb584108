"""Persistence for pages, sessions, player progress, leaderboard rows and events."""

from __future__ import annotations

import copy
import json
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping

from .events import GameEvent
from .pages import Page, PersistedPageId, parse_page_id
from .session import (
    GameSession,
    LeaderboardEntry,
    PlayerProgress,
    SessionNotFoundError,
    SessionStatus,
    utc_now,
)

logger = logging.getLogger(__name__)

_SESSION_FIELDS = frozenset({"status", "score", "team_name", "player_count", "completed_at"})
_PROGRESS_FIELDS = frozenset({"current_page_id", "score", "inventory", "variables"})
_EVENT_FIELDS = frozenset({"name", "event_type", "trigger_config", "reward_config"})


class StorageError(RuntimeError):
    """Raised when the store cannot complete a request."""


class NotFoundError(StorageError, KeyError):
    """Raised when a requested record does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} '{identifier}' does not exist.")

    def __str__(self) -> str:
        return str(self.args[0])


class GameStore(ABC):
    """Interface describing how game data is persisted."""

    @abstractmethod
    def get_pages(self, game_id: str) -> List[Page]:
        """Return the pages of ``game_id`` sorted by ``page_order``."""

    @abstractmethod
    def create_page(
        self,
        *,
        game_id: str,
        page_type: str,
        page_order: int,
        config: Mapping[str, Any],
    ) -> Page:
        """Persist a new page and return it with its issued identity."""

    @abstractmethod
    def update_page(
        self,
        page_id: PersistedPageId,
        *,
        page_type: str | None = None,
        page_order: int | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> Page:
        """Apply the provided fields to a stored page.

        Raises:
            NotFoundError: If the page does not exist.
        """

    @abstractmethod
    def delete_page(self, page_id: PersistedPageId) -> None:
        """Remove a stored page.

        Raises:
            NotFoundError: If the page does not exist.
        """

    @abstractmethod
    def create_session(
        self,
        *,
        game_id: str,
        team_name: str | None = None,
        player_count: int = 1,
    ) -> GameSession:
        """Persist a new ``playing`` session stamped with its start time."""

    @abstractmethod
    def get_session(self, session_id: str) -> GameSession:
        """Return a stored session.

        Raises:
            SessionNotFoundError: If the session does not exist.
        """

    @abstractmethod
    def update_session(self, session_id: str, **changes: Any) -> GameSession:
        """Apply ``changes`` to a stored session and return the new record."""

    @abstractmethod
    def get_player_progress(self, session_id: str) -> List[PlayerProgress]:
        """Return every progress record of a session."""

    @abstractmethod
    def create_player_progress(self, progress: PlayerProgress) -> PlayerProgress:
        """Persist ``progress`` and return it with its issued identity."""

    @abstractmethod
    def update_player_progress(self, progress_id: str, **changes: Any) -> PlayerProgress:
        """Apply ``changes`` to a stored progress record."""

    @abstractmethod
    def create_leaderboard_entry(self, entry: LeaderboardEntry) -> LeaderboardEntry:
        """Persist a leaderboard row."""

    @abstractmethod
    def get_leaderboard(self, game_id: str) -> List[LeaderboardEntry]:
        """Return the leaderboard of a game, best score first."""

    @abstractmethod
    def get_events(self, game_id: str) -> List[GameEvent]:
        """Return the standing events of ``game_id`` in creation order."""

    @abstractmethod
    def get_event(self, event_id: str) -> GameEvent:
        """Return a stored event.

        Raises:
            NotFoundError: If the event does not exist.
        """

    @abstractmethod
    def create_event(
        self,
        *,
        game_id: str,
        name: str,
        event_type: str,
        trigger_config: Mapping[str, Any],
        reward_config: Mapping[str, Any],
    ) -> GameEvent:
        """Persist a new event and return it with its issued identity."""

    @abstractmethod
    def update_event(self, event_id: str, **changes: Any) -> GameEvent:
        """Apply ``changes`` to a stored event and return the new record."""

    @abstractmethod
    def delete_event(self, event_id: str) -> None:
        """Remove a stored event.

        Raises:
            NotFoundError: If the event does not exist.
        """


class InMemoryGameStore(GameStore):
    """Keep game data in local process memory."""

    def __init__(self, *, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._lock = threading.RLock()
        self._pages: Dict[str, Page] = {}
        self._sessions: Dict[str, GameSession] = {}
        self._progress: Dict[str, PlayerProgress] = {}
        self._leaderboard: List[LeaderboardEntry] = []
        self._events: Dict[str, GameEvent] = {}

    def get_pages(self, game_id: str) -> List[Page]:
        with self._lock:
            pages = [page for page in self._pages.values() if page.game_id == game_id]
        return sorted(pages, key=lambda page: page.page_order)

    def create_page(
        self,
        *,
        game_id: str,
        page_type: str,
        page_order: int,
        config: Mapping[str, Any],
    ) -> Page:
        page = Page(
            id=PersistedPageId(uuid.uuid4().hex),
            game_id=game_id,
            page_type=page_type,
            page_order=page_order,
            config=copy.deepcopy(dict(config)),
            created_at=self._clock(),
        )
        with self._lock:
            backup = self._backup()
            self._pages[str(page.id)] = page
            self._commit(backup)
        logger.debug("Created page %s (%s) for game %s", page.id, page_type, game_id)
        return page

    def update_page(
        self,
        page_id: PersistedPageId,
        *,
        page_type: str | None = None,
        page_order: int | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> Page:
        key = _page_key(page_id)
        with self._lock:
            backup = self._backup()
            current = self._pages.get(key)
            if current is None:
                raise NotFoundError("Page", key)
            changes: dict[str, Any] = {}
            if page_type is not None:
                changes["page_type"] = page_type
            if page_order is not None:
                changes["page_order"] = page_order
            if config is not None:
                changes["config"] = copy.deepcopy(dict(config))
            updated = replace(current, **changes)
            self._pages[key] = updated
            self._commit(backup)
        logger.debug("Updated page %s", key)
        return updated

    def delete_page(self, page_id: PersistedPageId) -> None:
        key = _page_key(page_id)
        with self._lock:
            backup = self._backup()
            if self._pages.pop(key, None) is None:
                raise NotFoundError("Page", key)
            self._commit(backup)
        logger.debug("Deleted page %s", key)

    def create_session(
        self,
        *,
        game_id: str,
        team_name: str | None = None,
        player_count: int = 1,
    ) -> GameSession:
        session = GameSession(
            id=uuid.uuid4().hex,
            game_id=game_id,
            team_name=team_name,
            player_count=player_count,
            started_at=self._clock(),
        )
        with self._lock:
            backup = self._backup()
            self._sessions[session.id] = session
            self._commit(backup)
        return replace(session)

    def get_session(self, session_id: str) -> GameSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return replace(session)

    def update_session(self, session_id: str, **changes: Any) -> GameSession:
        unknown = set(changes) - _SESSION_FIELDS
        if unknown:
            raise ValueError(f"Unsupported session fields: {', '.join(sorted(unknown))}")
        if "status" in changes:
            changes["status"] = SessionStatus(changes["status"])
        with self._lock:
            backup = self._backup()
            current = self._sessions.get(session_id)
            if current is None:
                raise SessionNotFoundError(session_id)
            updated = replace(current, **changes)
            self._sessions[session_id] = updated
            self._commit(backup)
        return replace(updated)

    def get_player_progress(self, session_id: str) -> List[PlayerProgress]:
        with self._lock:
            return [
                _clone_progress(record)
                for record in self._progress.values()
                if record.session_id == session_id
            ]

    def create_player_progress(self, progress: PlayerProgress) -> PlayerProgress:
        record = _clone_progress(progress)
        record.id = uuid.uuid4().hex
        record.updated_at = self._clock()
        with self._lock:
            backup = self._backup()
            self._progress[record.id] = record
            self._commit(backup)
        return _clone_progress(record)

    def update_player_progress(self, progress_id: str, **changes: Any) -> PlayerProgress:
        unknown = set(changes) - _PROGRESS_FIELDS
        if unknown:
            raise ValueError(f"Unsupported progress fields: {', '.join(sorted(unknown))}")
        with self._lock:
            backup = self._backup()
            current = self._progress.get(progress_id)
            if current is None:
                raise NotFoundError("Progress", progress_id)
            updated = _clone_progress(replace(current, **changes, updated_at=self._clock()))
            self._progress[progress_id] = updated
            self._commit(backup)
        return _clone_progress(updated)

    def create_leaderboard_entry(self, entry: LeaderboardEntry) -> LeaderboardEntry:
        stored = replace(entry, id=uuid.uuid4().hex, created_at=self._clock())
        with self._lock:
            backup = self._backup()
            self._leaderboard.append(stored)
            self._commit(backup)
        return stored

    def get_leaderboard(self, game_id: str) -> List[LeaderboardEntry]:
        with self._lock:
            entries = [entry for entry in self._leaderboard if entry.game_id == game_id]
        return sorted(entries, key=_leaderboard_rank)

    def get_events(self, game_id: str) -> List[GameEvent]:
        with self._lock:
            return [event for event in self._events.values() if event.game_id == game_id]

    def get_event(self, event_id: str) -> GameEvent:
        with self._lock:
            event = self._events.get(event_id)
        if event is None:
            raise NotFoundError("Event", event_id)
        return event

    def create_event(
        self,
        *,
        game_id: str,
        name: str,
        event_type: str,
        trigger_config: Mapping[str, Any],
        reward_config: Mapping[str, Any],
    ) -> GameEvent:
        event = GameEvent(
            id=uuid.uuid4().hex,
            game_id=game_id,
            name=name,
            event_type=event_type,
            trigger_config=copy.deepcopy(dict(trigger_config)),
            reward_config=copy.deepcopy(dict(reward_config)),
        )
        with self._lock:
            backup = self._backup()
            self._events[event.id] = event
            self._commit(backup)
        logger.debug("Created %s event %s for game %s", event_type, event.id, game_id)
        return event

    def update_event(self, event_id: str, **changes: Any) -> GameEvent:
        unknown = set(changes) - _EVENT_FIELDS
        if unknown:
            raise ValueError(f"Unsupported event fields: {', '.join(sorted(unknown))}")
        for key in ("trigger_config", "reward_config"):
            if key in changes:
                changes[key] = copy.deepcopy(dict(changes[key]))
        with self._lock:
            backup = self._backup()
            current = self._events.get(event_id)
            if current is None:
                raise NotFoundError("Event", event_id)
            updated = replace(current, **changes)
            self._events[event_id] = updated
            self._commit(backup)
        return updated

    def delete_event(self, event_id: str) -> None:
        with self._lock:
            backup = self._backup()
            if self._events.pop(event_id, None) is None:
                raise NotFoundError("Event", event_id)
            self._commit(backup)
        logger.debug("Deleted event %s", event_id)

    def _changed(self) -> None:
        """Hook called with the lock held after every mutation."""

    def _backup(self) -> tuple[Any, ...]:
        return (
            dict(self._pages),
            dict(self._sessions),
            dict(self._progress),
            list(self._leaderboard),
            dict(self._events),
        )

    def _commit(self, backup: tuple[Any, ...]) -> None:
        """Run the change hook, putting ``backup`` back in place if it fails."""

        try:
            self._changed()
        except StorageError:
            self._pages, self._sessions, self._progress, self._leaderboard, self._events = backup
            raise

    def _snapshot(self) -> dict[str, Any]:
        return {
            "pages": [page.to_payload() for page in self._pages.values()],
            "sessions": [session.to_payload() for session in self._sessions.values()],
            "progress": [record.to_payload() for record in self._progress.values()],
            "leaderboard": [entry.to_payload() for entry in self._leaderboard],
            "events": [event.to_payload() for event in self._events.values()],
        }

    def _restore(self, payload: Mapping[str, Any]) -> None:
        for raw in payload.get("pages", []):
            page = Page.from_payload(raw)
            self._pages[str(page.id)] = page
        for raw in payload.get("sessions", []):
            session = GameSession.from_payload(raw)
            self._sessions[session.id] = session
        for raw in payload.get("progress", []):
            record = PlayerProgress.from_payload(raw)
            if record.id is None:
                raise ValueError("Stored progress record is missing 'id'.")
            self._progress[record.id] = record
        for raw in payload.get("leaderboard", []):
            self._leaderboard.append(_leaderboard_from_payload(raw))
        for raw in payload.get("events", []):
            event = GameEvent.from_payload(raw)
            self._events[event.id] = event


class FileGameStore(InMemoryGameStore):
    """Persist game data as a single JSON document on disk.

    The document is rewritten after every mutation through a temporary file
    so a crash never leaves a half-written store behind. When the write
    fails the in-memory records go back to their state before the change.
    """

    def __init__(self, path: Path, *, clock: Callable[[], datetime] = utc_now) -> None:
        super().__init__(clock=clock)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self.path.exists():
            try:
                payload = json.loads(self.path.read_text(encoding="utf-8"))
            except json.JSONDecodeError as exc:
                raise StorageError(f"Store file '{self.path}' is not valid JSON.") from exc
            if not isinstance(payload, dict):
                raise StorageError(f"Store file '{self.path}' must contain a JSON object.")
            try:
                self._restore(payload)
            except (KeyError, TypeError, ValueError) as exc:
                raise StorageError(f"Store file '{self.path}' contains invalid records.") from exc
            logger.info("Loaded %d pages and %d sessions from %s", len(self._pages), len(self._sessions), self.path)

    def _changed(self) -> None:
        temporary = self.path.with_suffix(self.path.suffix + ".tmp") if self.path.suffix else self.path.with_suffix(".tmp")
        try:
            with temporary.open("w", encoding="utf-8") as handle:
                json.dump(self._snapshot(), handle, ensure_ascii=False, indent=2)
            temporary.replace(self.path)
        except OSError as exc:
            raise StorageError(f"Failed to write store file '{self.path}'.") from exc


def _page_key(page_id: PersistedPageId | str) -> str:
    parsed = parse_page_id(page_id)
    if not isinstance(parsed, PersistedPageId):
        raise ValueError(f"Temporary page id '{parsed}' has not been persisted.")
    return parsed.value


def _clone_progress(record: PlayerProgress) -> PlayerProgress:
    return replace(record, inventory=list(record.inventory), variables=copy.deepcopy(record.variables))


def _leaderboard_rank(entry: LeaderboardEntry) -> tuple[int, float]:
    elapsed = entry.completion_time_seconds
    return (-entry.total_score, float(elapsed) if elapsed is not None else float("inf"))


def _leaderboard_from_payload(payload: Mapping[str, Any]) -> LeaderboardEntry:
    created_at = payload.get("createdAt")
    return LeaderboardEntry(
        id=payload.get("id"),
        game_id=str(payload["gameId"]),
        session_id=str(payload["sessionId"]),
        team_name=payload.get("teamName"),
        total_score=int(payload.get("totalScore") or 0),
        completion_time_seconds=payload.get("completionTimeSeconds"),
        created_at=datetime.fromisoformat(created_at) if created_at else None,
    )


__all__ = [
    "FileGameStore",
    "GameStore",
    "InMemoryGameStore",
    "NotFoundError",
    "StorageError",
]

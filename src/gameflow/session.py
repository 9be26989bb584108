"""Game sessions, per-player progress and the transitions between them."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Mapping, Sequence

from .flow import GAME_OVER_INDEX, process_on_complete_actions, resolve_flow_router
from .page_config import OnCompleteAction
from .pages import END_GAME, END_OF_GAME, NEXT_PAGE, GameGraph, Page, PageId, _EndOfGame, parse_page_id

if TYPE_CHECKING:  # pragma: no cover - import only used for annotations
    from .storage import GameStore

logger = logging.getLogger(__name__)


class _UnsetType:
    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial representation
        return "UNSET"


UNSET = _UnsetType()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    PLAYING = "playing"
    COMPLETED = "completed"
    ABANDONED = "abandoned"


class SessionNotFoundError(KeyError):
    """Raised when a session identifier does not match a stored session."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"Session '{session_id}' does not exist.")

    def __str__(self) -> str:
        return str(self.args[0])


@dataclass
class GameSession:
    """A team's playthrough of a game."""

    id: str
    game_id: str
    status: SessionStatus = SessionStatus.PLAYING
    score: int = 0
    team_name: str | None = None
    player_count: int = 1
    started_at: datetime | None = None
    completed_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "status": self.status.value,
            "score": self.score,
            "teamName": self.team_name,
            "playerCount": self.player_count,
            "startedAt": _iso(self.started_at),
            "completedAt": _iso(self.completed_at),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GameSession":
        return cls(
            id=str(payload["id"]),
            game_id=str(payload["gameId"]),
            status=SessionStatus(payload.get("status", SessionStatus.PLAYING.value)),
            score=int(payload.get("score") or 0),
            team_name=payload.get("teamName"),
            player_count=int(payload.get("playerCount") or 1),
            started_at=_parse_datetime(payload.get("startedAt")),
            completed_at=_parse_datetime(payload.get("completedAt")),
        )


@dataclass
class PlayerProgress:
    """Where one player is within a session and what they carry.

    ``id`` is ``None`` until storage has assigned one.
    """

    id: str | None
    session_id: str
    user_id: str
    current_page_id: str | None = None
    score: int = 0
    inventory: list[str] = field(default_factory=list)
    variables: dict[str, Any] = field(default_factory=dict)
    updated_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "sessionId": self.session_id,
            "userId": self.user_id,
            "currentPageId": self.current_page_id,
            "score": self.score,
            "inventory": list(self.inventory),
            "variables": dict(self.variables),
            "updatedAt": _iso(self.updated_at),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PlayerProgress":
        return cls(
            id=payload.get("id"),
            session_id=str(payload["sessionId"]),
            user_id=str(payload["userId"]),
            current_page_id=payload.get("currentPageId"),
            score=int(payload.get("score") or 0),
            inventory=[str(item) for item in payload.get("inventory") or []],
            variables=dict(payload.get("variables") or {}),
            updated_at=_parse_datetime(payload.get("updatedAt")),
        )


@dataclass(frozen=True)
class ProgressPatch:
    """Fields a client wants to change on a player's progress.

    Any field left as :data:`UNSET` keeps its stored value. ``score`` is the
    new absolute score, never an increment.
    """

    current_page_id: str | None | _UnsetType = UNSET
    score: int | _UnsetType = UNSET
    inventory: Sequence[str] | _UnsetType = UNSET
    variables: Mapping[str, Any] | _UnsetType = UNSET

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ProgressPatch":
        """Read a wire patch, treating absent and ``null`` values alike."""

        values: dict[str, Any] = {}
        page_id = payload.get("currentPageId", payload.get("pageId"))
        if page_id is not None:
            values["current_page_id"] = str(page_id)
        if payload.get("score") is not None:
            values["score"] = int(payload["score"])
        if payload.get("inventory") is not None:
            values["inventory"] = [str(item) for item in payload["inventory"]]
        if payload.get("variables") is not None:
            values["variables"] = dict(payload["variables"])
        return cls(**values)

    def changes(self) -> dict[str, Any]:
        """Return only the fields that are present in this patch."""

        return {
            name: value
            for name, value in (
                ("current_page_id", self.current_page_id),
                ("score", self.score),
                ("inventory", self.inventory),
                ("variables", self.variables),
            )
            if value is not UNSET
        }


@dataclass(frozen=True)
class LeaderboardEntry:
    game_id: str
    session_id: str
    total_score: int
    team_name: str | None = None
    completion_time_seconds: int | None = None
    id: str | None = None
    created_at: datetime | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "sessionId": self.session_id,
            "teamName": self.team_name,
            "totalScore": self.total_score,
            "completionTimeSeconds": self.completion_time_seconds,
            "createdAt": _iso(self.created_at),
        }


def apply_progress_patch(
    progress: PlayerProgress | None,
    patch: ProgressPatch,
    *,
    session_id: str,
    user_id: str,
) -> PlayerProgress:
    """Return the progress record that results from applying ``patch``.

    When ``progress`` is ``None`` a new, unsaved record is seeded from the
    patch with empty inventory and variables and a score of zero for any
    field the patch leaves out. Otherwise only present fields change.
    """

    changes = patch.changes()
    if "inventory" in changes:
        changes["inventory"] = list(changes["inventory"])
    if "variables" in changes:
        changes["variables"] = dict(changes["variables"])

    if progress is None:
        return PlayerProgress(id=None, session_id=session_id, user_id=user_id, **changes)
    return replace(progress, **changes)


def derive_leaderboard_entry(session: GameSession) -> LeaderboardEntry:
    """Build the leaderboard row for a completed session.

    ``completion_time_seconds`` is the whole number of seconds between start
    and completion, rounded down, and ``None`` when either timestamp is
    missing.
    """

    if session.status is not SessionStatus.COMPLETED:
        raise ValueError(f"Session '{session.id}' is not completed.")

    seconds = None
    if session.started_at is not None and session.completed_at is not None:
        elapsed_ms = (session.completed_at - session.started_at) // timedelta(milliseconds=1)
        seconds = elapsed_ms // 1000

    return LeaderboardEntry(
        game_id=session.game_id,
        session_id=session.id,
        team_name=session.team_name,
        total_score=session.score,
        completion_time_seconds=seconds,
    )


@dataclass(frozen=True)
class AdvanceResult:
    """Outcome of moving a player to another page."""

    session: GameSession
    progress: PlayerProgress | None
    completed: bool

    @property
    def current_page_id(self) -> str | None:
        return self.progress.current_page_id if self.progress else None


class SessionService:
    """Coordinate session transitions against a :class:`~gameflow.storage.GameStore`."""

    def __init__(
        self,
        store: "GameStore",
        *,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._rng = rng

    @property
    def store(self) -> "GameStore":
        return self._store

    def get_session(self, session_id: str) -> GameSession:
        return self._store.get_session(session_id)

    def get_progress(self, session_id: str, user_id: str) -> PlayerProgress | None:
        for record in self._store.get_player_progress(session_id):
            if record.user_id == user_id:
                return record
        return None

    def start(
        self,
        game_id: str,
        *,
        user_id: str | None = None,
        team_name: str | None = None,
        player_count: int = 1,
    ) -> tuple[GameSession, PlayerProgress | None]:
        """Open a new ``playing`` session and seed progress for ``user_id``."""

        if not isinstance(game_id, str) or not game_id.strip():
            raise ValueError("game_id must be a non-empty string")
        if player_count < 1:
            raise ValueError("player_count must be at least 1")

        session = self._store.create_session(
            game_id=game_id.strip(), team_name=team_name, player_count=player_count
        )
        logger.info("Started session %s for game %s", session.id, session.game_id)

        progress = None
        if user_id:
            progress = self._store.create_player_progress(
                PlayerProgress(id=None, session_id=session.id, user_id=user_id)
            )
        return session, progress

    def update_session(
        self,
        session_id: str,
        *,
        status: SessionStatus | str | _UnsetType = UNSET,
        score: int | _UnsetType = UNSET,
        team_name: str | None | _UnsetType = UNSET,
    ) -> GameSession:
        """Apply partial changes to a session.

        Moving a session into ``completed`` stamps ``completed_at`` and
        records one leaderboard entry. Re-sending ``completed`` for a session
        that is already completed does not add another entry.
        """

        current = self._store.get_session(session_id)
        changes: dict[str, Any] = {}
        if status is not UNSET:
            changes["status"] = SessionStatus(status)
        if score is not UNSET:
            changes["score"] = score
        if team_name is not UNSET:
            changes["team_name"] = team_name

        completing = (
            changes.get("status") is SessionStatus.COMPLETED
            and current.status is not SessionStatus.COMPLETED
        )
        if completing:
            changes["completed_at"] = self._clock()

        updated = self._store.update_session(session_id, **changes)
        if completing:
            entry = self._store.create_leaderboard_entry(derive_leaderboard_entry(updated))
            logger.info(
                "Session %s completed with score %s in %s seconds",
                updated.id,
                entry.total_score,
                entry.completion_time_seconds,
            )
        return updated

    def patch_progress(self, session_id: str, user_id: str, patch: ProgressPatch) -> PlayerProgress:
        """Apply ``patch`` to the player's progress, creating it when absent."""

        self._store.get_session(session_id)
        existing = self.get_progress(session_id, user_id)
        merged = apply_progress_patch(existing, patch, session_id=session_id, user_id=user_id)
        if existing is None:
            logger.debug("Creating progress for user %s in session %s", user_id, session_id)
            return self._store.create_player_progress(merged)
        if existing.id is None:
            raise RuntimeError(f"Progress of user '{user_id}' in session '{session_id}' has no id.")
        return self._store.update_player_progress(existing.id, **patch.changes())

    def advance(self, session_id: str, user_id: str, target: str | None = None) -> AdvanceResult:
        """Move the player to the next page or complete the session.

        ``target`` follows the page reference rules: ``None`` or ``"_next"``
        picks the next page in order, ``"_end"`` ends the game, anything else
        is taken as an explicit page id. A player without a current page
        starts at the first page unless ``target`` names another one.
        """

        session = self._store.get_session(session_id)
        graph = GameGraph(self._store.get_pages(session.game_id))
        progress = self.get_progress(session_id, user_id)

        current = None
        if progress is not None and progress.current_page_id:
            current = graph.get(progress.current_page_id)
            if current is None:
                raise KeyError(f"Page '{progress.current_page_id}' is not part of game '{session.game_id}'.")

        if current is None:
            resolved = _resolve_initial(graph, target)
        else:
            resolved = graph.resolve_next(current, target)

        if resolved is END_OF_GAME:
            completed = self.update_session(session_id, status=SessionStatus.COMPLETED)
            return AdvanceResult(session=completed, progress=progress, completed=True)

        updated = self.patch_progress(session_id, user_id, ProgressPatch(current_page_id=str(resolved)))
        return AdvanceResult(session=session, progress=updated, completed=False)

    def complete_page(
        self,
        session_id: str,
        user_id: str,
        *,
        next_page_id: str | None = None,
        reward_points: int = 0,
        reward_items: Sequence[str] = (),
    ) -> AdvanceResult:
        """Finish the player's current page and move on.

        Rewards are added first, then the page's ``onCompleteActions`` run,
        then the next page is chosen from ``next_page_id`` (or the next page
        in order) with flow routers resolved along the way.
        """

        if reward_points < 0:
            raise ValueError("reward_points must be zero or greater")

        session = self._store.get_session(session_id)
        pages = list(GameGraph(self._store.get_pages(session.game_id)).pages)
        progress = self.get_progress(session_id, user_id)
        if progress is None or not progress.current_page_id:
            raise ValueError(f"User '{user_id}' has no current page in session '{session_id}'.")

        current_index = next(
            (index for index, page in enumerate(pages) if str(page.id) == progress.current_page_id),
            -1,
        )
        if current_index == -1:
            raise KeyError(f"Page '{progress.current_page_id}' is not part of game '{session.game_id}'.")
        current = pages[current_index]

        inventory = list(progress.inventory)
        inventory.extend(reward_items)
        outcome = process_on_complete_actions(
            _on_complete_actions(current),
            progress.variables,
            inventory,
            progress.score + reward_points,
        )

        next_index = GAME_OVER_INDEX
        if next_page_id != END_GAME:
            next_index = current_index + 1
            if next_page_id:
                found = next((index for index, page in enumerate(pages) if str(page.id) == next_page_id), -1)
                if found != -1:
                    next_index = found
            next_index = resolve_flow_router(
                pages,
                next_index,
                outcome.variables,
                outcome.inventory,
                outcome.score,
                rng=self._rng,
            )

        state = ProgressPatch(score=outcome.score, inventory=outcome.inventory, variables=outcome.variables)
        if next_index == GAME_OVER_INDEX or next_index >= len(pages):
            saved = self.patch_progress(session_id, user_id, state)
            finished = self.update_session(session_id, status=SessionStatus.COMPLETED, score=outcome.score)
            return AdvanceResult(session=finished, progress=saved, completed=True)

        saved = self.patch_progress(
            session_id,
            user_id,
            replace(state, current_page_id=str(pages[next_index].id)),
        )
        return AdvanceResult(session=session, progress=saved, completed=False)


def _resolve_initial(graph: GameGraph, target: str | None) -> PageId | _EndOfGame:
    if target == END_GAME:
        return END_OF_GAME
    if target and target != NEXT_PAGE:
        return parse_page_id(target)
    first = graph.first_page()
    return first.id if first is not None else END_OF_GAME


def _on_complete_actions(page: Page) -> list[OnCompleteAction]:
    raw = page.config.get("onCompleteActions") or []
    if not isinstance(raw, list):
        return []
    return [OnCompleteAction.model_validate(action) for action in raw if isinstance(action, Mapping)]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


__all__ = [
    "AdvanceResult",
    "GameSession",
    "LeaderboardEntry",
    "PlayerProgress",
    "ProgressPatch",
    "SessionNotFoundError",
    "SessionService",
    "SessionStatus",
    "UNSET",
    "apply_progress_patch",
    "derive_leaderboard_entry",
    "utc_now",
]

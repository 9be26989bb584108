"""FastAPI application exposing page editing, sessions and standing events."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Response
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..events import (
    EVENT_TYPE_LABELS,
    REWARD_TYPE_LABELS,
    EventType,
    GameEvent,
    RewardType,
    apply_event_changes,
    change_reward_type,
    default_reward_config,
    default_trigger_config,
    validate_trigger_config,
)
from ..page_config import default_config_for, validate_page_config
from ..page_types import PAGE_TYPES
from ..pages import (
    Page,
    PersistedPageId,
    compute_page_reachability,
    find_dangling_references,
    parse_page_id,
)
from ..reconciliation import PageSyncError, sync_pages
from ..session import (
    AdvanceResult,
    GameSession,
    LeaderboardEntry,
    PlayerProgress,
    ProgressPatch,
    SessionService,
    SessionStatus,
    UNSET,
)
from ..storage import FileGameStore, GameStore, InMemoryGameStore
from ..templates import PAGE_TEMPLATES
from .settings import GameApiSettings

logger = logging.getLogger(__name__)


class _ApiModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PageTypeResource(_ApiModel):
    value: str
    label: str
    default_config: dict[str, Any]


class PageTypeListResponse(_ApiModel):
    page_types: list[PageTypeResource]


class TemplatePageResource(_ApiModel):
    page_type: str
    config: dict[str, Any]


class PageTemplateResource(_ApiModel):
    id: str
    label: str
    description: str
    pages: list[TemplatePageResource]


class PageTemplateListResponse(_ApiModel):
    templates: list[PageTemplateResource]


class PageResource(_ApiModel):
    id: str
    game_id: str
    page_type: str
    page_order: int
    config: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime | None = None

    @classmethod
    def from_page(cls, page: Page) -> "PageResource":
        return cls(
            id=str(page.id),
            game_id=page.game_id,
            page_type=page.page_type,
            page_order=page.page_order,
            config=page.config,
            created_at=page.created_at,
        )


class PageListResponse(_ApiModel):
    pages: list[PageResource]


class PageCreateRequest(_ApiModel):
    page_type: str = Field(..., min_length=1)
    page_order: int | None = Field(None, ge=1)
    config: dict[str, Any] | None = None


class PageUpdateRequest(_ApiModel):
    page_type: str | None = Field(None, min_length=1)
    page_order: int | None = Field(None, ge=1)
    config: dict[str, Any] | None = None


class DraftPageRequest(_ApiModel):
    id: str = Field(..., min_length=1)
    page_type: str = Field(..., min_length=1)
    page_order: int = Field(..., ge=1)
    config: dict[str, Any] = Field(default_factory=dict)


class PageSyncRequest(_ApiModel):
    pages: list[DraftPageRequest]


class PageSyncResponse(_ApiModel):
    pages: list[PageResource]
    id_mapping: dict[str, str]


class PageReferenceResource(_ApiModel):
    page_id: str
    path: str
    target: str


class PageConfigIssueResource(_ApiModel):
    page_id: str
    message: str


class PageValidationResponse(_ApiModel):
    dangling_references: list[PageReferenceResource]
    config_issues: list[PageConfigIssueResource]
    start_page: str | None
    reachable_pages: list[str]
    unreachable_pages: list[str]


class SessionResource(_ApiModel):
    id: str
    game_id: str
    status: SessionStatus
    score: int
    team_name: str | None = None
    player_count: int
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_session(cls, session: GameSession) -> "SessionResource":
        return cls(
            id=session.id,
            game_id=session.game_id,
            status=session.status,
            score=session.score,
            team_name=session.team_name,
            player_count=session.player_count,
            started_at=session.started_at,
            completed_at=session.completed_at,
        )


class ProgressResource(_ApiModel):
    id: str | None
    session_id: str
    user_id: str
    current_page_id: str | None = None
    score: int
    inventory: list[str]
    variables: dict[str, Any]
    updated_at: datetime | None = None

    @classmethod
    def from_progress(cls, progress: PlayerProgress) -> "ProgressResource":
        return cls(
            id=progress.id,
            session_id=progress.session_id,
            user_id=progress.user_id,
            current_page_id=progress.current_page_id,
            score=progress.score,
            inventory=list(progress.inventory),
            variables=dict(progress.variables),
            updated_at=progress.updated_at,
        )


class SessionStartRequest(_ApiModel):
    game_id: str = Field(..., min_length=1)
    user_id: str | None = None
    team_name: str | None = None
    player_count: int = Field(1, ge=1)


class SessionStateResponse(_ApiModel):
    session: SessionResource
    progress: ProgressResource | None = None
    completed: bool = False

    @classmethod
    def from_result(cls, result: AdvanceResult) -> "SessionStateResponse":
        return cls(
            session=SessionResource.from_session(result.session),
            progress=ProgressResource.from_progress(result.progress) if result.progress else None,
            completed=result.completed,
        )


class SessionUpdateRequest(_ApiModel):
    status: SessionStatus | None = None
    score: int | None = Field(None, ge=0)
    team_name: str | None = None


class ProgressPatchRequest(_ApiModel):
    user_id: str = Field(..., min_length=1)
    current_page_id: str | None = None
    score: int | None = Field(None, ge=0)
    inventory: list[str] | None = None
    variables: dict[str, Any] | None = None


class AdvanceRequest(_ApiModel):
    user_id: str = Field(..., min_length=1)
    target: str | None = None


class CompletePageRequest(_ApiModel):
    user_id: str = Field(..., min_length=1)
    next_page_id: str | None = None
    reward_points: int = Field(0, ge=0)
    reward_items: list[str] = Field(default_factory=list)


class LeaderboardEntryResource(_ApiModel):
    id: str | None
    game_id: str
    session_id: str
    team_name: str | None = None
    total_score: int
    completion_time_seconds: int | None = None
    created_at: datetime | None = None

    @classmethod
    def from_entry(cls, entry: LeaderboardEntry) -> "LeaderboardEntryResource":
        return cls(
            id=entry.id,
            game_id=entry.game_id,
            session_id=entry.session_id,
            team_name=entry.team_name,
            total_score=entry.total_score,
            completion_time_seconds=entry.completion_time_seconds,
            created_at=entry.created_at,
        )


class LeaderboardResponse(_ApiModel):
    entries: list[LeaderboardEntryResource]


class EventTypeResource(_ApiModel):
    value: str
    label: str
    default_config: dict[str, Any]


class EventTypeListResponse(_ApiModel):
    event_types: list[EventTypeResource]
    reward_types: list[EventTypeResource]


class RewardConfigChangeRequest(_ApiModel):
    reward_type: str = Field(..., min_length=1)
    reward_config: dict[str, Any] = Field(default_factory=dict)


class RewardConfigResponse(_ApiModel):
    reward_config: dict[str, Any]


class TriggerConfigChangeRequest(_ApiModel):
    event_type: str = Field(..., min_length=1)
    previous_event_type: str | None = None
    trigger_config: dict[str, Any] | None = None


class TriggerConfigResponse(_ApiModel):
    trigger_config: dict[str, Any]


class EventResource(_ApiModel):
    id: str
    game_id: str
    name: str
    event_type: str
    trigger_config: dict[str, Any]
    reward_config: dict[str, Any]

    @classmethod
    def from_event(cls, event: GameEvent) -> "EventResource":
        return cls.model_validate(event.to_payload())


class EventListResponse(_ApiModel):
    events: list[EventResource]


class EventCreateRequest(_ApiModel):
    name: str = Field(..., min_length=1)
    event_type: str = Field(EventType.QRCODE.value, min_length=1)
    trigger_config: dict[str, Any] | None = None
    reward_config: dict[str, Any] | None = None


class EventUpdateRequest(_ApiModel):
    name: str | None = Field(None, min_length=1)
    event_type: str | None = Field(None, min_length=1)
    trigger_config: dict[str, Any] | None = None
    reward_config: dict[str, Any] | None = None


def _build_store(settings: GameApiSettings) -> GameStore:
    if settings.store_path is not None:
        return FileGameStore(settings.store_path)
    return InMemoryGameStore()


def _configure_logging(settings: GameApiSettings) -> None:
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("gameflow").setLevel(settings.log_level)


def create_app(
    store: GameStore | None = None,
    *,
    session_service: SessionService | None = None,
    settings: GameApiSettings | None = None,
) -> FastAPI:
    """Create a FastAPI app exposing the game flow endpoints."""

    resolved_settings = settings or GameApiSettings.from_env()
    _configure_logging(resolved_settings)

    sessions = session_service
    if sessions is None:
        sessions = SessionService(store or _build_store(resolved_settings))
    game_store = sessions.store

    tags_metadata = [
        {"name": "Pages", "description": "Page catalogue, templates and draft synchronisation for game flows."},
        {"name": "Sessions", "description": "Start sessions, move players through pages and record results."},
        {"name": "Events", "description": "Standing game events with their trigger and reward configs."},
    ]

    app = FastAPI(
        title="Game Flow API",
        version="0.1.0",
        description="HTTP API behind the game editor and the player runtime.",
        openapi_tags=tags_metadata,
    )

    @app.get("/api/page-types", response_model=PageTypeListResponse, tags=["Pages"])
    def get_page_types() -> PageTypeListResponse:
        return PageTypeListResponse(
            page_types=[
                PageTypeResource(value=info.value, label=info.label, default_config=default_config_for(info.value))
                for info in PAGE_TYPES
            ]
        )

    @app.get("/api/page-templates", response_model=PageTemplateListResponse, tags=["Pages"])
    def get_page_templates() -> PageTemplateListResponse:
        return PageTemplateListResponse(
            templates=[PageTemplateResource.model_validate(template.to_payload()) for template in PAGE_TEMPLATES]
        )

    @app.get("/api/games/{game_id}/pages", response_model=PageListResponse, tags=["Pages"])
    def get_pages(game_id: str) -> PageListResponse:
        try:
            pages = game_store.get_pages(game_id)
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return PageListResponse(pages=[PageResource.from_page(page) for page in pages])

    @app.post("/api/games/{game_id}/pages", response_model=PageResource, status_code=201, tags=["Pages"])
    def create_page(game_id: str, payload: PageCreateRequest) -> PageResource:
        try:
            config = payload.config if payload.config is not None else default_config_for(payload.page_type)
            validate_page_config(payload.page_type, config)
            page_order = payload.page_order or len(game_store.get_pages(game_id)) + 1
            page = game_store.create_page(
                game_id=game_id,
                page_type=payload.page_type,
                page_order=page_order,
                config=config,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return PageResource.from_page(page)

    @app.patch("/api/pages/{page_id}", response_model=PageResource, tags=["Pages"])
    def update_page(page_id: str, payload: PageUpdateRequest) -> PageResource:
        try:
            if payload.config is not None and payload.page_type is not None:
                validate_page_config(payload.page_type, payload.config)
            page = game_store.update_page(
                _persisted_id(page_id),
                page_type=payload.page_type,
                page_order=payload.page_order,
                config=payload.config,
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return PageResource.from_page(page)

    @app.delete("/api/pages/{page_id}", status_code=204, tags=["Pages"])
    def delete_page(page_id: str) -> Response:
        try:
            game_store.delete_page(_persisted_id(page_id))
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return Response(status_code=204)

    @app.put("/api/games/{game_id}/pages/sync", response_model=PageSyncResponse, tags=["Pages"])
    def sync_game_pages(game_id: str, payload: PageSyncRequest) -> PageSyncResponse:
        try:
            draft = []
            for item in payload.pages:
                validate_page_config(item.page_type, item.config)
                draft.append(
                    Page(
                        id=parse_page_id(item.id),
                        game_id=game_id,
                        page_type=item.page_type,
                        page_order=item.page_order,
                        config=item.config,
                    )
                )
            result = sync_pages(game_id, draft, game_store.get_pages(game_id), game_store)
        except PageSyncError as exc:
            raise HTTPException(
                status_code=502,
                detail={
                    "message": str(exc),
                    "operation": exc.operation,
                    "page_id": exc.page_id,
                    "completed": [
                        {"operation": step.operation, "page_id": step.page_id} for step in exc.completed
                    ],
                },
            ) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        ordered = sorted(result.pages, key=lambda page: page.page_order)
        return PageSyncResponse(
            pages=[PageResource.from_page(page) for page in ordered],
            id_mapping=result.mapping_payload(),
        )

    @app.get("/api/games/{game_id}/pages/validation", response_model=PageValidationResponse, tags=["Pages"])
    def validate_game_pages(game_id: str) -> PageValidationResponse:
        try:
            pages = game_store.get_pages(game_id)
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc

        config_issues = []
        for page in pages:
            try:
                validate_page_config(page.page_type, page.config)
            except ValueError as exc:
                config_issues.append(PageConfigIssueResource(page_id=str(page.id), message=str(exc)))

        reachability = compute_page_reachability(pages)
        return PageValidationResponse(
            dangling_references=[
                PageReferenceResource(page_id=str(reference.page_id), path=reference.path, target=reference.target)
                for reference in find_dangling_references(pages)
            ],
            config_issues=config_issues,
            start_page=reachability.start_page,
            reachable_pages=list(reachability.reachable_pages),
            unreachable_pages=list(reachability.unreachable_pages),
        )

    @app.post("/api/sessions", response_model=SessionStateResponse, status_code=201, tags=["Sessions"])
    def start_session(payload: SessionStartRequest) -> SessionStateResponse:
        try:
            session, progress = sessions.start(
                payload.game_id,
                user_id=payload.user_id,
                team_name=payload.team_name,
                player_count=payload.player_count,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return SessionStateResponse.from_result(AdvanceResult(session=session, progress=progress, completed=False))

    @app.get("/api/sessions/{session_id}", response_model=SessionStateResponse, tags=["Sessions"])
    def get_session(
        session_id: str,
        user_id: str | None = Query(None, alias="userId", description="Include this player's progress."),
    ) -> SessionStateResponse:
        try:
            session = sessions.get_session(session_id)
            progress = sessions.get_progress(session_id, user_id) if user_id else None
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return SessionStateResponse.from_result(
            AdvanceResult(
                session=session,
                progress=progress,
                completed=session.status is SessionStatus.COMPLETED,
            )
        )

    @app.patch("/api/sessions/{session_id}", response_model=SessionResource, tags=["Sessions"])
    def update_session(session_id: str, payload: SessionUpdateRequest) -> SessionResource:
        provided = payload.model_fields_set
        try:
            session = sessions.update_session(
                session_id,
                status=payload.status if "status" in provided and payload.status is not None else UNSET,
                score=payload.score if "score" in provided and payload.score is not None else UNSET,
                team_name=payload.team_name if "team_name" in provided else UNSET,
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return SessionResource.from_session(session)

    @app.patch("/api/sessions/{session_id}/progress", response_model=ProgressResource, tags=["Sessions"])
    def patch_progress(session_id: str, payload: ProgressPatchRequest) -> ProgressResource:
        patch = ProgressPatch.from_payload(payload.model_dump(exclude={"user_id"}, by_alias=True))
        try:
            progress = sessions.patch_progress(session_id, payload.user_id, patch)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return ProgressResource.from_progress(progress)

    @app.post("/api/sessions/{session_id}/advance", response_model=SessionStateResponse, tags=["Sessions"])
    def advance_session(session_id: str, payload: AdvanceRequest) -> SessionStateResponse:
        try:
            result = sessions.advance(session_id, payload.user_id, payload.target)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return SessionStateResponse.from_result(result)

    @app.post("/api/sessions/{session_id}/complete-page", response_model=SessionStateResponse, tags=["Sessions"])
    def complete_page(session_id: str, payload: CompletePageRequest) -> SessionStateResponse:
        try:
            result = sessions.complete_page(
                session_id,
                payload.user_id,
                next_page_id=payload.next_page_id,
                reward_points=payload.reward_points,
                reward_items=payload.reward_items,
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return SessionStateResponse.from_result(result)

    @app.get("/api/games/{game_id}/leaderboard", response_model=LeaderboardResponse, tags=["Sessions"])
    def get_leaderboard(game_id: str) -> LeaderboardResponse:
        try:
            entries = game_store.get_leaderboard(game_id)
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        if resolved_settings.leaderboard_limit is not None:
            entries = entries[: resolved_settings.leaderboard_limit]
        return LeaderboardResponse(entries=[LeaderboardEntryResource.from_entry(entry) for entry in entries])

    @app.get("/api/event-types", response_model=EventTypeListResponse, tags=["Events"])
    def get_event_types() -> EventTypeListResponse:
        return EventTypeListResponse(
            event_types=[
                EventTypeResource(value=value, label=label, default_config=default_trigger_config(value))
                for value, label in EVENT_TYPE_LABELS.items()
            ],
            reward_types=[
                EventTypeResource(value=value, label=label, default_config=default_reward_config(value))
                for value, label in REWARD_TYPE_LABELS.items()
            ],
        )

    @app.post("/api/events/reward-config", response_model=RewardConfigResponse, tags=["Events"])
    def change_reward_config(payload: RewardConfigChangeRequest) -> RewardConfigResponse:
        return RewardConfigResponse(reward_config=change_reward_type(payload.reward_config, payload.reward_type))

    @app.post("/api/events/trigger-config", response_model=TriggerConfigResponse, tags=["Events"])
    def change_trigger_config(payload: TriggerConfigChangeRequest) -> TriggerConfigResponse:
        type_changed = payload.previous_event_type not in (None, payload.event_type)
        if type_changed or payload.trigger_config is None:
            return TriggerConfigResponse(trigger_config=default_trigger_config(payload.event_type))
        try:
            config = validate_trigger_config(payload.event_type, payload.trigger_config)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        return TriggerConfigResponse(trigger_config=config)

    @app.get("/api/games/{game_id}/events", response_model=EventListResponse, tags=["Events"])
    def get_events(game_id: str) -> EventListResponse:
        try:
            events = game_store.get_events(game_id)
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return EventListResponse(events=[EventResource.from_event(event) for event in events])

    @app.post("/api/games/{game_id}/events", response_model=EventResource, status_code=201, tags=["Events"])
    def create_event(game_id: str, payload: EventCreateRequest) -> EventResource:
        try:
            trigger_config = payload.trigger_config
            if trigger_config is None:
                trigger_config = default_trigger_config(payload.event_type)
            reward_config = payload.reward_config
            if reward_config is None:
                reward_config = default_reward_config(RewardType.POINTS.value)
            event = game_store.create_event(
                game_id=game_id,
                name=payload.name,
                event_type=payload.event_type,
                trigger_config=validate_trigger_config(payload.event_type, trigger_config),
                reward_config=reward_config,
            )
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return EventResource.from_event(event)

    @app.patch("/api/events/{event_id}", response_model=EventResource, tags=["Events"])
    def update_event(event_id: str, payload: EventUpdateRequest) -> EventResource:
        try:
            current = game_store.get_event(event_id)
            changed = apply_event_changes(
                current,
                name=payload.name,
                event_type=payload.event_type,
                trigger_config=payload.trigger_config,
                reward_config=payload.reward_config,
            )
            event = game_store.update_event(
                event_id,
                name=changed.name,
                event_type=changed.event_type,
                trigger_config=changed.trigger_config,
                reward_config=changed.reward_config,
            )
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return EventResource.from_event(event)

    @app.delete("/api/events/{event_id}", status_code=204, tags=["Events"])
    def delete_event(event_id: str) -> Response:
        try:
            game_store.delete_event(event_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        except RuntimeError as exc:
            raise HTTPException(status_code=500, detail=str(exc)) from exc
        return Response(status_code=204)

    logger.info("Game flow API ready using %s", type(game_store).__name__)
    return app


def _persisted_id(raw: str) -> PersistedPageId:
    page_id = parse_page_id(raw)
    if not isinstance(page_id, PersistedPageId):
        raise ValueError(f"Page '{raw}' has not been saved yet.")
    return page_id


__all__ = ["create_app"]

"""Core package for location-based game flows."""

from .events import (
    EventType,
    GameEvent,
    RewardType,
    apply_event_changes,
    change_event_type,
    change_reward_type,
    default_reward_config,
    default_trigger_config,
    validate_trigger_config,
)
from .flow import evaluate_flow_router, process_on_complete_actions, resolve_flow_router
from .page_config import (
    PageConfigError,
    UnknownPageConfig,
    default_config_for,
    parse_page_config,
    validate_page_config,
)
from .page_types import PAGE_TYPES, PageType, get_page_type_info
from .pages import (
    END_GAME,
    END_OF_GAME,
    NEXT_PAGE,
    GameGraph,
    Page,
    PersistedPageId,
    TemporaryPageId,
    apply_template,
    duplicate,
    insert_page,
    move_page,
    parse_page_id,
    reindex,
    remove_page,
)
from .reconciliation import PageSyncError, SyncResult, plan_sync, rewrite_page_references, sync_pages
from .session import (
    GameSession,
    LeaderboardEntry,
    PlayerProgress,
    ProgressPatch,
    SessionService,
    SessionStatus,
    apply_progress_patch,
    derive_leaderboard_entry,
)
from .storage import FileGameStore, GameStore, InMemoryGameStore, NotFoundError, StorageError
from .templates import PAGE_TEMPLATES, get_page_template

__all__ = [
    "PageType",
    "PAGE_TYPES",
    "get_page_type_info",
    "default_config_for",
    "parse_page_config",
    "validate_page_config",
    "PageConfigError",
    "UnknownPageConfig",
    "Page",
    "TemporaryPageId",
    "PersistedPageId",
    "parse_page_id",
    "GameGraph",
    "NEXT_PAGE",
    "END_GAME",
    "END_OF_GAME",
    "reindex",
    "duplicate",
    "insert_page",
    "remove_page",
    "move_page",
    "apply_template",
    "PAGE_TEMPLATES",
    "get_page_template",
    "plan_sync",
    "rewrite_page_references",
    "sync_pages",
    "SyncResult",
    "PageSyncError",
    "evaluate_flow_router",
    "resolve_flow_router",
    "process_on_complete_actions",
    "SessionStatus",
    "GameSession",
    "PlayerProgress",
    "ProgressPatch",
    "LeaderboardEntry",
    "apply_progress_patch",
    "derive_leaderboard_entry",
    "SessionService",
    "EventType",
    "RewardType",
    "GameEvent",
    "default_trigger_config",
    "default_reward_config",
    "apply_event_changes",
    "change_event_type",
    "change_reward_type",
    "validate_trigger_config",
    "GameStore",
    "InMemoryGameStore",
    "FileGameStore",
    "StorageError",
    "NotFoundError",
]

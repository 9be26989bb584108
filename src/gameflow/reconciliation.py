"""Reconcile an edited draft page list with the pages already in storage.

The editor works on a local list where new pages carry temporary identities
and may reference each other. Saving turns that list into a sequence of
storage calls:

1. partition the draft into pages to create, update and delete,
2. delete the pages missing from the draft,
3. create the new pages and record temporary to permanent identities,
4. merge the persisted draft pages with the created ones,
5. rewrite button references through the identity mapping,
6. update the pages that already existed,
7. update created pages whose config was rewritten,
8. return the merged list.

Any failure stops the remaining calls. Calls that already succeeded are not
undone; :class:`PageSyncError` reports which ones they were.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Protocol, Sequence

from .page_types import PageType
from .pages import Page, PersistedPageId, TemporaryPageId

logger = logging.getLogger(__name__)

IdMapping = Mapping[TemporaryPageId, PersistedPageId]
ConfigRewriter = Callable[[Mapping[str, Any], Mapping[str, str]], Dict[str, Any]]


class PageStore(Protocol):
    """The storage calls reconciliation needs."""

    def create_page(
        self,
        *,
        game_id: str,
        page_type: str,
        page_order: int,
        config: Mapping[str, Any],
    ) -> Page: ...

    def update_page(
        self,
        page_id: PersistedPageId,
        *,
        page_type: str | None = None,
        page_order: int | None = None,
        config: Mapping[str, Any] | None = None,
    ) -> Page: ...

    def delete_page(self, page_id: PersistedPageId) -> None: ...


@dataclass(frozen=True)
class SyncOperation:
    operation: str
    page_id: str


class PageSyncError(RuntimeError):
    """Raised when a storage call fails part way through a sync."""

    def __init__(
        self,
        operation: str,
        page_id: str,
        completed: Sequence[SyncOperation] = (),
    ) -> None:
        self.operation = operation
        self.page_id = page_id
        self.completed = tuple(completed)
        super().__init__(
            f"Failed to {operation} page '{page_id}' "
            f"after {len(self.completed)} completed operation(s)."
        )


@dataclass(frozen=True)
class SyncPlan:
    """Draft pages split by the storage call each one needs."""

    to_create: tuple[Page, ...]
    to_update: tuple[Page, ...]
    to_delete: tuple[Page, ...]


@dataclass(frozen=True)
class SyncResult:
    pages: tuple[Page, ...]
    id_mapping: IdMapping
    operations: tuple[SyncOperation, ...]

    def mapping_payload(self) -> dict[str, str]:
        return {str(temp): str(permanent) for temp, permanent in self.id_mapping.items()}


def plan_sync(draft: Sequence[Page], server: Sequence[Page]) -> SyncPlan:
    """Partition ``draft`` against the current ``server`` pages.

    Draft pages with a persisted identity that storage no longer knows about
    are neither created nor updated.
    """

    server_ids = {page.id for page in server}
    draft_ids = {page.id for page in draft}
    return SyncPlan(
        to_create=tuple(page for page in draft if isinstance(page.id, TemporaryPageId)),
        to_update=tuple(
            page for page in draft if isinstance(page.id, PersistedPageId) and page.id in server_ids
        ),
        to_delete=tuple(page for page in server if page.id not in draft_ids),
    )


def _rewrite_buttons(config: Mapping[str, Any], mapping: Mapping[str, str]) -> Dict[str, Any]:
    buttons = config.get("buttons")
    if not isinstance(buttons, list):
        return dict(config)

    rewritten = []
    for button in buttons:
        if isinstance(button, Mapping):
            target = button.get("nextPageId")
            if isinstance(target, str) and target in mapping:
                button = {**button, "nextPageId": mapping[target]}
        rewritten.append(button)
    return {**config, "buttons": rewritten}


REFERENCE_REWRITERS: Mapping[str, ConfigRewriter] = MappingProxyType(
    {PageType.BUTTON.value: _rewrite_buttons}
)


def rewrite_page_references(pages: Sequence[Page], id_mapping: IdMapping) -> list[Page]:
    """Return ``pages`` with temporary references replaced by permanent ones.

    Only page types with an entry in :data:`REFERENCE_REWRITERS` are
    touched, and pages whose config does not change are returned as-is.
    Neither ``pages`` nor ``id_mapping`` is modified.
    """

    if not id_mapping:
        return list(pages)

    wire_mapping = {str(temp): str(permanent) for temp, permanent in id_mapping.items()}
    result = []
    for page in pages:
        rewriter = REFERENCE_REWRITERS.get(page.page_type)
        if rewriter is None:
            result.append(page)
            continue
        config = rewriter(page.config, wire_mapping)
        result.append(page if config == page.config else replace(page, config=config))
    return result


def sync_pages(
    game_id: str,
    draft: Sequence[Page],
    server: Sequence[Page],
    store: PageStore,
) -> SyncResult:
    """Bring storage in line with ``draft`` and return the reconciled pages.

    Raises:
        PageSyncError: If a storage call fails. Later calls are skipped.
    """

    plan = plan_sync(draft, server)
    logger.info(
        "Syncing game %s: %d to create, %d to update, %d to delete",
        game_id,
        len(plan.to_create),
        len(plan.to_update),
        len(plan.to_delete),
    )
    completed: list[SyncOperation] = []

    def run(operation: str, page_id: object, call: Callable[[], Any]) -> Any:
        try:
            outcome = call()
        except Exception as exc:
            logger.error("Sync of game %s failed to %s page %s: %s", game_id, operation, page_id, exc)
            raise PageSyncError(operation, str(page_id), completed) from exc
        completed.append(SyncOperation(operation, str(page_id)))
        logger.debug("Sync of game %s: %s page %s", game_id, operation, page_id)
        return outcome

    for page in plan.to_delete:
        run("delete", page.id, lambda page=page: store.delete_page(page.id))

    created: list[tuple[Page, Page]] = []
    for page in plan.to_create:
        stored = run(
            "create",
            page.id,
            lambda page=page: store.create_page(
                game_id=game_id,
                page_type=page.page_type,
                page_order=page.page_order,
                config=copy.deepcopy(page.config),
            ),
        )
        created.append((page, stored))

    id_mapping: IdMapping = MappingProxyType({draft_page.id: stored.id for draft_page, stored in created})

    merged = [page for page in draft if not isinstance(page.id, TemporaryPageId)]
    merged.extend(stored for _, stored in created)
    reconciled = rewrite_page_references(merged, id_mapping)
    by_id = {page.id: page for page in reconciled}

    for page in plan.to_update:
        target = by_id[page.id]
        run(
            "update",
            page.id,
            lambda page=page, target=target: store.update_page(
                page.id,
                page_type=page.page_type,
                page_order=page.page_order,
                config=target.config,
            ),
        )

    for _, stored in created:
        target = by_id[stored.id]
        if target.config != stored.config:
            run(
                "update",
                stored.id,
                lambda stored=stored, target=target: store.update_page(stored.id, config=target.config),
            )

    return SyncResult(pages=tuple(reconciled), id_mapping=id_mapping, operations=tuple(completed))


__all__ = [
    "PageStore",
    "PageSyncError",
    "REFERENCE_REWRITERS",
    "SyncOperation",
    "SyncPlan",
    "SyncResult",
    "plan_sync",
    "rewrite_page_references",
    "sync_pages",
]

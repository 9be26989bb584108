from __future__ import annotations

import pytest

from conftest import RecordingStore
from gameflow.pages import Page, PersistedPageId, TemporaryPageId, parse_page_id
from gameflow.reconciliation import (
    PageSyncError,
    plan_sync,
    rewrite_page_references,
    sync_pages,
)


def _draft(page_id: str, order: int, page_type: str = "text_card", config: dict | None = None) -> Page:
    return Page(
        id=parse_page_id(page_id),
        game_id="game-1",
        page_type=page_type,
        page_order=order,
        config=config if config is not None else {"title": page_id},
    )


def _seed(store: RecordingStore, count: int) -> list[Page]:
    pages = [
        store.create_page(game_id="game-1", page_type="text_card", page_order=order, config={"title": f"P{order}"})
        for order in range(1, count + 1)
    ]
    store.calls.clear()
    return pages


def test_plan_sync_partitions_draft() -> None:
    server = [_draft("p1", 1), _draft("p2", 2)]
    draft = [_draft("p1", 1), _draft("temp-a", 2), _draft("stale", 3)]

    plan = plan_sync(draft, server)

    assert [page.id for page in plan.to_create] == [TemporaryPageId("a")]
    assert [page.id for page in plan.to_update] == [PersistedPageId("p1")]
    assert [page.id for page in plan.to_delete] == [PersistedPageId("p2")]


@pytest.mark.parametrize("button_first", [True, False])
def test_references_between_new_pages_point_at_permanent_ids(
    recording_store: RecordingStore, button_first: bool
) -> None:
    button = _draft(
        "temp-a",
        1,
        "button",
        {"prompt": "Go?", "buttons": [{"text": "Next", "nextPageId": "temp-b", "rewardPoints": 0}]},
    )
    target = _draft("temp-b", 2)
    draft = [button, target] if button_first else [target, button]

    result = sync_pages("game-1", draft, [], recording_store)

    permanent_b = result.id_mapping[TemporaryPageId("b")]
    permanent_a = result.id_mapping[TemporaryPageId("a")]
    stored = {page.id: page for page in recording_store.get_pages("game-1")}
    assert stored[permanent_a].config["buttons"][0]["nextPageId"] == str(permanent_b)

    reconciled = {page.id: page for page in result.pages}
    assert reconciled[permanent_a].config["buttons"][0]["nextPageId"] == str(permanent_b)
    assert not any(page.is_temporary for page in result.pages)


def test_existing_button_pointing_at_new_page_is_rewritten(recording_store: RecordingStore) -> None:
    (existing,) = _seed(recording_store, 1)
    draft = [
        Page(
            id=existing.id,
            game_id="game-1",
            page_type="button",
            page_order=1,
            config={"buttons": [{"text": "On", "nextPageId": "temp-new"}, {"text": "End", "nextPageId": "_end"}]},
        ),
        _draft("temp-new", 2),
    ]

    result = sync_pages("game-1", draft, [existing], recording_store)

    new_id = str(result.id_mapping[TemporaryPageId("new")])
    stored = recording_store.get_pages("game-1")[0]
    assert stored.page_type == "button"
    assert [button["nextPageId"] for button in stored.config["buttons"]] == [new_id, "_end"]
    assert recording_store.operations("update") == [str(existing.id)]


def test_absent_page_is_deleted_and_nothing_else_changes(recording_store: RecordingStore) -> None:
    p1, p2, p3 = _seed(recording_store, 3)

    result = sync_pages("game-1", [p1, p3], [p1, p2, p3], recording_store)

    assert recording_store.operations("delete") == [str(p2.id)]
    assert recording_store.operations("create") == []
    assert [page.config for page in recording_store.get_pages("game-1")] == [p1.config, p3.config]
    assert dict(result.id_mapping) == {}


def test_deletes_run_before_creates(recording_store: RecordingStore) -> None:
    (old,) = _seed(recording_store, 1)

    sync_pages("game-1", [_draft("temp-x", 1)], [old], recording_store)

    assert [operation for operation, _ in recording_store.calls] == ["delete", "create"]


def test_created_pages_without_references_are_not_updated_again(recording_store: RecordingStore) -> None:
    sync_pages("game-1", [_draft("temp-a", 1), _draft("temp-b", 2)], [], recording_store)

    assert len(recording_store.operations("create")) == 2
    assert recording_store.operations("update") == []


def test_failure_stops_the_batch_without_rollback(recording_store: RecordingStore) -> None:
    p1, p2 = _seed(recording_store, 2)
    recording_store.fail_on = ("create", None)

    with pytest.raises(PageSyncError) as excinfo:
        sync_pages("game-1", [p1, _draft("temp-new", 2)], [p1, p2], recording_store)

    error = excinfo.value
    assert error.operation == "create"
    assert error.page_id == "temp-new"
    assert [(step.operation, step.page_id) for step in error.completed] == [("delete", str(p2.id))]
    assert str(error) == "Failed to create page 'temp-new' after 1 completed operation(s)."
    assert [page.id for page in recording_store.get_pages("game-1")] == [p1.id]
    assert recording_store.operations("update") == []


def test_rewrite_leaves_inputs_untouched() -> None:
    page = _draft("p1", 1, "button", {"buttons": [{"text": "a", "nextPageId": "temp-z"}]})
    mapping = {TemporaryPageId("z"): PersistedPageId("real")}

    (rewritten,) = rewrite_page_references([page], mapping)

    assert rewritten.config["buttons"][0]["nextPageId"] == "real"
    assert page.config["buttons"][0]["nextPageId"] == "temp-z"
    assert mapping == {TemporaryPageId("z"): PersistedPageId("real")}


def test_rewrite_only_touches_button_pages() -> None:
    page = _draft("p1", 1, "vote", {"options": [{"text": "a", "nextPageId": "temp-z"}]})

    (rewritten,) = rewrite_page_references([page], {TemporaryPageId("z"): PersistedPageId("real")})

    assert rewritten is page

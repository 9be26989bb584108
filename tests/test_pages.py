from __future__ import annotations

import pytest

from gameflow.pages import (
    END_OF_GAME,
    GameGraph,
    Page,
    PersistedPageId,
    TemporaryPageId,
    apply_template,
    compute_page_reachability,
    duplicate,
    find_dangling_references,
    insert_page,
    move_page,
    parse_page_id,
    remove_page,
)
from gameflow.templates import get_page_template


def _page(page_id: str, order: int, page_type: str = "text_card", config: dict | None = None) -> Page:
    return Page(
        id=parse_page_id(page_id),
        game_id="game-1",
        page_type=page_type,
        page_order=order,
        config=config or {},
    )


def _orders(pages: list[Page]) -> list[int]:
    return [page.page_order for page in pages]


@pytest.fixture
def three_pages() -> list[Page]:
    return [_page("p1", 1), _page("p2", 2), _page("p3", 3)]


def test_parse_page_id_distinguishes_temporary_ids() -> None:
    assert parse_page_id("temp-123") == TemporaryPageId("123")
    assert str(parse_page_id("temp-123")) == "temp-123"
    assert parse_page_id("abc") == PersistedPageId("abc")

    with pytest.raises(ValueError):
        parse_page_id("_end")
    with pytest.raises(ValueError):
        parse_page_id("   ")


def test_resolve_next_sentinels(three_pages: list[Page]) -> None:
    graph = GameGraph(three_pages)
    current = three_pages[1]

    assert graph.resolve_next(current, "_end") is END_OF_GAME
    assert graph.resolve_next(current, "_next") == PersistedPageId("p3")
    assert graph.resolve_next(current) == PersistedPageId("p3")
    assert graph.resolve_next(current, "p1") == PersistedPageId("p1")


def test_resolve_next_past_last_page_ends_game(three_pages: list[Page]) -> None:
    graph = GameGraph(three_pages)

    assert graph.resolve_next(three_pages[2]) is END_OF_GAME


def test_resolve_next_returns_dangling_targets_unchanged(three_pages: list[Page]) -> None:
    graph = GameGraph(three_pages)

    assert graph.resolve_next(three_pages[0], "missing") == PersistedPageId("missing")


def test_every_mutation_keeps_order_dense(three_pages: list[Page]) -> None:
    pages = insert_page(three_pages, "qr_scan", game_id="game-1", at_index=1)
    assert _orders(pages) == [1, 2, 3, 4]
    assert pages[1].is_temporary
    assert pages[1].config == {"qrCodeId": "QR-001"}

    pages = duplicate(pages, 0)
    assert _orders(pages) == [1, 2, 3, 4, 5]

    pages = move_page(pages, 4, 0)
    assert _orders(pages) == [1, 2, 3, 4, 5]
    assert pages[0].id == PersistedPageId("p3")

    pages = remove_page(pages, 2)
    assert _orders(pages) == [1, 2, 3, 4]

    pages = apply_template(pages, "combat_mission", game_id="game-1")
    assert _orders(pages) == list(range(1, 8))


def test_duplicate_inserts_copy_after_source() -> None:
    source = _page("p1", 1, "button", {"buttons": [{"text": "Go", "nextPageId": "p2"}]})
    pages = duplicate([source, _page("p2", 2)], 0)

    clone = pages[1]
    assert clone.is_temporary
    assert clone.page_type == "button"
    assert clone.config == source.config
    assert clone.config is not source.config

    clone.config["buttons"][0]["text"] = "changed"
    assert source.config["buttons"][0]["text"] == "Go"


def test_mutations_reject_out_of_range_positions(three_pages: list[Page]) -> None:
    with pytest.raises(IndexError):
        duplicate(three_pages, 3)
    with pytest.raises(IndexError):
        move_page(three_pages, 0, 5)
    with pytest.raises(IndexError):
        insert_page(three_pages, "text_card", game_id="game-1", at_index=9)


def test_apply_template_appends_template_pages(three_pages: list[Page]) -> None:
    template = get_page_template("exploration_quest")
    pages = apply_template(three_pages, "exploration_quest", game_id="game-1")

    added = pages[3:]
    assert [page.page_type for page in added] == [page.page_type for page in template.pages]
    assert all(page.is_temporary for page in added)

    with pytest.raises(KeyError):
        apply_template(three_pages, "missing", game_id="game-1")


def test_find_dangling_references_reports_without_fixing() -> None:
    pages = [
        _page("p1", 1, "button", {"buttons": [{"text": "a", "nextPageId": "gone"}, {"text": "b", "nextPageId": "_end"}]}),
        _page("p2", 2, "text_card", {"nextPageId": "p1"}),
    ]

    dangling = find_dangling_references(pages)

    assert len(dangling) == 1
    assert dangling[0].path == "buttons[0].nextPageId"
    assert dangling[0].target == "gone"
    assert pages[0].config["buttons"][0]["nextPageId"] == "gone"


def test_reachability_follows_explicit_and_default_edges() -> None:
    pages = [
        _page("p1", 1, "button", {"buttons": [{"text": "skip", "nextPageId": "p3"}]}),
        _page("p2", 2),
        _page("p3", 3),
        _page("p4", 4, "text_card", {}),
    ]

    report = compute_page_reachability(pages)

    assert report.start_page == "p1"
    assert report.reachable_pages == ("p1", "p3", "p4")
    assert report.unreachable_pages == ("p2",)


def test_page_payload_round_trip() -> None:
    page = _page("temp-9", 1, "qr_scan", {"qrCodeId": "X"})

    restored = Page.from_payload(page.to_payload())

    assert restored == page
    assert page.to_payload()["id"] == "temp-9"

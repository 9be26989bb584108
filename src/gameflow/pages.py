"""Pages, page identities and the ordered graph a game flow forms."""

from __future__ import annotations

import copy
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Iterator, Mapping, Sequence, Union

from .page_config import default_config_for
from .page_types import PageType
from .templates import get_page_template

TEMP_ID_PREFIX = "temp-"
NEXT_PAGE = "_next"
END_GAME = "_end"

# Keys holding page references outside of nested lists.
_TOP_LEVEL_REFERENCE_KEYS = (
    "nextPageId",
    "successNextPageId",
    "failureNextPageId",
    "defaultNextPageId",
)


@dataclass(frozen=True)
class TemporaryPageId:
    """Identity of a draft page that has not been persisted yet."""

    token: str

    def __str__(self) -> str:
        return f"{TEMP_ID_PREFIX}{self.token}"


@dataclass(frozen=True)
class PersistedPageId:
    """Identity issued by storage for a saved page."""

    value: str

    def __str__(self) -> str:
        return self.value


PageId = Union[TemporaryPageId, PersistedPageId]


class _EndOfGame:
    """Sentinel returned when traversal runs past the final page."""

    __slots__ = ()

    def __repr__(self) -> str:  # pragma: no cover - trivial representation
        return "END_OF_GAME"


END_OF_GAME = _EndOfGame()


def parse_page_id(raw: str | TemporaryPageId | PersistedPageId) -> PageId:
    """Convert a wire identifier into a :data:`PageId`.

    Only client-supplied identifiers go through this function; identities
    returned by storage are always built as :class:`PersistedPageId`.
    """

    if isinstance(raw, (TemporaryPageId, PersistedPageId)):
        return raw
    if not isinstance(raw, str):
        raise TypeError(f"page id must be a string, got {type(raw)!r}")

    stripped = raw.strip()
    if not stripped:
        raise ValueError("page id must be a non-empty string")
    if stripped in (NEXT_PAGE, END_GAME):
        raise ValueError(f"'{stripped}' is a reserved page reference, not a page id")
    if stripped.startswith(TEMP_ID_PREFIX):
        return TemporaryPageId(stripped[len(TEMP_ID_PREFIX):])
    return PersistedPageId(stripped)


def new_temporary_id() -> TemporaryPageId:
    millis = int(time.time() * 1000)
    return TemporaryPageId(f"{millis}-{uuid.uuid4().hex[:8]}")


@dataclass(frozen=True)
class Page:
    """A single step of a game flow."""

    id: PageId
    game_id: str
    page_type: str
    page_order: int
    config: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None

    @property
    def is_temporary(self) -> bool:
        return isinstance(self.id, TemporaryPageId)

    def to_payload(self) -> dict[str, Any]:
        """Return the camelCase JSON representation used on the wire."""

        return {
            "id": str(self.id),
            "gameId": self.game_id,
            "pageType": self.page_type,
            "pageOrder": self.page_order,
            "config": copy.deepcopy(self.config),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Page":
        """Build a page from its wire representation."""

        raw_id = payload.get("id")
        if raw_id is None:
            raise ValueError("Page payload is missing 'id'.")

        page_type = payload.get("pageType")
        if not isinstance(page_type, str) or not page_type.strip():
            raise ValueError("Page payload requires a 'pageType' string.")

        page_order = payload.get("pageOrder", 0)
        if isinstance(page_order, bool) or not isinstance(page_order, int):
            raise ValueError("Page payload 'pageOrder' must be an integer.")

        config = payload.get("config") or {}
        if not isinstance(config, Mapping):
            raise ValueError("Page payload 'config' must be an object.")

        created_at = payload.get("createdAt")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        elif created_at is not None and not isinstance(created_at, datetime):
            raise ValueError("Page payload 'createdAt' must be an ISO timestamp.")

        return cls(
            id=parse_page_id(raw_id),
            game_id=str(payload.get("gameId") or ""),
            page_type=page_type.strip(),
            page_order=page_order,
            config=copy.deepcopy(dict(config)),
            created_at=created_at,
        )


@dataclass(frozen=True)
class PageReference:
    """A page-to-page link found inside a page config."""

    page_id: PageId
    path: str
    target: str


class GameGraph:
    """Read-only view over a game's pages for traversal questions."""

    def __init__(self, pages: Sequence[Page]) -> None:
        self._pages: tuple[Page, ...] = tuple(sorted(pages, key=lambda page: page.page_order))
        self._by_id: dict[PageId, Page] = {page.id: page for page in self._pages}
        self._by_order: dict[int, Page] = {page.page_order: page for page in self._pages}

    @property
    def pages(self) -> tuple[Page, ...]:
        return self._pages

    def __len__(self) -> int:
        return len(self._pages)

    def __contains__(self, page_id: object) -> bool:
        return page_id in self._by_id

    def get(self, page_id: str | PageId) -> Page | None:
        return self._by_id.get(parse_page_id(page_id))

    def first_page(self) -> Page | None:
        return self._pages[0] if self._pages else None

    def index_of(self, page_id: str | PageId) -> int:
        """Return the position of ``page_id`` or ``-1`` when it is absent."""

        key = parse_page_id(page_id)
        for index, page in enumerate(self._pages):
            if page.id == key:
                return index
        return -1

    def resolve_next(
        self,
        current: Page,
        target: str | PageId | None = None,
    ) -> PageId | _EndOfGame:
        """Return the identity of the page that follows ``current``.

        ``target`` may be the end sentinel, the default sentinel (or
        ``None``), or an explicit page identity. Explicit identities are
        returned unchanged even when they are not part of the graph; the
        caller decides what a dangling reference means.
        """

        if target == END_GAME:
            return END_OF_GAME
        if target is None or target == "" or target == NEXT_PAGE:
            following = self._by_order.get(current.page_order + 1)
            if following is None:
                return END_OF_GAME
            return following.id
        return parse_page_id(target)


def reindex(pages: Sequence[Page]) -> list[Page]:
    """Return ``pages`` with ``page_order`` set to each page's position plus one."""

    return [
        page if page.page_order == position else replace(page, page_order=position)
        for position, page in enumerate(pages, start=1)
    ]


def duplicate(pages: Sequence[Page], index: int) -> list[Page]:
    """Insert a copy of ``pages[index]`` right after it under a fresh temporary id."""

    source = _page_at(pages, index)
    clone = replace(
        source,
        id=new_temporary_id(),
        config=copy.deepcopy(source.config),
        created_at=None,
    )
    updated = list(pages)
    updated.insert(index + 1, clone)
    return reindex(updated)


def insert_page(
    pages: Sequence[Page],
    page_type: str,
    *,
    game_id: str,
    at_index: int | None = None,
    config: Mapping[str, Any] | None = None,
) -> list[Page]:
    """Add a new draft page of ``page_type``, appending when ``at_index`` is omitted."""

    if at_index is not None and not 0 <= at_index <= len(pages):
        raise IndexError(f"Insert position {at_index} is out of range.")

    new_page = Page(
        id=new_temporary_id(),
        game_id=game_id,
        page_type=page_type,
        page_order=0,
        config=copy.deepcopy(dict(config)) if config is not None else default_config_for(page_type),
    )
    updated = list(pages)
    if at_index is None:
        updated.append(new_page)
    else:
        updated.insert(at_index, new_page)
    return reindex(updated)


def remove_page(pages: Sequence[Page], index: int) -> list[Page]:
    _page_at(pages, index)
    return reindex([page for position, page in enumerate(pages) if position != index])


def move_page(pages: Sequence[Page], from_index: int, to_index: int) -> list[Page]:
    """Move the page at ``from_index`` so that it ends up at ``to_index``."""

    moving = _page_at(pages, from_index)
    if not 0 <= to_index < len(pages):
        raise IndexError(f"Target position {to_index} is out of range.")

    updated = list(pages)
    updated.pop(from_index)
    updated.insert(to_index, moving)
    return reindex(updated)


def apply_template(pages: Sequence[Page], template_id: str, *, game_id: str) -> list[Page]:
    """Append every page of the named template as new draft pages.

    Raises:
        KeyError: If ``template_id`` is not a bundled template.
    """

    template = get_page_template(template_id)
    updated = list(pages)
    for template_page in template.pages:
        updated.append(
            Page(
                id=new_temporary_id(),
                game_id=game_id,
                page_type=template_page.page_type,
                page_order=0,
                config=copy.deepcopy(dict(template_page.config)),
            )
        )
    return reindex(updated)


def iter_page_references(page: Page) -> Iterator[PageReference]:
    """Yield every explicit page reference held in ``page.config``.

    Sentinels and empty values are skipped.
    """

    config = page.config
    for key in _TOP_LEVEL_REFERENCE_KEYS:
        yield from _reference(page, key, config.get(key))

    list_keys: tuple[tuple[str, str], ...] = ()
    if page.page_type == PageType.BUTTON.value:
        list_keys = (("buttons", "nextPageId"),)
    elif page.page_type in (PageType.VOTE.value, PageType.CHOICE_VERIFY.value):
        list_keys = (("options", "nextPageId"),)
    elif page.page_type == PageType.FLOW_ROUTER.value:
        list_keys = (("routes", "nextPageId"),)

    for list_key, item_key in list_keys:
        entries = config.get(list_key)
        if not isinstance(entries, list):
            continue
        for index, entry in enumerate(entries):
            if isinstance(entry, Mapping):
                yield from _reference(page, f"{list_key}[{index}].{item_key}", entry.get(item_key))


def find_dangling_references(pages: Sequence[Page]) -> tuple[PageReference, ...]:
    """Return references pointing at pages that are not in ``pages``.

    Nothing is rewritten; the editor decides how to surface these.
    """

    known = {str(page.id) for page in pages}
    return tuple(
        reference
        for page in pages
        for reference in iter_page_references(page)
        if reference.target not in known
    )


@dataclass(frozen=True)
class PageReachabilityReport:
    """Pages reachable from the first page by default or explicit links."""

    start_page: str | None
    reachable_pages: tuple[str, ...]
    unreachable_pages: tuple[str, ...]


def compute_page_reachability(pages: Sequence[Page]) -> PageReachabilityReport:
    """Walk the flow from the first page and report pages that can never be shown.

    Conditions on flow routes and verification outcomes are ignored, so the
    result approximates structural reachability.
    """

    graph = GameGraph(pages)
    start = graph.first_page()
    if start is None:
        return PageReachabilityReport(start_page=None, reachable_pages=(), unreachable_pages=())

    visited: set[PageId] = set()
    frontier = [start]
    while frontier:
        current = frontier.pop()
        if current.id in visited:
            continue
        visited.add(current.id)

        for target in _outgoing_targets(current):
            resolved = graph.resolve_next(current, target)
            if resolved is END_OF_GAME or resolved in visited:
                continue
            following = graph.get(resolved)
            if following is not None:
                frontier.append(following)

    return PageReachabilityReport(
        start_page=str(start.id),
        reachable_pages=tuple(str(page.id) for page in graph.pages if page.id in visited),
        unreachable_pages=tuple(str(page.id) for page in graph.pages if page.id not in visited),
    )


def _outgoing_targets(page: Page) -> list[str | None]:
    # ``None`` stands for the default next-in-order edge.
    config = page.config
    if page.page_type == PageType.BUTTON.value:
        buttons = config.get("buttons")
        if isinstance(buttons, list) and buttons:
            return [_target_value(button.get("nextPageId")) if isinstance(button, Mapping) else None for button in buttons]

    if page.page_type == PageType.FLOW_ROUTER.value:
        routes = config.get("routes")
        targets = [
            _target_value(route.get("nextPageId"))
            for route in (routes if isinstance(routes, list) else [])
            if isinstance(route, Mapping)
        ]
        targets.append(_target_value(config.get("defaultNextPageId")))
        return targets

    targets = [reference.target for reference in iter_page_references(page)]
    targets.append(None)
    return targets


def _target_value(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _reference(page: Page, path: str, value: Any) -> Iterator[PageReference]:
    if isinstance(value, str) and value and value not in (NEXT_PAGE, END_GAME):
        yield PageReference(page_id=page.id, path=path, target=value)


def _page_at(pages: Sequence[Page], index: int) -> Page:
    if not 0 <= index < len(pages):
        raise IndexError(f"Page position {index} is out of range.")
    return pages[index]


__all__ = [
    "END_GAME",
    "END_OF_GAME",
    "GameGraph",
    "NEXT_PAGE",
    "Page",
    "PageId",
    "PageReachabilityReport",
    "PageReference",
    "PersistedPageId",
    "TEMP_ID_PREFIX",
    "TemporaryPageId",
    "apply_template",
    "compute_page_reachability",
    "duplicate",
    "find_dangling_references",
    "insert_page",
    "iter_page_references",
    "move_page",
    "new_temporary_id",
    "parse_page_id",
    "reindex",
    "remove_page",
]

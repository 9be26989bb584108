"""Catalogue of the page types a game flow can be built from."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class PageType(str, Enum):
    """Enumerated page types understood by the editor and the runtime."""

    TEXT_CARD = "text_card"
    DIALOGUE = "dialogue"
    VIDEO = "video"
    BUTTON = "button"
    TEXT_VERIFY = "text_verify"
    CHOICE_VERIFY = "choice_verify"
    CONDITIONAL_VERIFY = "conditional_verify"
    SHOOTING_MISSION = "shooting_mission"
    PHOTO_MISSION = "photo_mission"
    GPS_MISSION = "gps_mission"
    QR_SCAN = "qr_scan"
    TIME_BOMB = "time_bomb"
    LOCK = "lock"
    MOTION_CHALLENGE = "motion_challenge"
    VOTE = "vote"
    FLOW_ROUTER = "flow_router"


@dataclass(frozen=True)
class PageTypeInfo:
    """Display metadata for a page type."""

    value: str
    label: str


PAGE_TYPES: tuple[PageTypeInfo, ...] = (
    PageTypeInfo(PageType.TEXT_CARD.value, "Text card"),
    PageTypeInfo(PageType.DIALOGUE.value, "Dialogue"),
    PageTypeInfo(PageType.VIDEO.value, "Video"),
    PageTypeInfo(PageType.BUTTON.value, "Button choice"),
    PageTypeInfo(PageType.TEXT_VERIFY.value, "Text verification"),
    PageTypeInfo(PageType.CHOICE_VERIFY.value, "Choice verification"),
    PageTypeInfo(PageType.CONDITIONAL_VERIFY.value, "Fragment collection"),
    PageTypeInfo(PageType.SHOOTING_MISSION.value, "Shooting mission"),
    PageTypeInfo(PageType.PHOTO_MISSION.value, "Photo mission"),
    PageTypeInfo(PageType.GPS_MISSION.value, "GPS mission"),
    PageTypeInfo(PageType.QR_SCAN.value, "QR scan"),
    PageTypeInfo(PageType.TIME_BOMB.value, "Time bomb"),
    PageTypeInfo(PageType.LOCK.value, "Combination lock"),
    PageTypeInfo(PageType.MOTION_CHALLENGE.value, "Motion challenge"),
    PageTypeInfo(PageType.VOTE.value, "Team vote"),
    PageTypeInfo(PageType.FLOW_ROUTER.value, "Flow router"),
)

_PAGE_TYPE_INDEX = {info.value: info for info in PAGE_TYPES}


def is_known_page_type(page_type: str) -> bool:
    """Return ``True`` when ``page_type`` is part of the catalogue."""

    return page_type in _PAGE_TYPE_INDEX


def get_page_type_info(page_type: str) -> PageTypeInfo:
    """Return display metadata, falling back to the raw value for unknown types."""

    info = _PAGE_TYPE_INDEX.get(page_type)
    if info is None:
        return PageTypeInfo(page_type, page_type)
    return info


__all__ = ["PageType", "PageTypeInfo", "PAGE_TYPES", "get_page_type_info", "is_known_page_type"]

"""Standing game events: a trigger condition and the reward it grants.

Switching an event's trigger type or its reward type resets the matching
config to the new type's defaults. Fields belonging to the previous type
are dropped, never merged.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from numbers import Real
from typing import Any, Mapping


class EventType(str, Enum):
    QRCODE = "qrcode"
    GPS = "gps"
    SHOOTING = "shooting"
    TIMER = "timer"


class RewardType(str, Enum):
    POINTS = "points"
    ITEM = "item"
    UNLOCK_PAGE = "unlock_page"
    MESSAGE = "message"


EVENT_TYPE_LABELS: Mapping[str, str] = {
    EventType.QRCODE.value: "QR code scan",
    EventType.GPS.value: "GPS arrival",
    EventType.SHOOTING.value: "Shooting score",
    EventType.TIMER.value: "Timer",
}

REWARD_TYPE_LABELS: Mapping[str, str] = {
    RewardType.POINTS.value: "Points",
    RewardType.ITEM.value: "Item",
    RewardType.UNLOCK_PAGE.value: "Unlock page",
    RewardType.MESSAGE.value: "Message",
}

# Required keys and whether each must be numeric.
_TRIGGER_FIELDS: Mapping[str, Mapping[str, bool]] = {
    EventType.QRCODE.value: {"qrCodeId": False},
    EventType.GPS.value: {"lat": True, "lng": True, "radius": True},
    EventType.SHOOTING.value: {"minScore": True},
    EventType.TIMER.value: {"delaySeconds": True},
}


def default_trigger_config(event_type: str) -> dict[str, Any]:
    """Return a fresh trigger config for ``event_type``; ``{}`` when unknown."""

    if event_type == EventType.QRCODE.value:
        return {"qrCodeId": ""}
    if event_type == EventType.GPS.value:
        return {"lat": 25.033, "lng": 121.565, "radius": 50}
    if event_type == EventType.SHOOTING.value:
        return {"minScore": 100}
    if event_type == EventType.TIMER.value:
        return {"delaySeconds": 60}
    return {}


def default_reward_config(reward_type: str) -> dict[str, Any]:
    """Return a fresh reward config tagged with ``reward_type``."""

    if reward_type == RewardType.POINTS.value:
        return {"type": reward_type, "value": 10}
    if reward_type == RewardType.ITEM.value:
        return {"type": reward_type, "itemId": ""}
    if reward_type == RewardType.UNLOCK_PAGE.value:
        return {"type": reward_type, "pageId": ""}
    if reward_type == RewardType.MESSAGE.value:
        return {"type": reward_type, "message": ""}
    return {"type": reward_type}


def change_reward_type(reward_config: Mapping[str, Any], reward_type: str) -> dict[str, Any]:
    """Return the reward config after the author picks ``reward_type``.

    Picking the type the config already has keeps it; any other type gets
    that type's defaults.
    """

    if reward_config.get("type") == reward_type:
        return dict(reward_config)
    return default_reward_config(reward_type)


def validate_trigger_config(event_type: str, config: Mapping[str, Any]) -> dict[str, Any]:
    """Check that ``config`` has the keys ``event_type`` needs.

    Unknown event types pass through unchanged.

    Raises:
        ValueError: If a required key is missing or has the wrong type.
    """

    required = _TRIGGER_FIELDS.get(event_type)
    if required is None:
        return dict(config)

    problems = []
    for key, numeric in required.items():
        if key not in config:
            problems.append(f"'{key}' is required")
            continue
        value = config[key]
        if numeric and (isinstance(value, bool) or not isinstance(value, Real)):
            problems.append(f"'{key}' must be a number")
        elif not numeric and not isinstance(value, str):
            problems.append(f"'{key}' must be a string")

    if event_type == EventType.GPS.value and not problems and config["radius"] <= 0:
        problems.append("'radius' must be greater than zero")

    if problems:
        raise ValueError(f"Invalid trigger config for '{event_type}': {'; '.join(problems)}")
    return dict(config)


@dataclass(frozen=True)
class GameEvent:
    """A trigger that grants a reward outside of the page sequence."""

    id: str
    game_id: str
    name: str
    event_type: str = EventType.QRCODE.value
    trigger_config: Mapping[str, Any] = field(default_factory=lambda: default_trigger_config(EventType.QRCODE.value))
    reward_config: Mapping[str, Any] = field(default_factory=lambda: default_reward_config(RewardType.POINTS.value))

    def to_payload(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "gameId": self.game_id,
            "name": self.name,
            "eventType": self.event_type,
            "triggerConfig": dict(self.trigger_config),
            "rewardConfig": dict(self.reward_config),
        }

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "GameEvent":
        event_type = str(payload.get("eventType") or EventType.QRCODE.value)
        reward_config = payload.get("rewardConfig")
        return cls(
            id=str(payload["id"]),
            game_id=str(payload["gameId"]),
            name=str(payload.get("name", "")),
            event_type=event_type,
            trigger_config=dict(payload.get("triggerConfig") or default_trigger_config(event_type)),
            reward_config=dict(reward_config or default_reward_config(RewardType.POINTS.value)),
        )


def change_event_type(event: GameEvent, event_type: str) -> GameEvent:
    """Return ``event`` switched to ``event_type`` with a default trigger."""

    if event.event_type == event_type:
        return event
    return replace(event, event_type=event_type, trigger_config=default_trigger_config(event_type))


def change_event_reward(event: GameEvent, reward_type: str) -> GameEvent:
    return replace(event, reward_config=change_reward_type(event.reward_config, reward_type))


def apply_event_changes(
    event: GameEvent,
    *,
    name: str | None = None,
    event_type: str | None = None,
    trigger_config: Mapping[str, Any] | None = None,
    reward_config: Mapping[str, Any] | None = None,
) -> GameEvent:
    """Return ``event`` with an editor's changes applied.

    A new ``event_type`` resets the trigger to that type's defaults and a
    reward config with a new ``type`` starts from that type's defaults.
    Supplied values are then laid over the defaults, keeping only the keys
    the new type defines. A trigger config sent without a type change
    replaces the stored one as-is. Unknown keys are kept for unknown types.

    Raises:
        ValueError: If the resulting trigger config is invalid for its type.
    """

    updated = event
    if name is not None:
        updated = replace(updated, name=name)

    type_changed = event_type is not None and event_type != updated.event_type
    if event_type is not None:
        updated = change_event_type(updated, event_type)
    if trigger_config is not None:
        updated = replace(
            updated,
            trigger_config=_overlay(updated.trigger_config, trigger_config) if type_changed else dict(trigger_config),
        )
    if type_changed or trigger_config is not None:
        updated = replace(
            updated,
            trigger_config=validate_trigger_config(updated.event_type, updated.trigger_config),
        )

    if reward_config is not None:
        reward_type = str(reward_config.get("type") or updated.reward_config.get("type") or RewardType.POINTS.value)
        if reward_type == updated.reward_config.get("type"):
            updated = replace(updated, reward_config={**dict(reward_config), "type": reward_type})
        else:
            reset = change_event_reward(updated, reward_type)
            updated = replace(reset, reward_config=_overlay(reset.reward_config, reward_config))
    return updated


def _overlay(defaults: Mapping[str, Any], supplied: Mapping[str, Any]) -> dict[str, Any]:
    known = [key for key in defaults if key != "type"]
    if not known:
        return {**dict(supplied), **dict(defaults)}
    merged = dict(defaults)
    for key in known:
        if key in supplied:
            merged[key] = supplied[key]
    return merged


__all__ = [
    "EVENT_TYPE_LABELS",
    "EventType",
    "GameEvent",
    "REWARD_TYPE_LABELS",
    "RewardType",
    "apply_event_changes",
    "change_event_reward",
    "change_event_type",
    "change_reward_type",
    "default_reward_config",
    "default_trigger_config",
    "validate_trigger_config",
]

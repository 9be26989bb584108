from __future__ import annotations

import pytest

from gameflow.events import (
    EventType,
    GameEvent,
    RewardType,
    apply_event_changes,
    change_event_reward,
    change_event_type,
    change_reward_type,
    default_reward_config,
    default_trigger_config,
    validate_trigger_config,
)


def test_switching_reward_kind_discards_old_fields() -> None:
    assert change_reward_type({"type": "points", "value": 10}, "item") == {"type": "item", "itemId": ""}


def test_keeping_reward_kind_keeps_config() -> None:
    config = {"type": "message", "message": "Well done"}

    assert change_reward_type(config, "message") == config


@pytest.mark.parametrize(
    ("reward_type", "expected"),
    [
        (RewardType.POINTS.value, {"type": "points", "value": 10}),
        (RewardType.ITEM.value, {"type": "item", "itemId": ""}),
        (RewardType.UNLOCK_PAGE.value, {"type": "unlock_page", "pageId": ""}),
        (RewardType.MESSAGE.value, {"type": "message", "message": ""}),
        ("confetti", {"type": "confetti"}),
    ],
)
def test_default_reward_config(reward_type: str, expected: dict) -> None:
    assert default_reward_config(reward_type) == expected


def test_default_trigger_configs() -> None:
    assert default_trigger_config("qrcode") == {"qrCodeId": ""}
    assert default_trigger_config("gps") == {"lat": 25.033, "lng": 121.565, "radius": 50}
    assert default_trigger_config("shooting") == {"minScore": 100}
    assert default_trigger_config("timer") == {"delaySeconds": 60}
    assert default_trigger_config("bluetooth") == {}


def test_changing_event_type_resets_trigger() -> None:
    event = GameEvent(id="e1", game_id="g", name="Gate", trigger_config={"qrCodeId": "GATE-1"})

    switched = change_event_type(event, EventType.TIMER.value)

    assert switched.trigger_config == {"delaySeconds": 60}
    assert switched.reward_config == event.reward_config
    assert change_event_type(event, "qrcode") is event


def test_new_event_defaults() -> None:
    event = GameEvent(id="e1", game_id="g", name="Gate")

    assert event.to_payload()["triggerConfig"] == {"qrCodeId": ""}
    assert change_event_reward(event, "unlock_page").reward_config == {"type": "unlock_page", "pageId": ""}


def test_validate_trigger_config() -> None:
    assert validate_trigger_config("gps", {"lat": 1, "lng": 2.5, "radius": 10}) == {"lat": 1, "lng": 2.5, "radius": 10}
    assert validate_trigger_config("custom", {"x": 1}) == {"x": 1}

    with pytest.raises(ValueError, match="radius"):
        validate_trigger_config("gps", {"lat": 1, "lng": 2})
    with pytest.raises(ValueError, match="minScore"):
        validate_trigger_config("shooting", {"minScore": "high"})
    with pytest.raises(ValueError, match="greater than zero"):
        validate_trigger_config("gps", {"lat": 1, "lng": 2, "radius": 0})


def test_apply_event_changes_overlays_new_kind_defaults() -> None:
    event = GameEvent(
        id="e1",
        game_id="g",
        name="Gate",
        trigger_config={"qrCodeId": "GATE-1"},
        reward_config={"type": "points", "value": 40},
    )

    changed = apply_event_changes(
        event,
        event_type="gps",
        trigger_config={"radius": 15, "qrCodeId": "GATE-1"},
        reward_config={"type": "message", "value": 40, "message": "Welcome"},
    )

    assert changed.trigger_config == {"lat": 25.033, "lng": 121.565, "radius": 15}
    assert changed.reward_config == {"type": "message", "message": "Welcome"}
    assert changed.name == "Gate"


def test_apply_event_changes_keeps_same_kind_values() -> None:
    event = GameEvent(id="e1", game_id="g", name="Gate", reward_config={"type": "points", "value": 40})

    changed = apply_event_changes(event, name="Door", reward_config={"value": 5})

    assert changed.name == "Door"
    assert changed.event_type == "qrcode"
    assert changed.reward_config == {"type": "points", "value": 5}
    assert apply_event_changes(event) == event


def test_apply_event_changes_validates_trigger() -> None:
    event = GameEvent(id="e1", game_id="g", name="Gate")

    with pytest.raises(ValueError, match="qrCodeId"):
        apply_event_changes(event, trigger_config={"qrCodeId": 7})


def test_event_payload_round_trip_fills_missing_configs() -> None:
    event = GameEvent.from_payload({"id": "e1", "gameId": "g", "name": "Timer", "eventType": "timer"})

    assert event.trigger_config == {"delaySeconds": 60}
    assert event.reward_config == {"type": "points", "value": 10}
    assert GameEvent.from_payload(event.to_payload()) == event

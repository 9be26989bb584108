from __future__ import annotations

import random

import pytest

from gameflow.flow import (
    GAME_OVER_INDEX,
    evaluate_condition,
    evaluate_flow_router,
    evaluate_route,
    pick_random_route,
    process_on_complete_actions,
    resolve_flow_router,
)
from gameflow.page_config import FlowCondition, FlowRoute, FlowRouterConfig, OnCompleteAction
from gameflow.pages import Page, PersistedPageId


def _condition(**fields) -> FlowCondition:
    return FlowCondition.model_validate(fields)


def _router(page_id: str, order: int, config: dict) -> Page:
    return Page(id=PersistedPageId(page_id), game_id="g", page_type="flow_router", page_order=order, config=config)


def _card(page_id: str, order: int) -> Page:
    return Page(id=PersistedPageId(page_id), game_id="g", page_type="text_card", page_order=order, config={})


@pytest.mark.parametrize(
    ("fields", "expected"),
    [
        ({"type": "variable_equals", "variableName": "door", "variableValue": "open"}, True),
        ({"type": "variable_gt", "variableName": "keys", "variableValue": 1}, True),
        ({"type": "variable_lt", "variableName": "missing", "variableValue": 1}, True),
        ({"type": "variable_gte", "variableName": "keys", "variableValue": 3}, False),
        ({"type": "variable_lte", "variableName": "keys", "variableValue": 2}, True),
        ({"type": "has_item", "itemId": "torch"}, True),
        ({"type": "not_has_item", "itemId": "torch"}, False),
        ({"type": "score_above", "scoreThreshold": 50}, True),
        ({"type": "score_below", "scoreThreshold": 50}, False),
        ({"type": "random"}, True),
        ({"type": "moon_phase"}, False),
    ],
)
def test_evaluate_condition(fields: dict, expected: bool) -> None:
    variables = {"door": "open", "keys": 2}
    assert evaluate_condition(_condition(**fields), variables, ["torch"], 50) is expected


def test_route_logic_and_or() -> None:
    conditions = [{"type": "has_item", "itemId": "torch"}, {"type": "has_item", "itemId": "rope"}]
    both = FlowRoute.model_validate({"conditions": conditions, "conditionLogic": "and"})
    either = FlowRoute.model_validate({"conditions": conditions, "conditionLogic": "or"})

    assert not evaluate_route(both, {}, ["torch"], 0)
    assert evaluate_route(either, {}, ["torch"], 0)
    assert evaluate_route(FlowRoute(), {}, [], 0)


def test_conditional_router_falls_back_to_default() -> None:
    config = FlowRouterConfig.model_validate(
        {
            "routes": [{"conditions": [{"type": "score_above", "scoreThreshold": 100}], "nextPageId": "vip"}],
            "defaultNextPageId": "lobby",
        }
    )

    assert evaluate_flow_router(config, {}, [], 150) == "vip"
    assert evaluate_flow_router(config, {}, [], 10) == "lobby"


def test_random_router_uses_weights() -> None:
    routes = [
        FlowRoute.model_validate({"conditions": [{"type": "random", "weight": 0}], "nextPageId": "never"}),
        FlowRoute.model_validate({"conditions": [{"type": "random", "weight": 5}], "nextPageId": "always"}),
    ]
    rng = random.Random(7)

    assert {pick_random_route(routes, rng=rng) for _ in range(20)} == {"always"}


def test_random_router_with_no_weight_takes_first_route() -> None:
    routes = [
        FlowRoute.model_validate({"conditions": [{"type": "random", "weight": 0}], "nextPageId": "first"}),
        FlowRoute.model_validate({"conditions": [{"type": "random", "weight": 0}], "nextPageId": "second"}),
    ]

    assert pick_random_route(routes) == "first"
    assert pick_random_route([]) is None


def test_resolve_flow_router_chains_and_ends() -> None:
    pages = [
        _card("intro", 1),
        _router("r1", 2, {"routes": [], "defaultNextPageId": "r2"}),
        _card("skipped", 3),
        _router("r2", 4, {"routes": [{"conditions": [{"type": "has_item", "itemId": "key"}], "nextPageId": "vault"}]}),
        _card("after-r2", 5),
        _card("vault", 6),
        _router("exit", 7, {"defaultNextPageId": "_end"}),
    ]

    assert resolve_flow_router(pages, 1, {}, ["key"], 0) == 5
    assert resolve_flow_router(pages, 1, {}, [], 0) == 4
    assert resolve_flow_router(pages, 6, {}, [], 0) == GAME_OVER_INDEX
    assert resolve_flow_router(pages, 0, {}, [], 0) == 0


def test_resolve_flow_router_stops_after_hop_limit() -> None:
    pages = [
        _router("a", 1, {"defaultNextPageId": "b"}),
        _router("b", 2, {"defaultNextPageId": "a"}),
    ]

    assert resolve_flow_router(pages, 0, {}, [], 0) in (0, 1)


def test_process_on_complete_actions() -> None:
    actions = [
        OnCompleteAction.model_validate({"type": "set_variable", "variableName": "door", "value": "open"}),
        OnCompleteAction.model_validate({"type": "increment_variable", "variableName": "keys"}),
        OnCompleteAction.model_validate({"type": "increment_variable", "variableName": "keys", "value": 3}),
        OnCompleteAction.model_validate({"type": "decrement_variable", "variableName": "lives", "value": 1}),
        OnCompleteAction.model_validate({"type": "toggle_variable", "variableName": "alarm"}),
        OnCompleteAction.model_validate({"type": "add_item", "itemId": "torch"}),
        OnCompleteAction.model_validate({"type": "add_item", "itemId": "map"}),
        OnCompleteAction.model_validate({"type": "remove_item", "itemId": "rope"}),
        OnCompleteAction.model_validate({"type": "add_score", "points": 25}),
    ]
    variables = {"lives": 3}
    inventory = ["torch", "rope", "rope"]

    outcome = process_on_complete_actions(actions, variables, inventory, 10)

    assert outcome.variables == {"lives": 2, "door": "open", "keys": 4, "alarm": True}
    assert outcome.inventory == ["torch", "map"]
    assert outcome.score == 35
    assert variables == {"lives": 3}
    assert inventory == ["torch", "rope", "rope"]


def test_resolve_flow_router_rejects_non_router_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("gameflow.flow.parse_page_config", lambda page_type, config: OnCompleteAction(type="add_score"))
    pages = [_router("r1", 1, {"defaultNextPageId": "_end"})]

    with pytest.raises(TypeError, match="flow router config"):
        resolve_flow_router(pages, 0, {}, [], 0)

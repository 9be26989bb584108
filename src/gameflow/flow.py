"""Flow router evaluation and page completion actions.

Both are pure: they read the player's variables, inventory and score and
return a decision or a new state without touching storage.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from .page_config import (
    FlowCondition,
    FlowRoute,
    FlowRouterConfig,
    OnCompleteAction,
    parse_page_config,
)
from .page_types import PageType
from .pages import END_GAME, Page

MAX_ROUTER_HOPS = 10
GAME_OVER_INDEX = -1


def _as_number(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return math.nan


def evaluate_condition(
    condition: FlowCondition,
    variables: Mapping[str, Any],
    inventory: Sequence[str],
    score: int,
) -> bool:
    """Return ``True`` when a single routing condition holds."""

    name = condition.variable_name or ""
    kind = condition.type
    if kind == "variable_equals":
        return variables.get(name) == condition.variable_value
    if kind == "variable_gt":
        return _as_number(variables.get(name)) > _as_number(condition.variable_value)
    if kind == "variable_lt":
        return _as_number(variables.get(name)) < _as_number(condition.variable_value)
    if kind == "variable_gte":
        return _as_number(variables.get(name)) >= _as_number(condition.variable_value)
    if kind == "variable_lte":
        return _as_number(variables.get(name)) <= _as_number(condition.variable_value)
    if kind == "has_item":
        return (condition.item_id or "") in inventory
    if kind == "not_has_item":
        return (condition.item_id or "") not in inventory
    if kind == "score_above":
        return score >= (condition.score_threshold or 0)
    if kind == "score_below":
        return score < (condition.score_threshold or 0)
    if kind == "random":
        return True
    return False


def evaluate_route(
    route: FlowRoute,
    variables: Mapping[str, Any],
    inventory: Sequence[str],
    score: int,
) -> bool:
    """Combine a route's conditions with its ``and``/``or`` logic.

    A route without conditions always matches.
    """

    if not route.conditions:
        return True
    results = [evaluate_condition(condition, variables, inventory, score) for condition in route.conditions]
    if route.condition_logic == "and":
        return all(results)
    return any(results)


def pick_random_route(routes: Sequence[FlowRoute], *, rng: random.Random | None = None) -> str | None:
    """Choose a route target weighted by each route's first condition weight."""

    if not routes:
        return None

    weights = [
        route.conditions[0].weight if route.conditions and route.conditions[0].weight is not None else 1
        for route in routes
    ]
    total = sum(weights)
    if total <= 0:
        return routes[0].next_page_id

    roll = (rng or random).random() * total
    for route, weight in zip(routes, weights):
        roll -= weight
        if roll <= 0:
            return route.next_page_id
    return routes[-1].next_page_id


def evaluate_flow_router(
    config: FlowRouterConfig,
    variables: Mapping[str, Any],
    inventory: Sequence[str],
    score: int,
    *,
    rng: random.Random | None = None,
) -> str | None:
    """Return the target chosen by a flow router, or ``None`` when nothing applies."""

    if config.mode == "random":
        return pick_random_route(config.routes, rng=rng)

    for route in config.routes:
        if evaluate_route(route, variables, inventory, score):
            return route.next_page_id
    return config.default_next_page_id


def resolve_flow_router(
    pages: Sequence[Page],
    start_index: int,
    variables: Mapping[str, Any],
    inventory: Sequence[str],
    score: int,
    *,
    rng: random.Random | None = None,
) -> int:
    """Follow consecutive flow router pages starting at ``start_index``.

    Returns the index of the first page that is not a router, or
    :data:`GAME_OVER_INDEX` when a router ends the game. A router without a
    matching route or default falls through to the page after it. At most
    :data:`MAX_ROUTER_HOPS` jumps are followed.
    """

    index = start_index
    hops = 0
    while hops < MAX_ROUTER_HOPS and 0 <= index < len(pages):
        page = pages[index]
        if page.page_type != PageType.FLOW_ROUTER.value:
            break

        config = parse_page_config(page.page_type, page.config)
        if not isinstance(config, FlowRouterConfig):
            raise TypeError(f"Page '{page.id}' does not hold a flow router config.")
        target = evaluate_flow_router(config, variables, inventory, score, rng=rng)

        if target == END_GAME:
            return GAME_OVER_INDEX

        if target:
            found = next(
                (position for position, candidate in enumerate(pages) if str(candidate.id) == target),
                -1,
            )
            if found != -1:
                index = found
                hops += 1
                continue

        index += 1
        break

    return index


@dataclass(frozen=True)
class ActionOutcome:
    """Player state after applying a page's completion actions."""

    variables: dict[str, Any]
    inventory: list[str]
    score: int


def process_on_complete_actions(
    actions: Sequence[OnCompleteAction],
    variables: Mapping[str, Any],
    inventory: Sequence[str],
    score: int,
) -> ActionOutcome:
    """Apply ``actions`` in order and return the resulting state.

    The inputs are never mutated.
    """

    new_variables = dict(variables)
    new_inventory = list(inventory)
    new_score = score

    for action in actions:
        name = action.variable_name
        if action.type == "set_variable":
            if name:
                new_variables[name] = action.value
        elif action.type in ("increment_variable", "decrement_variable"):
            if name:
                step = _as_number(action.value)
                if math.isnan(step) or step == 0:
                    step = 1
                current = _as_number(new_variables.get(name))
                if math.isnan(current):
                    current = 0
                delta = step if action.type == "increment_variable" else -step
                new_variables[name] = _normalise_number(current + delta)
        elif action.type == "toggle_variable":
            if name:
                new_variables[name] = not new_variables.get(name)
        elif action.type == "add_item":
            if action.item_id and action.item_id not in new_inventory:
                new_inventory.append(action.item_id)
        elif action.type == "remove_item":
            if action.item_id:
                new_inventory = [item for item in new_inventory if item != action.item_id]
        elif action.type == "add_score":
            new_score += action.points or 0

    return ActionOutcome(variables=new_variables, inventory=new_inventory, score=new_score)


def _normalise_number(value: float) -> int | float:
    return int(value) if float(value).is_integer() else value


__all__ = [
    "ActionOutcome",
    "GAME_OVER_INDEX",
    "MAX_ROUTER_HOPS",
    "evaluate_condition",
    "evaluate_flow_router",
    "evaluate_route",
    "pick_random_route",
    "process_on_complete_actions",
    "resolve_flow_router",
]

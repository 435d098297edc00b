""" Prerequisite graphs gating which events may come up

A dependency is a tree of conditions evaluated against game state, e.g.

    {"operator": "AND", "conditions": [
        {"type": "event_completed", "event_id": "COURT_SCANDAL"},
        {"type": "stat_requirement", "stat": "influence", "min": 30},
    ]}

"and"/"or"/"not" typed nodes work as well, the same way rule conditions do.
Evaluation has no side effects so it's safe to check speculatively.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Optional, TYPE_CHECKING

from eventforge import predicates, util
from eventforge.rules import interpreter

if TYPE_CHECKING:
    from eventforge.relationships import RelationshipNetwork

DependencyHandler = Callable[[Mapping[str, Any], Mapping[str, Any]], bool]

class DependencyGraphEvaluator:
    def __init__(self, relationships:Optional["RelationshipNetwork"]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.relationships = relationships
        self.dependencies:dict[str, Mapping[str, Any]] = {}
        self.handlers:dict[str, DependencyHandler] = {
            "event_completed": self._event_completed,
            "stat_requirement": self._stat_requirement,
            "relationship_requirement": self._relationship_requirement,
            "item_requirement": self._item_requirement,
        }

    def register_handler(self, kind:str, handler:DependencyHandler) -> None:
        self.handlers[kind] = handler

    def _event_completed(self, game_state:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
        completed = game_state.get("completedEvents") or ()
        event_ids = params.get("event_ids", params.get("eventIds"))
        if event_ids is not None:
            return all(e in completed for e in event_ids)
        return params.get("event_id", params.get("eventId")) in completed

    def _stat_requirement(self, game_state:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
        stat = params.get("stat")
        if stat is None:
            return False
        player = game_state.get("player") or {}
        value = player.get(stat, 0) or 0
        return interpreter.in_bounds(value, params.get("min", 0), params.get("max"))

    def _relationship_requirement(self, game_state:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
        npc = params.get("npc")
        target = params.get("target", "player")
        if npc is None:
            return False
        if self.relationships is not None and self.relationships.has_entity(npc):
            strength = self.relationships.get_relationship(npc, target)
        else:
            strength = interpreter.relationship_strength(game_state, npc) or 0
        return interpreter.in_bounds(strength, params.get("min", 0), params.get("max"))

    def _item_requirement(self, game_state:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
        items = interpreter.inventory(game_state)
        if "items" in params:
            return all(i in items for i in params["items"])
        return params.get("item") in items

    def compile(self, node:Any) -> predicates.Criteria[Mapping[str, Any]]:
        if not isinstance(node, Mapping):
            return predicates.Unknown(repr(node))

        criteria:predicates.Criteria[Mapping[str, Any]]
        if "operator" in node and "type" not in node:
            op = str(node["operator"]).upper()
            inner = [self.compile(c) for c in node.get("conditions", [])]
            if op == "AND":
                criteria = predicates.Conjunction(inner)
            elif op == "OR":
                criteria = predicates.Disjunction(inner)
            else:
                self.logger.warning(f'unknown dependency operator "{node["operator"]}", evaluating to false')
                criteria = predicates.Literal(False)
        else:
            kind = node.get("type")
            params = interpreter.node_params(node)
            if kind == "and":
                criteria = predicates.Conjunction(self.compile(c) for c in params.get("conditions", []))
            elif kind == "or":
                criteria = predicates.Disjunction(self.compile(c) for c in params.get("conditions", []))
            elif kind == "not":
                criteria = predicates.Negation(self.compile(params.get("condition")))
            elif kind in self.handlers:
                criteria = predicates.Leaf(kind, self.handlers[kind], params)
            else:
                criteria = predicates.Unknown(str(kind))

        if node.get("negate"):
            criteria = predicates.Negation(criteria)
        return criteria

    def check(self, node:Any, game_state:Mapping[str, Any]) -> bool:
        return self.compile(node).evaluate(game_state)

    def register(self, event_id:str, node:Mapping[str, Any]) -> None:
        if not isinstance(node, Mapping):
            raise ValueError(f'dependency for {event_id} must be a table')
        self.dependencies[event_id] = node
        self.logger.info(f'registered dependency for {event_id}')

    def unregister(self, event_id:str) -> bool:
        return self.dependencies.pop(event_id, None) is not None

    def check_event(self, event_id:str, game_state:Mapping[str, Any]) -> bool:
        """ true if event_id's dependency holds, or it has none """
        node = self.dependencies.get(event_id)
        if node is None:
            return True
        return self.check(node, game_state)

    def available(self, event_ids:Iterable[str], game_state:Mapping[str, Any]) -> list[str]:
        return [e for e in event_ids if self.check_event(e, game_state)]

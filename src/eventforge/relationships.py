""" Directed, weighted relationships between NPCs and other entities. """

import collections
import logging
import time
import types
from collections.abc import Callable, Mapping
from typing import Any, Optional

from eventforge import config, util

def relationship_type(strength:float) -> str:
    if strength >= 50:
        return "ally"
    elif strength >= 20:
        return "friend"
    elif strength <= -50:
        return "enemy"
    elif strength <= -20:
        return "rival"
    elif strength >= 10:
        return "acquaintance"
    elif strength <= -10:
        return "unfriendly"
    return "neutral"

class Entity:
    def __init__(self, entity_id:str, name:str, entity_type:str) -> None:
        self.entity_id = entity_id
        self.name = name
        self.entity_type = entity_type

    def __repr__(self) -> str:
        return f'Entity({self.entity_id}, {self.name})'

    def to_json(self) -> dict[str, Any]:
        return {"id": self.entity_id, "name": self.name, "type": self.entity_type}

class Relationship:
    """ how from_id feels about to_id, with the history of how it got there """

    def __init__(self, from_id:str, to_id:str, strength:float=0) -> None:
        self.from_id = from_id
        self.to_id = to_id
        self.strength = strength
        self.history:list[dict[str, Any]] = []

    def __repr__(self) -> str:
        return f'Relationship({self.from_id} -> {self.to_id}: {self.strength})'

    @property
    def type(self) -> str:
        return relationship_type(self.strength)

    def to_json(self) -> dict[str, Any]:
        return {
            "from": self.from_id,
            "to": self.to_id,
            "strength": self.strength,
            "history": [dict(h) for h in self.history],
        }

class RelationshipNetwork:
    def __init__(self, settings:Optional[types.SimpleNamespace]=None, clock:Optional[Callable[[], float]]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.settings = settings or config.Settings.relationships
        self.clock = clock or time.time

        self.entities:dict[str, Entity] = {}
        # from_id -> to_id -> relationship
        self.edges:dict[str, dict[str, Relationship]] = collections.defaultdict(dict)
        self.rules:dict[str, tuple[float, str]] = {
            name: (rule.delta, rule.reason) for name, rule in vars(self.settings.rules).items()
        }

    def add_entity(self, entity_id:str, name:Optional[str]=None, entity_type:str="npc") -> Entity:
        entity = Entity(entity_id, name or entity_id, entity_type)
        self.entities[entity_id] = entity
        self.logger.info(f'added entity {entity_id}')
        return entity

    def has_entity(self, entity_id:str) -> bool:
        return entity_id in self.entities

    def remove_entity(self, entity_id:str) -> bool:
        if entity_id not in self.entities:
            return False
        del self.entities[entity_id]
        self.edges.pop(entity_id, None)
        for targets in self.edges.values():
            targets.pop(entity_id, None)
        return True

    def add_rule(self, name:str, delta:float, reason:str) -> None:
        self.rules[name] = (delta, reason)

    def _update(self, from_id:str, to_id:str, delta:float, reason:str, timestamp:float) -> float:
        relationship = self.edges[from_id].get(to_id)
        if relationship is None:
            relationship = Relationship(from_id, to_id)
            self.edges[from_id][to_id] = relationship

        relationship.strength = util.clip(relationship.strength + delta, self.settings.min_strength, self.settings.max_strength)
        relationship.history.append({
            "timestamp": timestamp,
            "target_id": to_id,
            "delta": delta,
            "new_strength": relationship.strength,
            "reason": reason,
        })
        return relationship.strength

    def update_relationship(self, from_id:str, to_id:str, delta:float, reason:str="", timestamp:Optional[float]=None, symmetric:bool=False) -> float:
        """ changes how from_id feels about to_id by delta, clamped

        returns the new strength. updates from an unknown entity do nothing
        and return 0. with symmetric the reverse edge gets the same delta, if
        to_id is a known entity. """

        if from_id not in self.entities:
            self.logger.warning(f'unknown entity {from_id}, not updating relationship with {to_id}')
            return 0
        if timestamp is None:
            timestamp = self.clock()

        strength = self._update(from_id, to_id, delta, reason, timestamp)
        if symmetric:
            if to_id in self.entities:
                self._update(to_id, from_id, delta, reason, timestamp)
            else:
                self.logger.warning(f'unknown entity {to_id}, not updating reverse relationship with {from_id}')
        return strength

    def apply_rule(self, from_id:str, to_id:str, rule_name:str, symmetric:bool=False) -> float:
        if rule_name not in self.rules:
            raise ValueError(f'unknown relationship rule {rule_name}')
        delta, reason = self.rules[rule_name]
        return self.update_relationship(from_id, to_id, delta, reason, symmetric=symmetric)

    def get_relationship(self, from_id:str, to_id:str) -> float:
        relationship = self.edges.get(from_id, {}).get(to_id)
        if relationship is None:
            return 0
        return relationship.strength

    def get_history(self, from_id:str, to_id:str) -> list[dict[str, Any]]:
        relationship = self.edges.get(from_id, {}).get(to_id)
        if relationship is None:
            return []
        return [dict(h) for h in relationship.history]

    def summary(self, entity_id:str) -> dict[str, float]:
        relationships = list(self.edges.get(entity_id, {}).values())
        result:dict[str, float] = {
            "total": len(relationships),
            "average": 0.,
            "allies": 0,
            "enemies": 0,
            "neutral": 0,
        }
        if not relationships:
            return result

        result["average"] = sum(r.strength for r in relationships) / len(relationships)
        for r in relationships:
            if r.strength > 50:
                result["allies"] += 1
            elif r.strength < -30:
                result["enemies"] += 1
            else:
                result["neutral"] += 1
        return result

    def get_network(self, root_id:str, depth:int=1) -> dict[str, Any]:
        """ who root_id knows, and how well, out to depth hops

        a breadth first walk over outgoing edges. nodes are the visited known
        entities, edges are every outgoing edge of a visited entity. """

        nodes:list[dict[str, Any]] = []
        edges:list[dict[str, Any]] = []
        if root_id not in self.entities:
            return {"center": root_id, "nodes": nodes, "edges": edges}

        visited = set([root_id])
        queue:collections.deque[tuple[str, int]] = collections.deque([(root_id, 0)])
        while queue:
            entity_id, hops = queue.popleft()
            entity = self.entities.get(entity_id)
            if entity is None:
                continue

            targets = self.edges.get(entity_id, {})
            nodes.append({
                "id": entity_id,
                "name": entity.name,
                "type": entity.entity_type,
                "relationshipCount": len(targets),
            })
            for target_id, relationship in targets.items():
                edges.append({
                    "source": entity_id,
                    "target": target_id,
                    "type": relationship.type,
                    "strength": relationship.strength,
                })
                if hops < depth and target_id not in visited:
                    visited.add(target_id)
                    queue.append((target_id, hops + 1))

        return {"center": root_id, "nodes": nodes, "edges": edges}

    def to_json(self) -> dict[str, Any]:
        return {
            "entities": [e.to_json() for e in self.entities.values()],
            "edges": [r.to_json() for targets in self.edges.values() for r in targets.values()],
        }

    def load_json(self, data:Mapping[str, Any]) -> None:
        """ replaces all entities and relationships with a to_json snapshot """
        self.entities = {}
        self.edges = collections.defaultdict(dict)
        for e in data.get("entities", []):
            self.entities[e["id"]] = Entity(e["id"], e.get("name", e["id"]), e.get("type", "npc"))
        for edge in data.get("edges", []):
            relationship = Relationship(edge["from"], edge["to"], edge.get("strength", 0))
            relationship.history = [dict(h) for h in edge.get("history", [])]
            self.edges[relationship.from_id][relationship.to_id] = relationship

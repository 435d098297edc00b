""" Condition evaluation and effect application for event rules

Conditions are trees of nodes like

    {"type": "stat_greater_than", "params": {"stat": "gold", "value": 1000}}

params may also be given inline next to "type", and any node may carry
"negate": true. "and"/"or" nodes hold a list of "conditions", "not" holds a
single "condition". leaves dispatch to handlers registered by kind, so new
kinds can be added with register_condition without touching the
interpreter.

Effects are a table of effect kinds applied to a copy of an event in a fixed
order, see RuleInterpreter.apply_effects.
"""

import copy
import logging
import operator
import re
from collections.abc import Callable, Collection, Iterable, Mapping, Sequence
from typing import Any, Optional, Union

import numpy as np

from eventforge import predicates, util

ConditionHandler = Callable[[Mapping[str, Any], Mapping[str, Any]], bool]
EffectApplicator = Callable[[Any, Any, Mapping[str, Any]], None]

COMBINATORS = ("and", "or", "not")
NODE_KEYS = frozenset(["type", "params", "negate"])

EFFECT_KINDS = (
    "modifyChoices",
    "addChoices",
    "modifyTitle",
    "modifyNarrative",
    "modifyDescription",
    "setDifficulty",
    "addTags",
    "setUrgency",
    "addContext",
)
TEXT_FIELDS = {
    "modifyTitle": "title",
    "modifyNarrative": "narrative",
    "modifyDescription": "description",
}

OPERATORS:Mapping[str, Callable[[Any, Any], bool]] = {
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
    "eq": operator.eq,
    "ne": operator.ne,
    "neq": operator.ne,
}

logger = logging.getLogger(__name__)

def lookup(context:Mapping[str, Any], path:str, default:Any=None) -> Any:
    """ dotted path lookup into nested mappings, e.g. "environment.season" """
    value:Any = context
    for part in path.split("."):
        if not isinstance(value, Mapping) or part not in value:
            return default
        value = value[part]
    return value

def get_stat(context:Mapping[str, Any], stat:str) -> Any:
    """ reads context["player"][stat], then context[stat], defaulting to 0 """
    player = context.get("player")
    if isinstance(player, Mapping):
        value = lookup(player, stat)
        if value is not None:
            return value
    value = lookup(context, stat)
    return 0 if value is None else value

def compare(value:Any, op:str, target:Any) -> bool:
    fn = OPERATORS.get(op)
    if fn is None:
        logger.warning(f'unknown comparison operator "{op}", evaluating to false')
        return False
    if op not in ("eq", "ne", "neq") and not (util.is_number(value) and util.is_number(target)):
        return False
    return bool(fn(value, target))

def in_bounds(value:Any, low:Optional[float], high:Optional[float]) -> bool:
    if not util.is_number(value):
        return False
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True

def inventory(context:Mapping[str, Any]) -> Collection[Any]:
    items = lookup(context, "player.inventory")
    if items is None:
        items = context.get("inventory")
    return items or []

def relationship_strength(context:Mapping[str, Any], npc:str) -> Optional[float]:
    """ strength toward npc from context relationships

    relationships may be a mapping of npc to strength (or to a table with a
    strength) or a list of {name, relationship} tables. """
    relationships = context.get("relationships")
    if isinstance(relationships, Mapping):
        value = relationships.get(npc)
        if isinstance(value, Mapping):
            value = value.get("strength")
        return value
    if isinstance(relationships, Sequence) and not isinstance(relationships, str):
        for r in relationships:
            if isinstance(r, Mapping) and (r.get("name") == npc or r.get("id") == npc):
                return r.get("relationship", r.get("strength"))
    return None

def _comparison(value:Any, params:Mapping[str, Any], default_op:str="gte") -> bool:
    """ operator/value comparison or min/max bounds, whichever params give """
    if "operator" in params:
        return compare(value, params["operator"], params.get("value", 0))
    if "min" in params or "max" in params:
        return in_bounds(value, params.get("min"), params.get("max"))
    return compare(value, default_op, params.get("value", 0))

def _membership(collection:Collection[Any], params:Mapping[str, Any], key:str) -> bool:
    op = params.get("operator", "has")
    if key in params:
        wanted = [params[key]]
    elif key + "s" in params:
        wanted = list(params[key + "s"])
    else:
        wanted = [params.get("value")]
    present = all(w in collection for w in wanted)
    if op == "has":
        return present
    elif op == "not_has":
        return not any(w in collection for w in wanted)
    logger.warning(f'unknown membership operator "{op}", evaluating to false')
    return False

def stat_greater_than(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    return compare(get_stat(context, params["stat"]), "gt", params["value"])

def stat_less_than(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    return compare(get_stat(context, params["stat"]), "lt", params["value"])

def stat_equals(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    return get_stat(context, params["stat"]) == params["value"]

def stat_between(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    return in_bounds(get_stat(context, params["stat"]), params.get("min"), params.get("max"))

def has_item(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    return params["item"] in inventory(context)

def has_tag(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    return params["tag"] in (context.get("tags") or [])

def location_is(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    return context.get("location") == params["location"]

def season_is(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    season = lookup(context, "environment.season") or context.get("season")
    return season == params["season"]

def weather_is(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    weather = lookup(context, "environment.weather") or context.get("weather")
    return weather == params["weather"]

def career_is(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    career = lookup(context, "player.career") or context.get("career")
    return career == params["career"]

def time_greater_than(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    return compare(lookup(context, "time.day", 0), "gt", params["days"])

def relationship_status(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    strength = relationship_strength(context, params["npc"])
    if strength is None:
        return False
    return in_bounds(strength, params.get("min", -100), params.get("max", 100))

def event_completed(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    completed = context.get("completedEvents") or context.get("completed_events") or []
    if "event_ids" in params:
        return all(e in completed for e in params["event_ids"])
    return params.get("event_id", params.get("value")) in completed

def stat_requirement(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    stat = params.get("field", params.get("stat"))
    if stat is None:
        return False
    return _comparison(get_stat(context, stat), params)

def item_requirement(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    return _membership(inventory(context), params, "item")

def quest_requirement(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    quests = context.get("quests") or context.get("completedQuests") or []
    return _membership(quests, params, "quest")

def relationship_requirement(context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
    npc = params.get("npc", params.get("field"))
    if npc is None:
        return False
    strength = relationship_strength(context, npc)
    return _comparison(0 if strength is None else strength, params)

BUILTIN_CONDITIONS:Mapping[str, ConditionHandler] = {
    "stat_greater_than": stat_greater_than,
    "stat_less_than": stat_less_than,
    "stat_equals": stat_equals,
    "stat_between": stat_between,
    "has_item": has_item,
    "has_tag": has_tag,
    "location_is": location_is,
    "season_is": season_is,
    "weather_is": weather_is,
    "career_is": career_is,
    "time_greater_than": time_greater_than,
    "relationship_status": relationship_status,
    "event_completed": event_completed,
    "stat_requirement": stat_requirement,
    "item_requirement": item_requirement,
    "quest_requirement": quest_requirement,
    "relationship_requirement": relationship_requirement,
}

REQUIRED_PARAMS:Mapping[str, Sequence[str]] = {
    "stat_greater_than": ("stat", "value"),
    "stat_less_than": ("stat", "value"),
    "stat_equals": ("stat", "value"),
    "stat_between": ("stat",),
    "has_item": ("item",),
    "has_tag": ("tag",),
    "location_is": ("location",),
    "season_is": ("season",),
    "weather_is": ("weather",),
    "career_is": ("career",),
    "time_greater_than": ("days",),
    "relationship_status": ("npc",),
    "random_chance": ("probability",),
}

def node_params(node:Mapping[str, Any]) -> dict[str, Any]:
    """ params of a condition node, merging inline params """
    params = dict(node.get("params") or {})
    for k, v in node.items():
        if k not in NODE_KEYS:
            params.setdefault(k, v)
    return params

def condition_errors(node:Any, condition_types:Collection[str], where:str) -> list[str]:
    if not isinstance(node, Mapping):
        return [f'{where} must be a table, got {node!r}']
    kind = node.get("type")
    if kind is None:
        return [f'{where} missing type']
    params = node_params(node)
    if kind in ("and", "or"):
        inner = params.get("conditions")
        if not isinstance(inner, list):
            return [f'{where} ({kind}) must have a list of conditions']
        errors = []
        for i, c in enumerate(inner):
            errors.extend(condition_errors(c, condition_types, f'{where}.{kind}[{i}]'))
        return errors
    elif kind == "not":
        if "condition" not in params:
            return [f'{where} (not) must have a condition']
        return condition_errors(params["condition"], condition_types, f'{where}.not')
    elif kind not in condition_types:
        return [f'{where} has unknown type {kind}']
    missing = [p for p in REQUIRED_PARAMS.get(kind, ()) if p not in params]
    if missing:
        return [f'{where} ({kind}) missing params {", ".join(missing)}']
    return []

def rule_errors(name:str, data:Any, condition_types:Collection[str], effect_types:Collection[str]) -> list[str]:
    """ validation errors for a rule definition, empty if it's valid """
    if not isinstance(data, Mapping):
        return [f'rule {name} must be a table']
    errors:list[str] = []
    conditions = data.get("conditions", [])
    if not isinstance(conditions, list):
        errors.append(f'rule {name} conditions must be a list')
    else:
        for i, c in enumerate(conditions):
            errors.extend(condition_errors(c, condition_types, f'rule {name} condition {i}'))

    effects = data.get("effects", {})
    if not isinstance(effects, Mapping):
        errors.append(f'rule {name} effects must be a table')
    else:
        for kind in effects:
            if kind not in effect_types:
                errors.append(f'rule {name} has unknown effect {kind}')

    if "priority" in data and not util.is_number(data["priority"]):
        errors.append(f'rule {name} priority must be a number')
    return errors

class Rule:
    """ conditions (all must hold) and the effects to apply when they do

    priority is informational, rules apply in the order they were added. """

    def __init__(self, name:str, conditions:Optional[Sequence[Mapping[str, Any]]]=None, effects:Optional[Mapping[str, Any]]=None, priority:float=0, enabled:bool=True, description:Optional[str]=None) -> None:
        self.name = name
        self.conditions = [copy.deepcopy(dict(c)) for c in (conditions or [])]
        self.effects = copy.deepcopy(dict(effects or {}))
        self.priority = priority
        self.enabled = enabled
        self.description = description

    def __repr__(self) -> str:
        return f'Rule({self.name})'

    def to_json(self) -> dict[str, Any]:
        data:dict[str, Any] = {
            "conditions": copy.deepcopy(self.conditions),
            "effects": copy.deepcopy(self.effects),
            "priority": self.priority,
        }
        if not self.enabled:
            data["enabled"] = False
        if self.description:
            data["description"] = self.description
        return data

    @staticmethod
    def from_json(name:str, data:Mapping[str, Any]) -> "Rule":
        return Rule(
            name,
            conditions=data.get("conditions", []),
            effects=data.get("effects", {}),
            priority=data.get("priority", 0),
            enabled=data.get("enabled", True),
            description=data.get("description"),
        )

class RuleInterpreter:
    def __init__(self, r:Optional[np.random.Generator]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.r = r if r is not None else np.random.default_rng()

        self.conditions:dict[str, ConditionHandler] = dict(BUILTIN_CONDITIONS)
        self.conditions["random_chance"] = self._random_chance
        self.applicators:dict[str, EffectApplicator] = {}

        # insertion ordered, which is also application order
        self.rules:dict[str, Rule] = {}

    def _random_chance(self, context:Mapping[str, Any], params:Mapping[str, Any]) -> bool:
        return util.chance(self.r, params["probability"])

    def register_condition(self, kind:str, handler:ConditionHandler) -> None:
        if kind in COMBINATORS:
            raise ValueError(f'cannot override combinator {kind}')
        self.conditions[kind] = handler

    def register_effect(self, kind:str, applicator:EffectApplicator) -> None:
        """ adds a custom effect kind, applied after the built-in ones

        the applicator gets (event, params, context) and mutates the event
        copy it's given. """
        if kind in EFFECT_KINDS:
            raise ValueError(f'cannot override built-in effect {kind}')
        self.applicators[kind] = applicator

    @property
    def condition_types(self) -> list[str]:
        return list(self.conditions.keys()) + list(COMBINATORS)

    @property
    def effect_types(self) -> list[str]:
        return list(EFFECT_KINDS) + list(self.applicators.keys())

    def compile(self, node:Any) -> predicates.Criteria[Mapping[str, Any]]:
        """ turns a condition node into a predicate tree """
        if not isinstance(node, Mapping):
            return predicates.Unknown(repr(node))

        kind = node.get("type")
        params = node_params(node)
        criteria:predicates.Criteria[Mapping[str, Any]]
        if kind == "and":
            criteria = predicates.Conjunction(self.compile(c) for c in params.get("conditions", []))
        elif kind == "or":
            criteria = predicates.Disjunction(self.compile(c) for c in params.get("conditions", []))
        elif kind == "not":
            criteria = predicates.Negation(self.compile(params.get("condition")))
        elif kind in self.conditions:
            criteria = predicates.Leaf(kind, self.conditions[kind], params)
        else:
            criteria = predicates.Unknown(str(kind))

        if node.get("negate"):
            criteria = predicates.Negation(criteria)
        return criteria

    def evaluate(self, node:Any, context:Mapping[str, Any]) -> bool:
        return self.compile(node).evaluate(context)

    def evaluate_all(self, nodes:Optional[Iterable[Any]], context:Mapping[str, Any]) -> bool:
        """ true if every node holds, vacuously true for no nodes """
        if not nodes:
            return True
        return predicates.Conjunction(self.compile(n) for n in nodes).evaluate(context)

    def _modify_choices(self, event:Any, params:Mapping[str, Any]) -> None:
        for choice in event.choices:
            effect = choice.setdefault("effect", {})
            for key, factor in (params.get("multiply") or {}).items():
                if key not in effect:
                    continue
                value = effect[key]
                if util.is_range(value):
                    effect[key] = [util.round_half_up(v * factor) for v in value]
                elif util.is_number(value):
                    effect[key] = util.round_half_up(value * factor)
            for key, amount in (params.get("add") or {}).items():
                value = effect.get(key)
                if util.is_range(value):
                    effect[key] = [v + amount for v in value]
                elif util.is_number(value):
                    effect[key] = value + amount
                else:
                    effect[key] = amount
            for key, value in (params.get("set") or {}).items():
                effect[key] = copy.deepcopy(value)

    def _modify_text(self, text:str, params:Union[str, Mapping[str, Any]]) -> str:
        if isinstance(params, str):
            return params
        replace = params.get("replace")
        if isinstance(replace, str):
            text = replace
        elif isinstance(replace, Mapping):
            for pattern, replacement in replace.items():
                try:
                    text = re.sub(pattern, lambda _m, s=replacement: s, text)
                except re.error:
                    text = text.replace(pattern, replacement)
        if params.get("append"):
            text = text + params["append"]
        if params.get("prepend"):
            text = params["prepend"] + text
        return text

    def apply_effects(self, event:Any, effects:Mapping[str, Any], context:Mapping[str, Any]) -> Any:
        """ applies effects to a deep copy of event and returns the copy

        effects apply in a fixed order regardless of how they're listed:
        modifyChoices (multiply, add, set), addChoices, text modifiers on
        title, narrative and description, setDifficulty, addTags, setUrgency,
        addContext and then any custom effects in registration order. """

        event = copy.deepcopy(event)

        if "modifyChoices" in effects:
            self._modify_choices(event, effects["modifyChoices"])
        if "addChoices" in effects:
            event.choices.extend(copy.deepcopy(list(effects["addChoices"])))
        for kind, field in TEXT_FIELDS.items():
            if kind in effects:
                setattr(event, field, self._modify_text(getattr(event, field) or "", effects[kind]))
        if "setDifficulty" in effects:
            event.difficulty = effects["setDifficulty"]
        if "addTags" in effects:
            event.tags.extend(effects["addTags"])
        if "setUrgency" in effects:
            event.urgency = effects["setUrgency"]
        if "addContext" in effects:
            event.context.update(copy.deepcopy(dict(effects["addContext"])))

        for kind, applicator in self.applicators.items():
            if kind in effects:
                applicator(event, effects[kind], context)

        for kind in effects:
            if kind not in EFFECT_KINDS and kind not in self.applicators:
                self.logger.warning(f'unknown effect type "{kind}", ignoring')

        return event

    def validate_rule(self, rule:Union[Rule, Mapping[str, Any]], name:str="rule") -> list[str]:
        if isinstance(rule, Rule):
            name = rule.name
            rule = rule.to_json()
        return rule_errors(name, rule, self.condition_types, self.effect_types)

    def add_rule(self, rule:Union[Rule, str], data:Optional[Mapping[str, Any]]=None) -> Rule:
        """ adds (or replaces) a rule, either a Rule or a name and a table """
        if isinstance(rule, str):
            if data is None:
                raise ValueError(f'rule {rule} needs a definition')
            rule = Rule.from_json(rule, data)
        errors = self.validate_rule(rule)
        if errors:
            raise ValueError(errors[0])
        self.rules[rule.name] = rule
        self.logger.info(f'added rule {rule.name}')
        return rule

    def remove_rule(self, name:str) -> bool:
        if name not in self.rules:
            return False
        del self.rules[name]
        return True

    def get_rule(self, name:str) -> Optional[Rule]:
        return self.rules.get(name)

    def get_rules(self) -> list[Rule]:
        return list(self.rules.values())

    def clear_rules(self) -> None:
        self.rules.clear()

    def rule_applies(self, rule:Rule, context:Mapping[str, Any]) -> bool:
        if not rule.enabled:
            return False
        return self.evaluate_all(rule.conditions, context)

    def apply_rules(self, event:Any, context:Mapping[str, Any]) -> Any:
        """ applies every matching rule in the order they were added """
        for rule in self.rules.values():
            if self.rule_applies(rule, context):
                self.logger.debug(f'applying rule {rule.name}')
                event = self.apply_effects(event, rule.effects, context)
        return event

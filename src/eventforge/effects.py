""" Resolving choice effects: ranges to concrete values, scaled to context and
difficulty. """

import copy
import logging
import types
from collections.abc import Mapping, Sequence
from typing import Any, Optional

import numpy as np

from eventforge import config, util

class EffectResolver:
    """ turns effect specs into concrete values

    an effect maps a key (gold, health, ...) to either a number, an inclusive
    [min, max] range, or an opaque flag (bool, string) that is passed through
    untouched. """

    def __init__(self, settings:Optional[types.SimpleNamespace]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.settings = settings or config.Settings
        self.multipliers:list[Mapping[str, Any]] = list(self.settings.effects.multipliers)

    def multiplier(self, key:str, context:Mapping[str, Any]) -> float:
        m = 1.0
        for entry in self.multipliers:
            if key not in entry["keys"]:
                continue
            value = context.get(entry["stat"])
            if not util.is_number(value):
                continue
            if "above" in entry and value > entry["above"]:
                m *= entry["factor"]
            elif "below" in entry and value < entry["below"]:
                m *= entry["factor"]
        return m

    def resolve_value(self, key:str, value:Any, context:Mapping[str, Any], r:np.random.Generator) -> Any:
        if not util.is_range(value):
            return value

        m = self.multiplier(key, context)
        low = util.round_half_up(value[0] * m)
        high = util.round_half_up(value[1] * m)
        if low > high:
            low, high = high, low
        return int(r.integers(low, high, endpoint=True))

    def resolve(self, effect:Optional[Mapping[str, Any]], context:Mapping[str, Any], r:np.random.Generator) -> dict[str, Any]:
        if not effect:
            return {}
        return {key: self.resolve_value(key, value, context, r) for key, value in effect.items()}

    def resolve_choices(self, choices:Sequence[Mapping[str, Any]], context:Mapping[str, Any], r:np.random.Generator) -> list[dict[str, Any]]:
        resolved = []
        for choice in choices:
            c = copy.deepcopy(dict(choice))
            c["effect"] = self.resolve(choice.get("effect"), context, r)
            resolved.append(c)
        return resolved

    def classify(self, key:str) -> Optional[str]:
        """ "reward", "penalty" or None by substring match on the key """
        if any(k in key for k in self.settings.effects.reward_keys):
            return "reward"
        if any(k in key for k in self.settings.effects.penalty_keys):
            return "penalty"
        return None

    def difficulty_factor(self, key:str, tier:str) -> float:
        kind = self.classify(key)
        if kind is None:
            return 1.0
        tier_settings = getattr(self.settings.difficulty, tier, None)
        if tier_settings is None:
            raise ValueError(f'unknown difficulty tier {tier}')
        return getattr(tier_settings, kind)

    def scale_effects_for_difficulty(self, choices:Sequence[Mapping[str, Any]], tier:str) -> list[dict[str, Any]]:
        """ scales reward and penalty effects by the difficulty tier's factors

        works on both unresolved ranges (element-wise) and resolved numbers.
        returns new choices, the input is left alone. """

        scaled = []
        for choice in choices:
            c = copy.deepcopy(dict(choice))
            effect = c.get("effect") or {}
            for key, value in effect.items():
                factor = self.difficulty_factor(key, tier)
                if factor == 1.0:
                    continue
                if util.is_range(value):
                    effect[key] = [util.round_half_up(v * factor) for v in value]
                elif util.is_number(value):
                    effect[key] = util.round_half_up(value * factor)
            c["effect"] = effect
            scaled.append(c)
        return scaled

""" Weighted template selection driven by context and difficulty. """

import logging
import types
from collections.abc import Mapping, Sequence
from typing import Any, Optional

import numpy as np

from eventforge import config, util

MODIFIER_KINDS = ("career", "stat", "skill", "count", "season")

class ContextModifier:
    """ multiplicative weight boosts that apply when a context matches

    exactly one of career, stat, skill, count or season decides the match. """

    def __init__(self, kind:str, target:Any, boost:Mapping[str, float], above:Optional[float]=None, below:Optional[float]=None) -> None:
        self.kind = kind
        self.target = target
        self.boost = dict(boost)
        self.above = above
        self.below = below

    def matches(self, context:Mapping[str, Any]) -> bool:
        if self.kind == "career":
            career = context.get("career")
            if not career:
                return False
            career = str(career).lower()
            return any(c in career for c in self.target)
        elif self.kind == "season":
            return context.get("season") == self.target
        elif self.kind == "stat":
            value = context.get(self.target, 0)
        elif self.kind == "skill":
            skills = context.get("skills") or {}
            value = skills.get(self.target, 0)
        elif self.kind == "count":
            value = len(context.get(self.target) or [])
        else:
            raise ValueError(f'unknown modifier kind {self.kind}')

        if not util.is_number(value):
            return False
        if self.above is not None and not value > self.above:
            return False
        if self.below is not None and not value < self.below:
            return False
        return True

def load_modifier(data:Mapping[str, Any]) -> ContextModifier:
    kinds = [k for k in MODIFIER_KINDS if k in data]
    if len(kinds) != 1:
        raise ValueError(f'context modifier must have exactly one of {MODIFIER_KINDS}, got {kinds}')
    kind = kinds[0]
    if "boost" not in data or not isinstance(data["boost"], Mapping):
        raise ValueError(f'context modifier on {kind} {data[kind]} needs a boost table')
    for template_id, factor in data["boost"].items():
        if not util.is_number(factor):
            raise ValueError(f'boost for {template_id} on {kind} {data[kind]} must be a number, got {factor}')
    if kind in ("stat", "skill", "count") and "above" not in data and "below" not in data:
        raise ValueError(f'context modifier on {kind} {data[kind]} needs above or below')

    target = data[kind]
    if kind == "career" and isinstance(target, str):
        target = [target]
    if kind == "career":
        target = [str(t).lower() for t in target]

    return ContextModifier(kind, target, data["boost"], above=data.get("above"), below=data.get("below"))

class WeightedSelector:
    def __init__(self, settings:Optional[types.SimpleNamespace]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.settings = settings or config.Settings.selection

        self.base_weights:dict[str, float] = dict(vars(self.settings.base_weights))
        self.challenge_ratings:dict[str, float] = dict(vars(self.settings.challenge_ratings))
        self.modifiers:list[ContextModifier] = [load_modifier(m) for m in self.settings.modifiers]

    def set_weight(self, template_id:str, weight:float, challenge:Optional[float]=None) -> None:
        self.base_weights[template_id] = weight
        if challenge is not None:
            self.challenge_ratings[template_id] = challenge

    def add_modifier(self, modifier:ContextModifier) -> None:
        self.modifiers.append(modifier)

    def difficulty_correction(self, rating:float, power_ratio:float) -> float:
        if rating < power_ratio + 2:
            return 0.5
        elif rating <= power_ratio + 5:
            return 1.5
        elif rating > power_ratio + 6:
            return 0.3
        return 1.0

    def compute_weights(self, template_ids:Sequence[str], context:Mapping[str, Any]) -> dict[str, float]:
        """ normalized selection weights for each template id

        Parameters
        ----------
        template_ids : sequence of str
            the candidate templates
        context : mapping
            an analyzed context, power_level drives the difficulty correction

        Returns
        -------
        out : dict of str to float
            weights summing to 1, empty if there are no candidates
        """

        weights = {tid: float(self.base_weights.get(tid, self.settings.default_weight)) for tid in template_ids}

        for modifier in self.modifiers:
            if not modifier.matches(context):
                continue
            for tid, factor in modifier.boost.items():
                if tid in weights:
                    weights[tid] *= factor

        power_ratio = context.get("power_level", 0) / 100
        for tid in weights:
            rating = self.challenge_ratings.get(tid, self.settings.default_challenge)
            weights[tid] *= self.difficulty_correction(rating, power_ratio)

        total = sum(weights.values())
        if total <= 0:
            # everything boosted to nothing, fall back to uniform
            return {tid: 1.0 / len(weights) for tid in weights} if weights else {}
        return {tid: w / total for tid, w in weights.items()}

    def select(self, template_ids:Sequence[str], context:Mapping[str, Any], r:np.random.Generator) -> Optional[str]:
        if len(template_ids) == 0:
            return None
        weights = self.compute_weights(template_ids, context)
        ids = list(weights.keys())
        template_id = util.choose_weighted(r, ids, [weights[tid] for tid in ids])
        self.logger.debug(f'selected {template_id} with weight {weights[template_id]:.3f} out of {len(ids)} candidates')
        return template_id

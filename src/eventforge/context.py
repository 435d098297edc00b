""" Context analysis: turns a caller's free-form context into the scores that
drive template selection, effect resolution and difficulty. """

import logging
import types
from collections.abc import Mapping, Iterator
from typing import Any, Optional

import numpy as np

from eventforge import config, util

TIERS = ("easy", "normal", "hard", "legendary")

def difficulty_tier(power_level:float, settings:Optional[types.SimpleNamespace]=None) -> str:
    """ step function from power level to tier, no hysteresis """
    if settings is None:
        settings = config.Settings.difficulty
    tier = TIERS[-1]
    for name, tier_settings in vars(settings).items():
        if power_level <= tier_settings.power_max:
            return name
        tier = name
    return tier

def total_skill(skills:Any) -> float:
    if isinstance(skills, Mapping):
        return float(sum(v for v in skills.values() if util.is_number(v)))
    return 0.

class AnalyzedContext(Mapping[str, Any]):
    """ read-only view of a context with defaults filled and scores computed

    behaves like a dict so it can be handed straight to rule conditions. """

    def __init__(self, fields:Mapping[str, Any]) -> None:
        self._fields = dict(fields)

    def __getitem__(self, key:str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f'AnalyzedContext(tier={self._fields.get("difficulty_tier")}, power={self._fields.get("power_level")})'

    @property
    def power_level(self) -> float:
        return self._fields["power_level"]

    @property
    def social_standing(self) -> float:
        return self._fields["social_standing"]

    @property
    def life_experience(self) -> float:
        return self._fields["life_experience"]

    @property
    def difficulty_tier(self) -> str:
        return self._fields["difficulty_tier"]

    def updated(self, **kwargs:Any) -> "AnalyzedContext":
        """ a copy with some fields replaced, scores are not recomputed """
        fields = dict(self._fields)
        fields.update(kwargs)
        return AnalyzedContext(fields)

    def to_json(self) -> dict[str, Any]:
        return dict(self._fields)

class ContextAnalyzer:
    def __init__(self, settings:Optional[types.SimpleNamespace]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.settings = settings or config.Settings

    def analyze(self, raw:Optional[Mapping[str, Any]], r:np.random.Generator, season:Optional[str]=None) -> AnalyzedContext:
        if raw is None:
            raw = {}
        fields:dict[str, Any] = dict(raw)

        for key, value in vars(self.settings.context.defaults).items():
            fields.setdefault(key, value)

        if "wealth" not in raw:
            fields["wealth"] = raw.get("gold", 0) or 0
        fields.setdefault("career", None)
        fields.setdefault("skills", {})
        fields.setdefault("relationships", [])
        fields.setdefault("vices", [])
        fields.setdefault("secrets", [])
        fields.setdefault("ambitions", [])
        if not fields.get("location"):
            fields["location"] = util.choose(r, self.settings.context.locations)
        if not fields.get("season"):
            fields["season"] = season or self.settings.context.default_season

        fields["social_standing"] = self.social_standing(fields)
        fields["power_level"] = self.power_level(fields)
        fields["life_experience"] = self.life_experience(fields)
        fields["difficulty_tier"] = difficulty_tier(fields["power_level"], self.settings.difficulty)

        return AnalyzedContext(fields)

    def social_standing(self, fields:Mapping[str, Any]) -> float:
        standing = 0.4 * fields["influence"] + 0.3 * fields["reputation"] + 0.3 * (fields["wealth"] / 100)
        career = fields.get("career")
        if career and "noble" in str(career).lower():
            standing += 20
        return util.clip(standing, 0., 100.)

    def power_level(self, fields:Mapping[str, Any]) -> float:
        power = (
            0.3 * fields["influence"]
            + 0.2 * (fields["wealth"] / 100)
            + 0.2 * (total_skill(fields["skills"]) / 10)
            + 0.1 * (5 * len(fields["relationships"]))
            + 0.2 * (100 - fields["stress"])
        )
        return max(0., power)

    def life_experience(self, fields:Mapping[str, Any]) -> float:
        return (
            0.5 * fields["age"]
            + 0.1 * total_skill(fields["skills"])
            + 2 * len(fields["relationships"])
            + 3 * len(fields["ambitions"])
        )

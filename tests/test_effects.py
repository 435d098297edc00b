""" Test cases for effect resolution and difficulty scaling """

import numpy as np
import pytest

from eventforge.effects import EffectResolver

def test_resolve_range_inclusive():
    resolver = EffectResolver()
    r = np.random.default_rng(0)
    seen = set()
    for _ in range(200):
        value = resolver.resolve_value("knowledge", [1, 3], {}, r)
        assert 1 <= value <= 3
        seen.add(value)
    assert seen == {1, 2, 3}

def test_resolve_passthrough():
    resolver = EffectResolver()
    r = np.random.default_rng(0)
    effect = {"gold": 5, "secret_known": True, "title": "Baron"}
    assert resolver.resolve(effect, {"wealth": 200}, r) == effect
    assert resolver.resolve(None, {}, r) == {}
    assert resolver.resolve({}, {}, r) == {}

def test_multipliers():
    resolver = EffectResolver()
    assert resolver.multiplier("influence", {}) == 1.0
    assert resolver.multiplier("influence", {"influence": 40}) == pytest.approx(1.2)
    assert resolver.multiplier("influence", {"influence": 40, "reputation": 25}) == pytest.approx(1.2 * 1.1)
    assert resolver.multiplier("gold", {"wealth": 600}) == pytest.approx(1.3)
    assert resolver.multiplier("gold", {"wealth": 50}) == pytest.approx(0.8)
    assert resolver.multiplier("gold", {"wealth": 300}) == 1.0
    assert resolver.multiplier("health", {"influence": 90, "wealth": 900}) == 1.0

def test_multiplied_range():
    resolver = EffectResolver()
    r = np.random.default_rng(0)
    for _ in range(100):
        value = resolver.resolve_value("gold", [100, 200], {"wealth": 600}, r)
        assert 130 <= value <= 260

def test_resolve_choices_leaves_input_alone():
    resolver = EffectResolver()
    r = np.random.default_rng(0)
    choices = [
        {"text": "Take the bribe", "effect": {"gold": [10, 20]}},
        {"text": "Refuse"},
    ]
    resolved = resolver.resolve_choices(choices, {"wealth": 200}, r)
    assert 10 <= resolved[0]["effect"]["gold"] <= 20
    assert resolved[1]["effect"] == {}
    assert choices[0]["effect"]["gold"] == [10, 20]
    assert "effect" not in choices[1]

def test_classify():
    resolver = EffectResolver()
    assert resolver.classify("gold") == "reward"
    assert resolver.classify("reputation") == "reward"
    assert resolver.classify("health") == "penalty"
    assert resolver.classify("max_health") == "penalty"
    assert resolver.classify("happiness") is None

def test_difficulty_factor():
    resolver = EffectResolver()
    assert resolver.difficulty_factor("gold", "easy") == 1.5
    assert resolver.difficulty_factor("stress", "legendary") == 1.6
    assert resolver.difficulty_factor("happiness", "legendary") == 1.0
    assert resolver.difficulty_factor("happiness", "impossible") == 1.0
    with pytest.raises(ValueError):
        resolver.difficulty_factor("gold", "impossible")

def test_scale_effects_for_difficulty():
    resolver = EffectResolver()
    choices = [{"text": "Fight", "effect": {"gold": [10, 20], "health": -10, "happiness": [1, 2], "brave": True}}]

    easy = resolver.scale_effects_for_difficulty(choices, "easy")
    assert easy[0]["effect"] == {"gold": [15, 30], "health": -7, "happiness": [1, 2], "brave": True}

    legendary = resolver.scale_effects_for_difficulty(choices, "legendary")
    assert legendary[0]["effect"] == {"gold": [6, 12], "health": -16, "happiness": [1, 2], "brave": True}

    normal = resolver.scale_effects_for_difficulty(choices, "normal")
    assert normal[0]["effect"] == choices[0]["effect"]

    # input is untouched
    assert choices[0]["effect"]["gold"] == [10, 20]

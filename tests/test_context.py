""" Test cases for context analysis and difficulty tiers """

import numpy as np

from eventforge import config, context

def test_empty_context(analyzer, r):
    ctx = analyzer.analyze({}, r)

    assert ctx["age"] == 16
    assert ctx["health"] == 100
    assert ctx["wealth"] == 0
    assert ctx["skills"] == {}
    assert ctx["relationships"] == []
    assert ctx["location"] in config.Settings.context.locations
    assert ctx["season"] == "spring"

    # only the stress term contributes
    assert ctx.power_level == 20.
    assert ctx.social_standing == 0.
    assert ctx.life_experience == 8.
    assert ctx.difficulty_tier == "easy"

def test_none_context(analyzer, r):
    assert analyzer.analyze(None, r).difficulty_tier == "easy"

def test_caller_fields_win(analyzer, r):
    ctx = analyzer.analyze({"age": 45, "location": "capital", "season": "winter", "custom": "x"}, r, season="summer")
    assert ctx["age"] == 45
    assert ctx["location"] == "capital"
    assert ctx["season"] == "winter"
    assert ctx["custom"] == "x"

    assert analyzer.analyze({}, r, season="autumn")["season"] == "autumn"

def test_wealth(analyzer, r):
    assert analyzer.analyze({"gold": 750}, r)["wealth"] == 750
    assert analyzer.analyze({"gold": 750, "wealth": 10}, r)["wealth"] == 10

def test_scores(analyzer, r):
    ctx = analyzer.analyze({
        "career": "Noble Heir",
        "influence": 50,
        "reputation": 20,
        "wealth": 1000,
        "skills": {"diplomacy": 60, "combat": 40},
        "relationships": [{"name": "a"}, {"name": "b"}],
        "ambitions": ["rule"],
        "stress": 50,
        "age": 30,
    }, r)

    assert ctx.social_standing == 0.4 * 50 + 0.3 * 20 + 0.3 * 10 + 20
    assert ctx.power_level == 0.3 * 50 + 0.2 * 10 + 0.2 * 10 + 0.1 * 10 + 0.2 * 50
    assert ctx.life_experience == 15 + 10 + 4 + 3

def test_social_standing_clipped(analyzer, r):
    assert analyzer.analyze({"influence": 1000}, r).social_standing == 100.
    assert analyzer.analyze({"reputation": -500}, r).social_standing == 0.

def test_power_level_floor(analyzer, r):
    assert analyzer.analyze({"stress": 1000}, r).power_level == 0.

def test_tier_boundaries():
    assert context.difficulty_tier(0) == "easy"
    assert context.difficulty_tier(50) == "easy"
    assert context.difficulty_tier(50.1) == "normal"
    assert context.difficulty_tier(150) == "normal"
    assert context.difficulty_tier(300) == "hard"
    assert context.difficulty_tier(301) == "legendary"
    assert context.difficulty_tier(5000) == "legendary"

def test_tiers_monotonic(analyzer):
    r = np.random.default_rng(0)
    last = 0
    for influence in range(0, 2000, 25):
        tier = analyzer.analyze({"influence": influence}, r).difficulty_tier
        assert context.TIERS.index(tier) >= last
        last = context.TIERS.index(tier)
    assert context.TIERS[last] == "legendary"

def test_updated(analyzer, r):
    ctx = analyzer.analyze({"influence": 10}, r)
    changed = ctx.updated(influence=900)
    assert changed["influence"] == 900
    # scores are not recomputed
    assert changed.power_level == ctx.power_level
    assert ctx["influence"] == 10

def test_to_json(analyzer, r):
    ctx = analyzer.analyze({"gold": 5}, r)
    data = ctx.to_json()
    assert data["gold"] == 5
    assert data["difficulty_tier"] == "easy"
    data["gold"] = 6
    assert ctx["gold"] == 5

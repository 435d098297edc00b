""" Test cases for configuration loading and bundled data """

import io

import pytest

from eventforge import config

def test_builtin_settings():
    settings = config.load_config()
    assert settings.synth.state_size == 2
    assert settings.difficulty.easy.power_max == 50
    assert settings.difficulty.legendary.penalty == 1.6
    assert settings.relationships.rules.save_life.delta == 25
    assert settings.time.seasons == ["spring", "summer", "autumn", "winter"]
    # lists of tables stay dicts
    assert isinstance(settings.selection.modifiers[0], dict)

def test_override_file():
    override = io.StringIO("""
[synth]
state_size = 3

[difficulty.easy]
reward = 2
""")
    settings = config.load_config(override)
    assert settings.synth.state_size == 3
    assert settings.synth.max_tries == 10
    # toml ints may override floats
    assert settings.difficulty.easy.reward == 2
    assert settings.difficulty.easy.penalty == 0.7

    # reset module level settings for everybody else
    config.load_config()

def test_override_type_conflict():
    override = io.StringIO("""
[synth]
state_size = "two"
""")
    with pytest.raises(ValueError):
        config.load_config_dict(override)

def test_merge():
    a = {"x": {"y": 1, "z": 2}, "w": [1]}
    config.merge(a, {"x": {"y": 5}, "v": True})
    assert a == {"x": {"y": 5, "z": 2}, "w": [1], "v": True}

def test_load_data():
    templates = config.load_data("templates.toml")
    assert "COURT_SCANDAL" in templates
    assert len(templates) == 37

    chains = config.load_data("chains.toml")
    assert set(chains.keys()) == {
        "BANDIT_RISING", "COURT_SCANDAL_CHAIN", "CURSE_OF_THE_ARTIFACT",
        "MERCHANT_EMPIRE", "POLITICAL_UPRISING", "ECONOMIC_COLLAPSE",
        "MYSTICAL_AWAKENING",
    }

    corpus = config.load_data("corpus.toml")
    assert set(corpus["themes"].keys()) == {"fantasy", "sci-fi", "historical"}

""" Test cases for template loading, storage and composition """

import pytest

from eventforge import templates
from . import template, choice_texts

RICH = {"type": "stat_greater_than", "stat": "gold", "value": 100}

def test_extends(store, composer):
    store.put(template("BASE_NOBLE", [{"text": "Bow"}], tags=["noble"], difficulty="normal", abstract=True))
    store.put(templates.load_template("ROYAL_AUDIENCE", {
        "extends": "BASE_NOBLE",
        "title": "An Audience",
        "choices": [{"text": "Speak"}],
        "tags": ["court"],
    }))

    resolved = composer.resolve("ROYAL_AUDIENCE")
    assert resolved.template_id == "ROYAL_AUDIENCE"
    assert resolved.title == "An Audience"
    # narrative comes from the parent
    assert resolved.narrative == store.get("BASE_NOBLE").narrative
    assert resolved.difficulty == "normal"
    assert choice_texts(resolved) == ["Bow", "Speak"]
    assert resolved.tags == ["noble", "court"]
    assert not resolved.abstract
    assert resolved.extends == []

    # the stored template is left alone
    assert store.get("ROYAL_AUDIENCE").extends == ["BASE_NOBLE"]

def test_extends_replace(store, composer):
    store.put(template("BASE", [{"text": "Bow"}], tags=["noble"]))
    store.put(templates.load_template("CHILD", {
        "extends": "BASE",
        "choices": [{"text": "Speak"}],
        "tags": ["court"],
        "replace": ["choices"],
    }))
    resolved = composer.resolve("CHILD")
    assert choice_texts(resolved) == ["Speak"]
    assert resolved.tags == ["noble", "court"]

def test_multiple_parents(store, composer):
    store.put(template("FIRST", [{"text": "One"}], difficulty="easy"))
    store.put(template("SECOND", [{"text": "Two"}], difficulty="hard"))
    store.put(templates.load_template("BOTH", {"extends": ["FIRST", "SECOND"]}))

    resolved = composer.resolve("BOTH")
    assert choice_texts(resolved) == ["One", "Two"]
    assert resolved.difficulty == "hard"
    assert resolved.title == "Second"

def test_mixins(store, composer):
    store.put(template("MERCHANT_MIXIN", [{"text": "Haggle", "effect": {"gold": [5, 10]}}, {"text": "Leave"}], tags=["trade", "market"], abstract=True))
    store.put(template("MARKET_DAY", [{"text": "Leave"}], tags=["market"], mixins=["MERCHANT_MIXIN"]))

    resolved = composer.resolve("MARKET_DAY")
    assert choice_texts(resolved) == ["Leave", "Haggle"]
    assert resolved.choices[1].effect == {"gold": [5, 10]}
    assert resolved.tags == ["market", "trade"]
    assert resolved.mixins == []

def test_composition_conditions(store, composer):
    store.put(template("BRIBE_OPTION", [{"text": "Offer a bribe"}], tags=["bribe"]))
    store.put(template("GUARD_STOP", composition=[{"template_id": "BRIBE_OPTION", "conditions": [RICH]}]))

    rich = composer.resolve("GUARD_STOP", {"gold": 500})
    assert choice_texts(rich) == ["Deal with guard_stop", "Offer a bribe"]
    assert rich.tags == ["bribe"]
    assert rich.composition == []

    poor = composer.resolve("GUARD_STOP", {"gold": 5})
    assert choice_texts(poor) == ["Deal with guard_stop"]

def test_composition_strategies(store, composer):
    store.put(template("PART", [{"text": "Part choice"}], tags=["part"], title="Part Title"))
    for strategy in templates.MERGE_STRATEGIES:
        store.put(template(f'WHOLE_{strategy.upper()}', tags=["whole"], composition=[{"template_id": "PART", "merge_strategy": strategy}]))

    append = composer.resolve("WHOLE_APPEND")
    assert choice_texts(append) == ["Deal with whole_append", "Part choice"]
    assert append.title == "Whole Append"

    prepend = composer.resolve("WHOLE_PREPEND")
    assert choice_texts(prepend) == ["Part choice", "Deal with whole_prepend"]
    assert prepend.tags == ["part", "whole"]

    replace = composer.resolve("WHOLE_REPLACE")
    assert choice_texts(replace) == ["Part choice"]
    assert replace.title == "Part Title"
    assert replace.tags == ["part"]
    assert replace.template_id == "WHOLE_REPLACE"

    merge = composer.resolve("WHOLE_MERGE")
    assert choice_texts(merge) == ["Deal with whole_merge", "Part choice"]
    assert merge.title == "Part Title"

def test_composition_priority(store, composer):
    store.put(template("LOW", [{"text": "Low"}]))
    store.put(template("HIGH", [{"text": "High"}]))
    store.put(template("ORDERED", [{"text": "Base"}], composition=[
        {"template_id": "LOW", "priority": 1},
        {"template_id": "HIGH", "priority": 5},
    ]))
    assert choice_texts(composer.resolve("ORDERED")) == ["Base", "High", "Low"]

def test_conditional_choices(store, composer):
    store.put(template("SHOP", [{"text": "Browse"}, {"text": "Buy the sword"}, {"text": "Steal"}], conditional_choices=[
        {"choice_index": 1, "conditions": [RICH]},
        {"choice_index": 2, "conditions": [RICH], "show_when": False},
    ]))

    assert choice_texts(composer.resolve("SHOP", {"gold": 500})) == ["Browse", "Buy the sword"]
    assert choice_texts(composer.resolve("SHOP", {"gold": 5})) == ["Browse", "Steal"]

def test_all_choices_hidden(store, composer):
    store.put(template("LOCKED", [{"text": "Open the vault"}], conditional_choices=[
        {"choice_index": 0, "conditions": [RICH]},
    ]))
    resolved = composer.resolve("LOCKED", {"gold": 0})
    assert choice_texts(resolved) == [templates.CONTINUE_TEXT]

def test_dynamic_fields(store, composer):
    store.put(template("FEAST", [{"text": "Eat"}, {"text": "Drink"}], dynamic_fields=[
        {"field": "title", "conditions": [RICH], "value_if_true": "A Lavish Feast", "value_if_false": "A Meagre Meal"},
        {"field": "narrative", "conditions": [RICH], "value_if_true": "Gold plates line the table."},
        {"field": "choice_text", "choice_index": 1, "conditions": [RICH], "value_if_true": "Drink the fine wine"},
    ]))

    rich = composer.resolve("FEAST", {"gold": 500})
    assert rich.title == "A Lavish Feast"
    assert rich.narrative == "Gold plates line the table."
    assert choice_texts(rich) == ["Eat", "Drink the fine wine"]

    poor = composer.resolve("FEAST", {"gold": 5})
    assert poor.title == "A Meagre Meal"
    # no value for the false branch leaves the field alone
    assert poor.narrative == store.get("FEAST").narrative
    assert choice_texts(poor) == ["Eat", "Drink"]

def test_dynamic_fields_empty_value(store, composer):
    store.put(template("WHISPER", dynamic_fields=[
        {"field": "narrative", "conditions": [RICH], "value_if_true": "Coins clink.", "value_if_false": ""},
    ]))
    assert composer.resolve("WHISPER", {"gold": 500}).narrative == "Coins clink."
    # an empty value is still a value
    assert composer.resolve("WHISPER", {"gold": 5}).narrative == ""

def test_dynamic_fields_index_before_hiding(store, composer):
    store.put(template("GATE", [{"text": "A"}, {"text": "B"}, {"text": "C"}],
        conditional_choices=[{"choice_index": 0, "conditions": [RICH]}],
        dynamic_fields=[{"field": "choice_text", "choice_index": 2, "conditions": [], "value_if_true": "C2"}],
    ))
    assert choice_texts(composer.resolve("GATE", {"gold": 0})) == ["B", "C2"]

def test_cycle(store, composer):
    store.put(templates.load_template("A", {"extends": "B"}))
    store.put(templates.load_template("B", {"extends": "A"}))
    with pytest.raises(templates.TemplateCycleError) as excinfo:
        composer.resolve("A")
    assert "A -> B -> A" in str(excinfo.value)

    store.put(template("SELFISH", mixins=["SELFISH"]))
    with pytest.raises(templates.TemplateCycleError):
        composer.resolve("SELFISH")

def test_diamond_is_not_a_cycle(store, composer):
    store.put(template("ROOT", [{"text": "Root"}]))
    store.put(templates.load_template("LEFT", {"extends": "ROOT", "choices": [{"text": "Left"}]}))
    store.put(templates.load_template("RIGHT", {"extends": "ROOT", "choices": [{"text": "Right"}]}))
    store.put(template("BOTTOM", [{"text": "Bottom"}], mixins=["LEFT", "RIGHT"]))

    assert choice_texts(composer.resolve("BOTTOM")) == ["Bottom", "Root", "Left", "Right"]

def test_not_found(store, composer):
    with pytest.raises(templates.TemplateNotFoundError):
        composer.resolve("NOPE")

    store.put(templates.load_template("ORPHAN", {"extends": "MISSING_PARENT"}))
    with pytest.raises(templates.TemplateNotFoundError):
        composer.resolve("ORPHAN")

def test_resolve_idempotent(store, composer):
    store.put(template("BASE", [{"text": "Bow"}], tags=["noble"]))
    store.put(template("PART", [{"text": "Bribe"}]))
    store.put(template("FULL", [{"text": "Speak"}, {"text": "Leave"}],
        extends="BASE",
        composition=[{"template_id": "PART", "conditions": [RICH]}],
        conditional_choices=[{"choice_index": 1, "conditions": [RICH], "show_when": False}],
        dynamic_fields=[{"field": "title", "conditions": [RICH], "value_if_true": "Rich"}],
    ))

    context = {"gold": 500}
    resolved = composer.resolve("FULL", context)
    assert choice_texts(resolved) == ["Bow", "Leave", "Bribe"]
    assert composer.resolve_template(resolved, context) == resolved

def test_template_equality():
    a = template("SAME", tags=["x"])
    assert a == template("SAME", tags=["x"])
    assert a != template("SAME", tags=["y"])
    assert a.copy() == a
    assert a.copy() is not a

@pytest.mark.parametrize("data", [
    "not a table",
    {"narrative": "n", "choices": [{"text": "c"}]},
    {"title": "t", "choices": [{"text": "c"}]},
    {"title": "t", "narrative": "n", "choices": []},
    {"title": "t", "narrative": "n", "choices": [{"effect": {}}]},
    {"title": "t", "narrative": "n", "choices": [{"text": "c", "effect": {"gold": [1, 2, 3]}}]},
    {"title": "t", "narrative": "n", "choices": [{"text": "c"}], "tags": "political"},
    {"title": "t", "narrative": "n", "choices": [{"text": "c"}], "replace": ["title"]},
    {"title": "t", "narrative": "n", "choices": [{"text": "c"}], "composition": [{"priority": 1}]},
    {"title": "t", "narrative": "n", "choices": [{"text": "c"}], "composition": [{"template_id": "X", "merge_strategy": "shuffle"}]},
    {"title": "t", "narrative": "n", "choices": [{"text": "c"}], "conditional_choices": [{"conditions": []}]},
    {"title": "t", "narrative": "n", "choices": [{"text": "c"}], "dynamic_fields": [{"field": "tags"}]},
    {"title": "t", "narrative": "n", "choices": [{"text": "c"}], "dynamic_fields": [{"field": "choice_text"}]},
    {"title": 5, "narrative": "n", "choices": [{"text": "c"}]},
])
def test_load_template_errors(data):
    with pytest.raises(templates.TemplateError):
        templates.load_template("BAD", data)

def test_load_template_partial():
    abstract = templates.load_template("ABSTRACT", {"abstract": True, "tags": ["x"]})
    assert abstract.abstract
    assert abstract.choices == []

    child = templates.load_template("CHILD", {"extends": "ABSTRACT", "title": "Child"})
    assert child.extends == ["ABSTRACT"]

def test_template_error_is_value_error():
    with pytest.raises(ValueError):
        templates.load_template("BAD", {})

def test_store(store):
    store.put(template("COURT", tags=["political"], type="intrigue"))
    store.put(template("DUEL", tags=["combat", "political"], difficulty="hard"))
    store.put(template("MARKET", tags=["economic"]))

    assert len(store) == 3
    assert "COURT" in store
    assert "NOPE" not in store

    assert set(t.template_id for t in store.query({"tags": "political"})) == {"COURT", "DUEL"}
    assert set(t.template_id for t in store.query({"tags": ["economic", "combat"]})) == {"DUEL", "MARKET"}
    assert [t.template_id for t in store.query({"type": "intrigue"})] == ["COURT"]
    assert [t.template_id for t in store.query({"difficulty": "hard"})] == ["DUEL"]
    assert [t.template_id for t in store.query({"title_contains": "mark"})] == ["MARKET"]
    assert len(store.query()) == 3

    assert store.remove("COURT")
    assert not store.remove("COURT")
    assert store.ids() == ["DUEL", "MARKET"]

def test_builtin_templates(composer, store):
    builtins = templates.builtin_templates()
    assert len(builtins) == 37
    for t in builtins:
        store.put(t)
    for t in builtins:
        resolved = composer.resolve(t.template_id, {"gold": 100})
        assert resolved.title
        assert resolved.narrative
        assert len(resolved.choices) > 0

def test_template_json():
    t = template("JSONABLE", [{"text": "Go", "effect": {"gold": [1, 5]}, "consequence": "You go."}], tags=["x"], difficulty="easy")
    data = t.to_json()
    assert data["choices"] == [{"text": "Go", "effect": {"gold": [1, 5]}, "consequence": "You go."}]
    assert data["difficulty"] == "easy"
    assert "extends" not in data
    assert templates.load_template("JSONABLE", data) == t

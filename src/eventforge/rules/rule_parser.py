""" Event Rule Parsing """

import logging
from collections.abc import Collection, Mapping
from typing import Any, Optional

import toml # type: ignore

from . import interpreter

logger = logging.getLogger(__name__)

def loads(
    data: str,
    condition_types: Optional[Collection[str]] = None,
    effect_types: Optional[Collection[str]] = None,
) -> list[interpreter.Rule]:
    """
    Loads rules from a toml string.

    Parameters
    ----------
    data : str
        toml encoded rule data, one table per rule keyed by rule name
    condition_types : collection of str
        condition kinds rules may use, defaults to the built-in kinds
    effect_types : collection of str
        effect kinds rules may use, defaults to the built-in kinds

    Returns
    -------
    out : list of Rule
        the rules in the order they appear in data
    """

    # load data as toml
    rule_data = toml.loads(data)
    return loadd(rule_data, condition_types, effect_types)


def loadd(
    rule_data: Mapping[str, Any],
    condition_types: Optional[Collection[str]] = None,
    effect_types: Optional[Collection[str]] = None,
) -> list[interpreter.Rule]:
    """
    Loads rules from a dict keyed by rule name.

    Raises ValueError on the first malformed rule, no rules are returned in
    that case.
    """

    if condition_types is None:
        condition_types = list(interpreter.BUILTIN_CONDITIONS.keys()) + ["random_chance"] + list(interpreter.COMBINATORS)
    if effect_types is None:
        effect_types = interpreter.EFFECT_KINDS

    rules = []
    for rule_id, rule in rule_data.items():
        if not isinstance(rule, Mapping):
            raise ValueError(f'rule {rule_id} must be a table')
        if "effects" not in rule:
            raise ValueError(f'no effects in rule {rule_id}')

        errors = interpreter.rule_errors(rule_id, rule, condition_types, effect_types)
        if errors:
            raise ValueError(errors[0])

        rules.append(interpreter.Rule.from_json(rule_id, rule))

    logger.debug(f'loaded {len(rules)} rules')
    return rules

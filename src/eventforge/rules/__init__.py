""" Rules that post-process generated events

A rule is a list of conditions and a table of effects. When every condition
holds against the generation context the effects are applied to the event:
scaling choice effects, adding choices, rewriting text, tagging and so on.

Rules are kept in the order they're added and applied in that order. Each
rule has a priority, but it's only recorded, never used to reorder rules.
"""

from .interpreter import Rule, RuleInterpreter, get_stat
from .rule_parser import loads, loadd

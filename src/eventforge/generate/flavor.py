""" Flavor text for assembled events

Titles get a dramatic modifier, descriptions get a markov generated lead-in
plus lines reacting to the player's situation, and choices sometimes pick up
a flourish matching the player's career. """

import logging
import types
from collections.abc import Mapping, Sequence
from typing import Any, Optional

import numpy as np

from eventforge import config, util
from eventforge.generate.markov import TextSynthesizer
from eventforge.templates import Template

DEFAULT_GROUP = "dramatic"
DEFAULT_THEME = "general"
DEFAULT_FALLBACK = "ENCOUNTER"

def _match_substring(template_id:str, table:types.SimpleNamespace, default:str) -> str:
    """ first key in table with a listed substring in template_id """
    for key, substrings in vars(table).items():
        if any(s in template_id for s in substrings):
            return key
    return default

def _lower_first(text:str) -> str:
    return text[:1].lower() + text[1:]

class Flavor:
    def __init__(self, settings:Optional[types.SimpleNamespace]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.settings = settings or config.Settings.flavor

    def title_group(self, template_id:str) -> str:
        return _match_substring(template_id, self.settings.title_groups, DEFAULT_GROUP)

    def theme(self, template_id:str) -> str:
        return _match_substring(template_id, self.settings.themes, DEFAULT_THEME)

    def dynamic_title(self, template:Template, r:np.random.Generator) -> str:
        modifiers = getattr(self.settings.title_modifiers, self.title_group(template.template_id))
        title = template.title or self.settings.default_title
        return f'{util.choose(r, modifiers)} {title}'

    def context_additions(self, context:Mapping[str, Any]) -> list[str]:
        additions:list[str] = []

        career = context.get("career")
        if career:
            career = str(career).lower()
            for key, lines in vars(self.settings.career_additions).items():
                if key in career:
                    additions.extend(l for l in lines if l not in additions)

        age = context.get("age")
        if util.is_number(age):
            ages = self.settings.age_additions
            if age < ages.young_below:
                additions.append(ages.young)
            elif age > ages.old_above:
                additions.append(ages.old)

        if context.get("relationships"):
            additions.extend(self.settings.relationship_additions.lines)

        season_line = getattr(self.settings.season_additions, str(context.get("season")), None)
        if season_line:
            additions.append(season_line)

        return additions

    def consequence_hint(self, context:Mapping[str, Any], r:np.random.Generator) -> Optional[str]:
        """ sometimes hints that the choice matters, more often for players
        others pay attention to """
        influence = context.get("influence", 0) or 0
        reputation = context.get("reputation", 0) or 0
        hint_chance = util.clip((influence + abs(reputation)) / 200, 0, self.settings.consequence_hint_cap)
        if util.chance(r, hint_chance):
            return util.choose(r, self.settings.consequence_hints)
        return None

    def fallback_type(self, template:Template) -> str:
        if template.type and hasattr(self.settings.fallback.descriptions, template.type):
            return template.type
        return DEFAULT_FALLBACK

    def fallback_description(self, kind:str, r:np.random.Generator) -> str:
        fallback = self.settings.fallback
        text = getattr(fallback.descriptions, kind, None)
        if text is None:
            text = getattr(fallback.descriptions, DEFAULT_FALLBACK)
        return text.format(
            profession=util.choose(r, fallback.professions),
            product=util.choose(r, fallback.products),
            location=util.choose(r, fallback.locations),
        )

    def rich_description(self, template:Template, context:Mapping[str, Any], synth:TextSynthesizer, r:np.random.Generator) -> str:
        """ the template narrative dressed up for this context

        a generated lead-in is only used if it's long, interesting and not
        just a line lifted from the corpus. templates without a narrative
        get a canned description for their type. """

        if not template.narrative:
            self.logger.debug(f'{template.template_id} has no narrative, using fallback description')
            return self.fallback_description(self.fallback_type(template), r)

        description = template.narrative
        if len(synth) > 0:
            lead = synth.generate(r, min_length=30, max_length=80, max_tries=5)
            if len(lead) > 40 and len(lead.split()) > 6 and not synth.is_corpus_line(lead) and synth.is_interesting(lead):
                description = f'{lead.rstrip(".")}. {_lower_first(description)}'

        additions = self.context_additions(context)
        if additions:
            description = f'{description} {util.choose(r, additions)}'

        if util.chance(r, self.settings.consequence_hint_chance):
            hint = self.consequence_hint(context, r)
            if hint:
                description = f'{description} {hint}'

        return description

    def enhance_choice_text(self, text:str, context:Mapping[str, Any], r:np.random.Generator) -> str:
        career = context.get("career")
        if not career or not util.chance(r, self.settings.choice_flourish_chance):
            return text
        career = str(career).lower()
        for key, flourish in vars(self.settings.choice_flourishes).items():
            if key in career:
                return text + flourish
        return text

    def enhance_choices(self, choices:Sequence[Mapping[str, Any]], context:Mapping[str, Any], r:np.random.Generator) -> list[dict[str, Any]]:
        enhanced = []
        for choice in choices:
            choice = dict(choice)
            choice["text"] = self.enhance_choice_text(choice["text"], context, r)
            enhanced.append(choice)
        return enhanced

    def urgency(self, template:Template, context:Mapping[str, Any]) -> str:
        settings = self.settings.urgency
        title = (template.title or "").lower()
        narrative = (template.narrative or "").lower()
        if any(w in title for w in settings.title_words) or any(w in narrative for w in settings.narrative_words):
            return "high"

        health = context.get("health", 100)
        wealth = context.get("wealth", 0)
        influence = context.get("influence", 0)
        if health < settings.health_below or wealth < settings.wealth_below or influence > settings.influence_above:
            return "high"
        return "normal"

""" Assembles events out of templates, context and generated text

EventAssembler is the entry point. It owns one random generator and every
registry (templates, rules, dependencies, chains, relationships) so
independent assemblers never share state.
"""

import copy
import logging
import types
import uuid
from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any, Optional, Union

import numpy as np

from eventforge import config, util
from eventforge.rules import rule_parser
from eventforge.chains import ChainDefinition, ChainInstance, ChainScheduler, Trigger, load_chain
from eventforge.context import AnalyzedContext, ContextAnalyzer
from eventforge.dependencies import DependencyGraphEvaluator
from eventforge.effects import EffectResolver
from eventforge.generate import corpus
from eventforge.generate.flavor import Flavor
from eventforge.generate.markov import TextSynthesizer
from eventforge.relationships import RelationshipNetwork
from eventforge.rules.interpreter import Rule, RuleInterpreter
from eventforge.selection import WeightedSelector
from eventforge.templates import (
    MemoryTemplateStore, Template, TemplateComposer, TemplateError,
    TemplateNotFoundError, TemplateStore, builtin_templates, load_template,
)

MARKOV_TYPE = "MARKOV_GENERATED"
FALLBACK_TYPE = "FALLBACK"

Translate = Callable[[str, Mapping[str, Any]], str]

class Event:
    """ a concrete event ready to show a player

    choices are dicts with text, a resolved effect and a consequence. """

    def __init__(
            self,
            event_id:str,
            title:str,
            description:str,
            narrative:str,
            choices:Sequence[Mapping[str, Any]],
            type:Optional[str]=None,
            difficulty:Optional[str]=None,
            urgency:str="normal",
            theme:str="general",
            tags:Optional[Iterable[str]]=None,
            context:Optional[Mapping[str, Any]]=None,
            chain_id:Optional[str]=None,
            chain_stage:Optional[int]=None,
    ) -> None:
        self.event_id = event_id
        self.title = title
        self.description = description
        self.narrative = narrative
        self.choices:list[dict[str, Any]] = [dict(c) for c in choices]
        self.type = type
        self.difficulty = difficulty
        self.urgency = urgency
        self.theme = theme
        self.tags:list[str] = list(tags or [])
        self.context:dict[str, Any] = dict(context or {})
        self.chain_id = chain_id
        self.chain_stage = chain_stage

    def __repr__(self) -> str:
        return f'Event({self.event_id}, {self.type}, {self.title!r})'

    def to_json(self) -> dict[str, Any]:
        data:dict[str, Any] = {
            "id": self.event_id,
            "title": self.title,
            "description": self.description,
            "narrative": self.narrative,
            "choices": copy.deepcopy(self.choices),
            "type": self.type,
            "difficulty": self.difficulty,
            "urgency": self.urgency,
            "theme": self.theme,
            "tags": list(self.tags),
            "context": copy.deepcopy(self.context),
        }
        if self.chain_id is not None:
            data["chainId"] = self.chain_id
            data["chainStage"] = self.chain_stage
        return data

    def localized(self, translate:Translate) -> "Event":
        """ a copy with the player visible text run through translate

        translate gets each string and the event context as variables. """
        event = copy.deepcopy(self)
        event.title = translate(event.title, event.context)
        event.description = translate(event.description, event.context)
        event.narrative = translate(event.narrative, event.context)
        for choice in event.choices:
            choice["text"] = translate(choice["text"], event.context)
        return event

class EventAssembler:
    def __init__(
            self,
            seed:Optional[int]=None,
            r:Optional[np.random.Generator]=None,
            store:Optional[TemplateStore]=None,
            training_data:Optional[Sequence[str]]=None,
            theme:Optional[str]=None,
            culture:Optional[str]=None,
            pure_markov:bool=False,
            settings:Optional[types.SimpleNamespace]=None,
    ) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.settings = settings or config.Settings

        # random generator
        self.r = r if r is not None else np.random.default_rng(seed)

        if store is None:
            store = MemoryTemplateStore(builtin_templates())
        self.store = store
        self.custom_templates:set[str] = set()
        self.custom_chains:set[str] = set()

        self.analyzer = ContextAnalyzer(self.settings)
        self.effects = EffectResolver(self.settings)
        self.selector = WeightedSelector(self.settings.selection)
        self.rules = RuleInterpreter(self.r)
        self.composer = TemplateComposer(self.store, self.rules)
        self.chains = ChainScheduler(self.r, self.settings.time)
        self.relationships = RelationshipNetwork(self.settings.relationships, clock=lambda: self.chains.current_day)
        self.dependencies = DependencyGraphEvaluator(self.relationships)
        self.flavor = Flavor(self.settings.flavor)

        self.pure_markov = pure_markov
        self.theme = theme or self.settings.corpus.theme
        self.culture = culture
        self.base_training_data:Optional[list[str]] = list(training_data) if training_data is not None else None
        self.training_data:dict[str, list[str]] = {}
        self.synth = TextSynthesizer(settings=self.settings.synth)
        self._retrain()

    # training data

    def _retrain(self) -> None:
        if self.base_training_data is not None:
            sentences = list(self.base_training_data)
        else:
            sentences = corpus.theme_corpus(self.r, self.theme, self.culture, self.settings.corpus.culture_blend)
        for category_data in self.training_data.values():
            sentences.extend(category_data)
        self.synth.ingest(sentences)
        self.logger.debug(f'trained synthesizer on {len(self.synth)} sentences')

    def set_theme(self, theme:str, culture:Optional[str]=None) -> None:
        self.theme = theme
        self.culture = culture
        self.base_training_data = None
        self._retrain()

    def add_training_data(self, data:Union[str, Iterable[str]], category:str="custom") -> bool:
        """ adds sentences under category and retrains

        returns False if there was nothing usable in data. """
        if isinstance(data, str):
            data = [data]
        valid = [d for d in data if isinstance(d, str) and d.strip()]
        if not valid:
            return False
        self.training_data.setdefault(category, []).extend(valid)
        self._retrain()
        return True

    def remove_training_data(self, category:str) -> bool:
        if category not in self.training_data:
            self.logger.warning(f'no training data in category {category}')
            return False
        del self.training_data[category]
        self._retrain()
        return True

    # templates

    def register_template(self, template_id:str, data:Union[Template, Mapping[str, Any]], override:bool=False) -> Template:
        """ adds a custom template

        raises TemplateError if the template is malformed or template_id is
        taken and override isn't set. nothing is stored in that case. """
        if template_id in self.store and not override:
            raise TemplateError(f'template {template_id} already exists')
        if isinstance(data, Template):
            template = data.copy()
            template.template_id = template_id
        else:
            template = load_template(template_id, data)
        self.store.put(template)
        self.custom_templates.add(template_id)
        self.logger.info(f'registered template {template_id}')
        return template

    def unregister_template(self, template_id:str) -> bool:
        if template_id not in self.custom_templates:
            self.logger.warning(f'{template_id} is not a custom template')
            return False
        self.store.remove(template_id)
        self.custom_templates.discard(template_id)
        self.dependencies.unregister(template_id)
        return True

    def get_template(self, template_id:str) -> Optional[Template]:
        return self.store.get(template_id)

    def query_templates(self, query:Optional[Mapping[str, Any]]=None) -> list[Template]:
        return self.store.query(query)

    def _selectable(self, template:Template) -> bool:
        if template.abstract:
            return False
        return not any(t in self.settings.selection.excluded_tags for t in template.tags)

    def candidate_templates(self, context:Mapping[str, Any]) -> list[str]:
        """ templates that may come up at random for context """
        candidates = []
        for template in self.store.query():
            if not self._selectable(template):
                continue
            if not self.rules.evaluate_all(template.conditions, context):
                continue
            if not self.dependencies.check_event(template.template_id, context):
                continue
            candidates.append(template.template_id)
        return candidates

    # rules

    def add_rule(self, rule:Union[Rule, str], data:Optional[Mapping[str, Any]]=None) -> Rule:
        return self.rules.add_rule(rule, data)

    def load_rules(self, data:str) -> list[Rule]:
        """ adds every rule in a toml string, none of them if any is malformed """
        loaded = rule_parser.loads(data, self.rules.condition_types, self.rules.effect_types)
        for rule in loaded:
            self.rules.add_rule(rule)
        return loaded

    def remove_rule(self, name:str) -> bool:
        return self.rules.remove_rule(name)

    def get_rules(self) -> list[Rule]:
        return self.rules.get_rules()

    def clear_rules(self) -> None:
        self.rules.clear_rules()

    def validate_rule(self, rule:Union[Rule, Mapping[str, Any]]) -> list[str]:
        return self.rules.validate_rule(rule)

    # dependencies

    def register_dependency(self, event_id:str, node:Mapping[str, Any]) -> None:
        self.dependencies.register(event_id, node)

    def unregister_dependency(self, event_id:str) -> bool:
        return self.dependencies.unregister(event_id)

    def check_dependencies(self, event_id:str, game_state:Mapping[str, Any]) -> bool:
        return self.dependencies.check_event(event_id, game_state)

    def available_templates(self, game_state:Mapping[str, Any]) -> list[str]:
        ids = [t.template_id for t in self.store.query() if not t.abstract]
        return self.dependencies.available(ids, game_state)

    # relationships

    def add_npc(self, npc_id:str, name:Optional[str]=None, npc_type:str="npc") -> None:
        self.relationships.add_entity(npc_id, name, npc_type)

    def update_relationship(self, npc_id:str, target_id:str, delta:float, reason:str="", symmetric:bool=False) -> float:
        return self.relationships.update_relationship(npc_id, target_id, delta, reason, symmetric=symmetric)

    def apply_relationship_rule(self, npc_id:str, target_id:str, rule_name:str, symmetric:bool=False) -> float:
        return self.relationships.apply_rule(npc_id, target_id, rule_name, symmetric=symmetric)

    def get_relationship(self, npc_id:str, target_id:str) -> float:
        return self.relationships.get_relationship(npc_id, target_id)

    def relationship_summary(self, npc_id:str) -> dict[str, float]:
        return self.relationships.summary(npc_id)

    def relationship_network(self, npc_id:str, depth:int=1) -> dict[str, Any]:
        return self.relationships.get_network(npc_id, depth)

    # event assembly

    def _event_id(self) -> str:
        return f'event_{uuid.UUID(bytes=self.r.bytes(16)).hex[:12]}'

    def analyze(self, context:Optional[Mapping[str, Any]]) -> AnalyzedContext:
        return self.analyzer.analyze(context, self.r, season=self.chains.season)

    def fallback_event(self, context:AnalyzedContext) -> Event:
        settings = self.settings.fallback_event
        return Event(
            self._event_id(),
            settings.title,
            settings.narrative,
            settings.narrative,
            [{"text": settings.choice, "effect": {}}],
            type=FALLBACK_TYPE,
            difficulty=context.difficulty_tier,
            context=context.to_json(),
        )

    def _assemble(self, template:Template, context:AnalyzedContext, chain_id:Optional[str]=None, chain_stage:Optional[int]=None) -> Event:
        """ turns a resolved template into an event and applies rules """
        choices = self.effects.resolve_choices([c.to_json() for c in template.choices], context, self.r)
        choices = self.flavor.enhance_choices(choices, context, self.r)
        choices = self.effects.scale_effects_for_difficulty(choices, context.difficulty_tier)

        tags = list(template.tags)
        if chain_id is not None:
            tags.append("chain_event")

        event = Event(
            self._event_id(),
            self.flavor.dynamic_title(template, self.r),
            self.flavor.rich_description(template, context, self.synth, self.r),
            template.narrative or self.settings.flavor.default_narrative,
            choices,
            type=template.template_id,
            difficulty=context.difficulty_tier,
            urgency=self.flavor.urgency(template, context),
            theme=self.flavor.theme(template.template_id),
            tags=tags,
            context=context.to_json(),
            chain_id=chain_id,
            chain_stage=chain_stage,
        )
        event = self.rules.apply_rules(event, context)
        self.logger.debug(f'assembled {event.event_id} from {template.template_id}')
        return event

    def _template_event(self, context:AnalyzedContext) -> Event:
        candidates = self.candidate_templates(context)
        while candidates:
            template_id = self.selector.select(candidates, context, self.r)
            assert template_id is not None
            self.logger.debug(f'selected template {template_id}')
            try:
                template = self.composer.resolve(template_id, context)
            except (TemplateError, TemplateNotFoundError) as e:
                self.logger.warning(f'could not resolve template {template_id}, skipping it: {e}')
                candidates.remove(template_id)
                continue
            return self._assemble(template, context)

        self.logger.warning("no templates available, using fallback event")
        return self.fallback_event(context)

    def _markov_text(self, min_length:int, max_length:int, max_tries:int) -> str:
        return self.synth.generate(self.r, min_length=min_length, max_length=max_length, max_tries=max_tries)

    def markov_choices(self) -> list[dict[str, Any]]:
        settings = self.settings.markov_mode
        texts = self.settings.flavor.markov_choices
        count = min(int(self.r.integers(settings.choices_min, settings.choices_max, endpoint=True)), len(texts))
        picks = self.r.choice(len(texts), size=count, replace=False)

        choices = []
        for i, pick in enumerate(picks):
            effect = {}
            for key, bounds in vars(settings.effects).items():
                if util.chance(self.r, bounds.chance):
                    effect[key] = int(self.r.integers(bounds.range[0], bounds.range[1], endpoint=True))
            choices.append({"text": texts[int(pick)], "effect": effect, "consequence": f'markov_choice_{i}'})
        return choices

    def _markov_event(self, context:AnalyzedContext) -> Event:
        """ an event made entirely of generated text

        falls back to a template event if there's nothing to generate from """
        if len(self.synth) == 0:
            self.logger.warning("no training data for markov generation, falling back to templates")
            return self._template_event(context)

        settings = self.settings.markov_mode
        flavor = self.settings.flavor
        title = self._markov_text(settings.title_min, settings.title_max, settings.title_tries).rstrip(".")
        title = util.elipsis(title, flavor.title_cap, flavor.title_keep)
        narrative = self._markov_text(settings.narrative_min, settings.narrative_max, settings.narrative_tries)
        lead = self._markov_text(settings.description_min, settings.description_max, settings.description_tries)

        description = narrative
        if len(lead) > settings.description_prefix_min:
            description = f'{lead.rstrip(".")}. {narrative[:1].lower()}{narrative[1:]}'

        event = Event(
            self._event_id(),
            title,
            description,
            narrative,
            self.markov_choices(),
            type=MARKOV_TYPE,
            difficulty=context.difficulty_tier,
            theme="custom",
            context=context.to_json(),
        )
        return self.rules.apply_rules(event, context)

    def generate_event(self, context:Optional[Mapping[str, Any]]=None) -> Event:
        """ generates one event for the player described by context

        Parameters
        ----------
        context : mapping
            the player's situation: stats like age, wealth, influence,
            reputation, a career, skills, relationships and so on. missing
            fields get defaults.

        Returns
        -------
        out : Event
            the generated event. if no template is available this is a canned
            fallback event.
        """
        analyzed = self.analyze(context)
        if self.pure_markov:
            return self._markov_event(analyzed)
        return self._template_event(analyzed)

    def generate_events(self, context:Optional[Mapping[str, Any]]=None, count:int=1) -> list[Event]:
        return [self.generate_event(context) for _ in range(count)]

    def generate_from_template(self, template_id:str, context:Optional[Mapping[str, Any]]=None) -> Event:
        """ generates an event from a named template

        raises TemplateNotFoundError if there's no such template. """
        if template_id not in self.store:
            raise TemplateNotFoundError(template_id)
        analyzed = self.analyze(context)
        return self._assemble(self.composer.resolve(template_id, analyzed), analyzed)

    def generate_time_aware_event(self, context:Optional[Mapping[str, Any]]=None) -> Event:
        """ like generate_event, with the current season's stat modifiers
        applied to the context """
        analyzed = self.analyze(context)
        modified = {}
        for key, factor in self.chains.seasonal_modifiers().items():
            if util.is_number(analyzed.get(key)):
                modified[key] = analyzed[key] * factor
        analyzed = analyzed.updated(
            timeInfo={
                "day": self.chains.current_day,
                "season": self.chains.season,
                "year": self.chains.game_year,
            },
            **modified,
        )
        return self._template_event(analyzed)

    # chains

    def register_chain(self, chain_id:str, data:Union[ChainDefinition, Mapping[str, Any]], override:bool=False) -> ChainDefinition:
        """ adds a custom chain, raising ValueError if it's malformed or
        refers to templates that don't exist """
        if chain_id in self.chains.chains and not override:
            raise ValueError(f'chain {chain_id} already registered')
        chain = data if isinstance(data, ChainDefinition) else load_chain(chain_id, data)
        missing = [s.template for s in chain.stages if s.template not in self.store]
        if missing:
            raise ValueError(f'chain {chain_id} refers to unknown templates {missing}')
        chain = self.chains.register_chain(chain_id, chain, override=True)
        self.custom_chains.add(chain_id)
        return chain

    def unregister_chain(self, chain_id:str) -> bool:
        if chain_id not in self.custom_chains:
            self.logger.warning(f'{chain_id} is not a custom chain')
            return False
        self.chains.unregister_chain(chain_id)
        self.custom_chains.discard(chain_id)
        return True

    def get_chain(self, chain_id:str) -> Optional[ChainDefinition]:
        return self.chains.get_chain(chain_id)

    def active_chains(self) -> list[ChainInstance]:
        return self.chains.active_chains()

    def end_chain(self, instance_id:str) -> bool:
        return self.chains.end_chain(instance_id)

    def _trigger_event(self, trigger:Trigger, context:Optional[Mapping[str, Any]]) -> Optional[Event]:
        assert trigger.template is not None
        if trigger.template not in self.store:
            self.logger.warning(f'{trigger.kind} template {trigger.template} missing, skipping')
            return None
        if context is None:
            context = trigger.context
        analyzed = self.analyze(context)
        template = self.composer.resolve(trigger.template, analyzed)
        event = self._assemble(template, analyzed, chain_id=trigger.instance_id, chain_stage=trigger.chain_stage)
        if trigger.kind == "seasonal_random":
            event.tags.append("seasonal")
        return event

    def _trigger_events(self, triggers:Iterable[Trigger], context:Optional[Mapping[str, Any]]) -> list[Event]:
        events = []
        for trigger in triggers:
            if trigger.kind == "seasonal_change":
                self.logger.info(f'season changed to {trigger.season} on day {trigger.day}')
                continue
            event = self._trigger_event(trigger, context)
            if event is not None:
                events.append(event)
        return events

    def start_chain(self, chain_id:str, context:Optional[Mapping[str, Any]]=None) -> Optional[Event]:
        """ starts chain_id and returns its first event if that's due today

        returns None for an unknown chain, or one whose first stage comes
        later. """
        instance = self.chains.start_chain(chain_id, context)
        if instance is None:
            return None
        events = self._trigger_events(self.chains.poll(instance.instance_id), None)
        return events[0] if events else None

    def advance_chain(self, instance_id:str, consequence:str) -> Optional[Event]:
        triggers = self.chains.advance_chain(instance_id, consequence)
        if triggers is None:
            return None
        events = self._trigger_events(triggers, None)
        return events[0] if events else None

    def advance_day(self, context:Optional[Mapping[str, Any]]=None) -> list[Event]:
        return self._trigger_events(self.chains.advance_day(), context)

    def advance_time(self, days:int=1, context:Optional[Mapping[str, Any]]=None) -> list[Event]:
        events = []
        for _ in range(days):
            events.extend(self.advance_day(context))
        return events

    # state

    def export_state(self) -> dict[str, Any]:
        state = self.chains.to_json()
        state["relationshipGraph"] = self.relationships.to_json()
        return state

    def import_state(self, state:Mapping[str, Any]) -> None:
        self.chains.load_json(state)
        self.relationships.load_json(state.get("relationshipGraph", {}))

    def export_custom_content(self) -> dict[str, Any]:
        templates = {}
        for template_id in sorted(self.custom_templates):
            template = self.store.get(template_id)
            if template is not None:
                templates[template_id] = template.to_json()
        return {
            "templates": templates,
            "trainingData": copy.deepcopy(self.training_data),
            "chains": {c: self.chains.chains[c].to_json() for c in sorted(self.custom_chains) if c in self.chains.chains},
        }

    def import_custom_content(self, content:Mapping[str, Any], override:bool=False) -> dict[str, dict[str, int]]:
        """ registers everything in an export_custom_content result

        malformed items are skipped and counted as failures. templates come
        before chains so chains can refer to imported templates. """
        results = {
            "templates": {"success": 0, "failed": 0},
            "trainingData": {"success": 0, "failed": 0},
            "chains": {"success": 0, "failed": 0},
        }

        for template_id, data in (content.get("templates") or {}).items():
            try:
                self.register_template(template_id, data, override=override)
                results["templates"]["success"] += 1
            except TemplateError as e:
                self.logger.warning(f'could not import template {template_id}: {e}')
                results["templates"]["failed"] += 1

        for category, data in (content.get("trainingData") or {}).items():
            if self.add_training_data(data, category):
                results["trainingData"]["success"] += 1
            else:
                results["trainingData"]["failed"] += 1

        for chain_id, data in (content.get("chains") or {}).items():
            try:
                self.register_chain(chain_id, data, override=override)
                results["chains"]["success"] += 1
            except ValueError as e:
                self.logger.warning(f'could not import chain {chain_id}: {e}')
                results["chains"]["failed"] += 1

        return results

    def system_status(self) -> dict[str, Any]:
        return {
            "currentDay": self.chains.current_day,
            "currentSeason": self.chains.season,
            "gameYear": self.chains.game_year,
            "templates": len(self.store),
            "customTemplates": len(self.custom_templates),
            "rules": len(self.rules.rules),
            "dependencies": len(self.dependencies.dependencies),
            "chains": len(self.chains.chains),
            "customChains": len(self.custom_chains),
            "activeChains": len(self.chains.instances),
            "entities": len(self.relationships.entities),
            "trainingCategories": sorted(self.training_data.keys()),
            "theme": self.theme,
            "culture": self.culture,
            "pureMarkov": self.pure_markov,
        }

""" Multi-stage event chains stepped by game days and player choices

A chain is an ordered list of stages, each naming the template for its event.
Stages come due in one of two ways:

 * time-gated stages carry a `day`, the number of days after the chain
   started that the stage fires
 * delay-gated stages carry a `delay` and fire once the instance's next event
   time arrives. the stage before schedules that time through its
   `trigger_next`, either automatically or when the player makes a choice with
   a matching consequence.

Every stage of an instance fires at most once.
"""

import logging
import types
from collections.abc import Iterable, Mapping
from typing import Any, Optional

import numpy as np

from eventforge import config, util

class TriggerNext:
    def __init__(self, choice:Optional[str]=None, automatic:bool=False, delay:int=0) -> None:
        self.choice = choice
        self.automatic = automatic
        self.delay = delay

    def to_json(self) -> dict[str, Any]:
        data:dict[str, Any] = {"delay": self.delay}
        if self.choice is not None:
            data["choice"] = self.choice
        if self.automatic:
            data["automatic"] = True
        return data

class ChainStage:
    def __init__(self, template:str, day:Optional[int]=None, delay:Optional[int]=None, trigger_next:Optional[TriggerNext]=None) -> None:
        self.template = template
        self.day = day
        self.delay = delay
        self.trigger_next = trigger_next

    @property
    def time_gated(self) -> bool:
        return self.day is not None

    def to_json(self) -> dict[str, Any]:
        data:dict[str, Any] = {"template": self.template}
        if self.day is not None:
            data["day"] = self.day
        if self.delay is not None:
            data["delay"] = self.delay
        if self.trigger_next is not None:
            data["trigger_next"] = self.trigger_next.to_json()
        return data

class ChainDefinition:
    def __init__(self, chain_id:str, name:str, description:str, stages:list[ChainStage]) -> None:
        self.chain_id = chain_id
        self.name = name
        self.description = description
        self.stages = stages

    def __len__(self) -> int:
        return len(self.stages)

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "stages": [s.to_json() for s in self.stages],
        }

def _check_days(chain_id:str, i:int, field:str, value:Any) -> int:
    if not util.is_number(value) or value < 0:
        raise ValueError(f'stage {i} of chain {chain_id} has bad {field} {value!r}')
    return int(value)

def load_stage(chain_id:str, i:int, data:Any) -> ChainStage:
    if not isinstance(data, Mapping):
        raise ValueError(f'stage {i} of chain {chain_id} must be a table')
    template = data.get("template")
    if not isinstance(template, str) or not template:
        raise ValueError(f'stage {i} of chain {chain_id} has no template')
    if "day" not in data and "delay" not in data:
        raise ValueError(f'stage {i} of chain {chain_id} needs a day or a delay')

    day = _check_days(chain_id, i, "day", data["day"]) if "day" in data else None
    delay = _check_days(chain_id, i, "delay", data["delay"]) if "delay" in data else None

    trigger_next = None
    trigger_data = data.get("trigger_next", data.get("triggerNext"))
    if trigger_data is not None:
        if not isinstance(trigger_data, Mapping):
            raise ValueError(f'trigger of stage {i} of chain {chain_id} must be a table')
        choice = trigger_data.get("choice")
        automatic = bool(trigger_data.get("automatic", False))
        if choice is None and not automatic:
            raise ValueError(f'trigger of stage {i} of chain {chain_id} needs a choice or automatic')
        trigger_next = TriggerNext(
            choice=choice,
            automatic=automatic,
            delay=_check_days(chain_id, i, "trigger delay", trigger_data.get("delay", 0)),
        )

    return ChainStage(template, day=day, delay=delay, trigger_next=trigger_next)

def load_chain(chain_id:str, data:Any) -> ChainDefinition:
    """ builds a chain definition from a table, raising ValueError if it's malformed """
    if not isinstance(data, Mapping):
        raise ValueError(f'chain {chain_id} must be a table')
    stages = data.get("stages")
    if not isinstance(stages, list) or len(stages) == 0:
        raise ValueError(f'chain {chain_id} has no stages')

    return ChainDefinition(
        chain_id,
        data.get("name", chain_id),
        data.get("description", ""),
        [load_stage(chain_id, i, s) for i, s in enumerate(stages)],
    )

def builtin_chains() -> dict[str, ChainDefinition]:
    return {k: load_chain(k, v) for k, v in config.load_data("chains.toml").items()}

class ChainInstance:
    """ one run through a chain

    stage is the index of the next stage to fire. the instance is finished
    once stage reaches the number of stages. """

    def __init__(self, instance_id:str, definition:str, start_day:int, context:Optional[Mapping[str, Any]]=None) -> None:
        self.instance_id = instance_id
        self.definition = definition
        self.stage = 0
        self.start_day = start_day
        self.completed_stages:set[int] = set()
        self.next_event_time:Optional[int] = None
        self.next_event_template:Optional[str] = None
        self.context:dict[str, Any] = dict(context or {})

    def __repr__(self) -> str:
        return f'ChainInstance({self.instance_id}, {self.definition}, stage={self.stage})'

    def to_json(self) -> dict[str, Any]:
        return {
            "id": self.instance_id,
            "definition": self.definition,
            "stage": self.stage,
            "startDay": self.start_day,
            "nextEventTime": self.next_event_time,
            "nextEventTemplate": self.next_event_template,
            "completedStages": sorted(self.completed_stages),
            "context": dict(self.context),
        }

    @staticmethod
    def from_json(data:Mapping[str, Any]) -> "ChainInstance":
        instance = ChainInstance(data["id"], data["definition"], data["startDay"], data.get("context"))
        instance.stage = data.get("stage", 0)
        instance.completed_stages = set(data.get("completedStages", []))
        instance.next_event_time = data.get("nextEventTime")
        instance.next_event_template = data.get("nextEventTemplate")
        return instance

class Trigger:
    """ something that happened while time moved forward

    kind is one of "chain_stage", "seasonal_change" or "seasonal_random". """

    def __init__(self, kind:str, day:int, template:Optional[str]=None, instance_id:Optional[str]=None, chain_id:Optional[str]=None, chain_stage:Optional[int]=None, stage_day:int=0, season:Optional[str]=None, context:Optional[Mapping[str, Any]]=None) -> None:
        self.kind = kind
        self.day = day
        self.template = template
        self.instance_id = instance_id
        self.chain_id = chain_id
        self.chain_stage = chain_stage
        self.stage_day = stage_day
        self.season = season
        self.context:dict[str, Any] = dict(context or {})

    def __repr__(self) -> str:
        return f'Trigger({self.kind}, day={self.day}, template={self.template})'

    def to_json(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "day": self.day,
            "template": self.template,
            "chainId": self.instance_id,
            "definition": self.chain_id,
            "chainStage": self.chain_stage,
            "stageDay": self.stage_day,
            "season": self.season,
        }

class ChainScheduler:
    def __init__(self, r:np.random.Generator, settings:Optional[types.SimpleNamespace]=None, chains:Optional[Iterable[ChainDefinition]]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.r = r
        self.settings = settings or config.Settings.time

        self.chains:dict[str, ChainDefinition] = {}
        if chains is None:
            self.chains.update(builtin_chains())
        else:
            self.chains.update((c.chain_id, c) for c in chains)

        self.instances:dict[str, ChainInstance] = {}

        self.current_day = 1
        self.season = self.season_for(self.current_day)
        self.game_year = self.year_for(self.current_day)

    def season_for(self, day:int) -> str:
        seasons = self.settings.seasons
        return seasons[((day - 1) // self.settings.season_length) % len(seasons)]

    def year_for(self, day:int) -> int:
        return (day - 1) // self.settings.year_length + 1

    def register_chain(self, chain_id:str, data:Any, override:bool=False) -> ChainDefinition:
        if chain_id in self.chains and not override:
            raise ValueError(f'chain {chain_id} already registered')
        chain = data if isinstance(data, ChainDefinition) else load_chain(chain_id, data)
        chain.chain_id = chain_id
        self.chains[chain_id] = chain
        self.logger.info(f'registered chain {chain_id}')
        return chain

    def unregister_chain(self, chain_id:str) -> bool:
        if chain_id not in self.chains:
            return False
        in_use = sum(1 for i in self.instances.values() if i.definition == chain_id)
        if in_use > 0:
            raise ValueError(f'cannot unregister chain {chain_id}, {in_use} active instances use it')
        del self.chains[chain_id]
        return True

    def get_chain(self, chain_id:str) -> Optional[ChainDefinition]:
        return self.chains.get(chain_id)

    def get_instance(self, instance_id:str) -> Optional[ChainInstance]:
        return self.instances.get(instance_id)

    def active_chains(self) -> list[ChainInstance]:
        return list(self.instances.values())

    def start_chain(self, chain_id:str, context:Optional[Mapping[str, Any]]=None) -> Optional[ChainInstance]:
        """ starts a new instance of chain_id on the current day

        a first stage with no delay is due right away, collect it with poll.
        returns None if chain_id is unknown. """

        chain = self.chains.get(chain_id)
        if chain is None:
            return None

        instance_id = f'chain_{self.current_day}_{self.r.bytes(4).hex()}'
        instance = ChainInstance(instance_id, chain_id, self.current_day, context)
        first = chain.stages[0]
        if not first.time_gated:
            self._schedule(instance, chain, 0, first.delay or 0)

        self.instances[instance_id] = instance
        self.logger.debug(f'started chain {chain_id} as {instance_id}')
        return instance

    def end_chain(self, instance_id:str) -> bool:
        return self.instances.pop(instance_id, None) is not None

    def _schedule(self, instance:ChainInstance, chain:ChainDefinition, index:int, delay:int) -> None:
        instance.next_event_time = self.current_day + delay
        instance.next_event_template = chain.stages[index].template

    def _due(self, instance:ChainInstance, chain:ChainDefinition) -> bool:
        if instance.stage >= len(chain):
            return False
        stage = chain.stages[instance.stage]
        if instance.stage in instance.completed_stages:
            return False
        if stage.time_gated:
            return self.current_day - instance.start_day >= stage.day
        return instance.next_event_time is not None and instance.next_event_time <= self.current_day

    def _fire(self, instance:ChainInstance, chain:ChainDefinition) -> Trigger:
        index = instance.stage
        stage = chain.stages[index]
        instance.completed_stages.add(index)
        instance.stage = index + 1
        instance.next_event_time = None
        instance.next_event_template = None

        if instance.stage < len(chain):
            upcoming = chain.stages[instance.stage]
            if not upcoming.time_gated:
                if stage.trigger_next is None:
                    self._schedule(instance, chain, instance.stage, upcoming.delay or 0)
                elif stage.trigger_next.automatic:
                    self._schedule(instance, chain, instance.stage, stage.trigger_next.delay)
                # otherwise we wait for a matching choice

        self.logger.debug(f'chain {instance.instance_id} fired stage {index} {stage.template} on day {self.current_day}')
        return Trigger(
            "chain_stage",
            self.current_day,
            template=stage.template,
            instance_id=instance.instance_id,
            chain_id=instance.definition,
            chain_stage=index,
            stage_day=stage.day if stage.time_gated else self.current_day - instance.start_day,
            context=instance.context,
        )

    def _poll_instance(self, instance:ChainInstance) -> list[Trigger]:
        chain = self.chains.get(instance.definition)
        if chain is None:
            self.logger.warning(f'chain instance {instance.instance_id} has unknown definition {instance.definition}')
            return []

        triggers = []
        while self._due(instance, chain):
            triggers.append(self._fire(instance, chain))

        if instance.stage >= len(chain):
            self.logger.debug(f'chain {instance.instance_id} complete')
            del self.instances[instance.instance_id]
        return triggers

    def poll(self, instance_id:Optional[str]=None) -> list[Trigger]:
        """ fires every stage due on the current day, without moving time

        limited to one instance if instance_id is given. triggers come back
        ordered by stage day. """

        if instance_id is not None:
            instances = [self.instances[instance_id]] if instance_id in self.instances else []
        else:
            instances = list(self.instances.values())

        triggers:list[Trigger] = []
        for instance in instances:
            triggers.extend(self._poll_instance(instance))
        triggers.sort(key=lambda t: t.stage_day)
        return triggers

    def advance_chain(self, instance_id:str, consequence:str) -> Optional[list[Trigger]]:
        """ moves a chain along after the player picked a choice

        the chain only advances if consequence matches the choice trigger of
        the stage that fired last, in which case the next stage is scheduled
        after its trigger delay. returns the triggers that fired right away,
        or None if the chain didn't advance. """

        instance = self.instances.get(instance_id)
        if instance is None or instance.stage == 0:
            return None
        chain = self.chains.get(instance.definition)
        if chain is None or instance.stage >= len(chain):
            return None

        trigger_next = chain.stages[instance.stage - 1].trigger_next
        if trigger_next is None or trigger_next.choice is None or trigger_next.choice != consequence:
            return None
        if instance.next_event_time is not None:
            # already scheduled
            return None

        instance.context["lastChoice"] = consequence
        self._schedule(instance, chain, instance.stage, trigger_next.delay)
        return self.poll(instance_id)

    def _seasonal_random(self) -> Optional[Trigger]:
        if not util.chance(self.r, self.settings.seasonal_event_chance):
            return None
        seasonal = getattr(self.settings.seasonal, self.season, None)
        if seasonal is None or len(seasonal.templates) == 0:
            return None
        template = util.choose(self.r, seasonal.templates)
        return Trigger("seasonal_random", self.current_day, template=template, season=self.season)

    def advance_day(self) -> list[Trigger]:
        """ moves time forward one day and returns everything that happened

        that's a season change if there was one, then every chain stage that
        came due in stage day order, then possibly a random seasonal event. """

        self.current_day += 1
        self.game_year = self.year_for(self.current_day)

        triggers:list[Trigger] = []
        season = self.season_for(self.current_day)
        if season != self.season:
            self.season = season
            triggers.append(Trigger("seasonal_change", self.current_day, season=season))

        triggers.extend(self.poll())

        seasonal = self._seasonal_random()
        if seasonal is not None:
            triggers.append(seasonal)
        return triggers

    def advance_time(self, days:int=1) -> list[Trigger]:
        triggers = []
        for _ in range(days):
            triggers.extend(self.advance_day())
        return triggers

    def seasonal_modifiers(self, season:Optional[str]=None) -> dict[str, float]:
        seasonal = getattr(self.settings.seasonal, season or self.season, None)
        if seasonal is None:
            return {}
        return dict(vars(seasonal.modifiers))

    def to_json(self) -> dict[str, Any]:
        return {
            "timeSystem": {
                "currentDay": self.current_day,
                "currentSeason": self.season,
                "gameYear": self.game_year,
            },
            "activeChains": [i.to_json() for i in self.instances.values()],
        }

    def load_json(self, data:Mapping[str, Any]) -> None:
        """ restores time and chain instances from a to_json snapshot """
        time_data = data.get("timeSystem", {})
        self.current_day = time_data.get("currentDay", 1)
        self.season = time_data.get("currentSeason", self.season_for(self.current_day))
        self.game_year = time_data.get("gameYear", self.year_for(self.current_day))

        self.instances = {}
        for instance_data in data.get("activeChains", []):
            instance = ChainInstance.from_json(instance_data)
            self.instances[instance.instance_id] = instance

""" Procedural RPG event generation

Generates "content events" for turn based games: a title, a narrative and a
handful of choices, each with numeric effects on the player. Events come from
a library of templates dressed up with text from a word level markov model,
weighted and tuned to the player's situation.

The pipeline for one event goes like this:

The caller passes in a context describing the player: age, wealth, influence,
reputation, career, skills, relationships and so on. The ContextAnalyzer fills
in defaults and derives scores like power level and social standing, which
put the player into a difficulty tier.

The WeightedSelector weighs every eligible template by how well it fits the
context (a merchant sees more market crashes, a noble more court scandals, the
old more ghosts) and by how its challenge rating compares to the player's
power, then samples one.

The TemplateComposer flattens that template: inheritance from parent
templates, mixins, conditional composition, choices that only show up under
some conditions and fields whose text depends on the context.

The EffectResolver turns effect ranges like gold = [10, 50] into numbers,
scaled by context (the rich get richer) and by difficulty tier (rewards shrink
and penalties grow as the player gets more powerful).

Flavor text goes on top: a dramatic title modifier, a generated lead-in,
lines reacting to the player's career, age and season.

Finally the RuleInterpreter applies any registered rules. A rule is a list of
conditions and a table of effects, e.g. "when gold is over 1000 tag the event
wealthy and double all gold effects".

Alongside the pipeline:

The DependencyGraphEvaluator keeps events from coming up before their
prerequisites are met (another event completed, a stat high enough, an item in
hand).

The RelationshipNetwork tracks how NPCs feel about each other and the player.

The ChainScheduler runs multi-stage storylines that advance as game days pass
or as the player makes particular choices.

All randomness flows through one numpy Generator so a fixed seed gives the
same events every time.
"""

from .engine import Event, EventAssembler
from .templates import (
    Template, Choice, TemplateStore, MemoryTemplateStore, TemplateComposer,
    TemplateError, TemplateCycleError, TemplateNotFoundError,
)
from .rules import Rule, RuleInterpreter
from .context import AnalyzedContext, ContextAnalyzer
from .dependencies import DependencyGraphEvaluator
from .relationships import RelationshipNetwork
from .chains import ChainScheduler

import logging

import pytest
import numpy as np

from eventforge import engine, templates
from eventforge.context import ContextAnalyzer
from eventforge.generate.markov import TextSynthesizer
from eventforge.rules.interpreter import RuleInterpreter
from . import KNIGHT_CORPUS, TAVERN_CORPUS

# some logging to turn on if we like
#logging.getLogger("eventforge.templates").level = logging.DEBUG
#logging.getLogger("eventforge.chains").level = logging.DEBUG

@pytest.fixture
def r() -> np.random.Generator:
    return np.random.default_rng(0)

@pytest.fixture
def synth() -> TextSynthesizer:
    s = TextSynthesizer(state_size=2)
    s.ingest(KNIGHT_CORPUS + TAVERN_CORPUS)
    return s

@pytest.fixture
def interpreter(r:np.random.Generator) -> RuleInterpreter:
    return RuleInterpreter(r)

@pytest.fixture
def analyzer() -> ContextAnalyzer:
    return ContextAnalyzer()

@pytest.fixture
def store() -> templates.MemoryTemplateStore:
    return templates.MemoryTemplateStore()

@pytest.fixture
def composer(store:templates.MemoryTemplateStore, interpreter:RuleInterpreter) -> templates.TemplateComposer:
    return templates.TemplateComposer(store, interpreter)

@pytest.fixture
def assembler() -> engine.EventAssembler:
    return engine.EventAssembler(seed=0, training_data=TAVERN_CORPUS)

""" Word level markov text synthesis

Trains on a corpus of sentences and random walks the resulting transition
table to produce new text within a length window. """

import collections
import logging
import types
from collections.abc import MutableMapping, Sequence, Iterable, Iterator
from typing import Optional, Union

import numpy.typing as npt
import numpy as np

from eventforge import config, util

Window = tuple[str, ...]

class TextSynthesizer:
    def __init__(self, state_size:Optional[int]=None, settings:Optional[types.SimpleNamespace]=None) -> None:
        self.logger = logging.getLogger(util.fullname(self))
        self.settings = settings or config.Settings.synth
        self.state_size:int = state_size if state_size is not None else self.settings.state_size
        if self.state_size < 1:
            raise ValueError(f'state_size must be at least 1, got {self.state_size}')

        self._corpus:list[str] = []

        # lower cased window -> surface token -> count
        self._counts:MutableMapping[Window, MutableMapping[str, int]] = {}
        # lower cased window -> (successor tokens, probabilities)
        self._probabilities:MutableMapping[Window, tuple[Sequence[str], npt.NDArray[np.float64]]] = {}
        # lower cased window -> tokens as first seen in the corpus
        self._surface:MutableMapping[Window, Window] = {}
        # windows in insertion order so seeds are reproducible
        self._windows:list[Window] = []
        # lower cased first token -> windows starting with it
        self._by_first:MutableMapping[str, list[Window]] = collections.defaultdict(list)

    @property
    def corpus(self) -> Sequence[str]:
        return self._corpus

    def __len__(self) -> int:
        return len(self._corpus)

    def clear(self) -> None:
        self._corpus = []
        self._rebuild()

    def ingest(self, sentences:Iterable[str]) -> None:
        """ replaces the corpus with sentences and rebuilds the table """
        self._corpus = [s for s in sentences if s and s.strip()]
        self._rebuild()

    def add(self, sentences:Iterable[str]) -> None:
        """ appends sentences to the corpus and rebuilds the table """
        self._corpus.extend(s for s in sentences if s and s.strip())
        self._rebuild()

    def tokenize(self, sentence:str) -> Iterator[str]:
        """ tokenizes the sentence.

        in this case we're just splitting on whitespace. """
        for token in sentence.split():
            yield token

    def _key(self, tokens:Iterable[str]) -> Window:
        return tuple(t.lower() for t in tokens)

    def _process_example(self, example:str) -> None:
        tokens = list(self.tokenize(example))
        for i in range(len(tokens) - self.state_size + 1):
            surface = tuple(tokens[i:i+self.state_size])
            window = self._key(surface)
            if window not in self._counts:
                self._counts[window] = collections.defaultdict(int)
                self._surface[window] = surface
                self._windows.append(window)
                self._by_first[window[0]].append(window)

            # the final window of a sentence has no successor, but we keep it
            # around as a seed and as a dead end
            if i + self.state_size < len(tokens):
                self._counts[window][tokens[i+self.state_size]] += 1

    def _build_probabilities(self, counts:MutableMapping[str, int]) -> tuple[Sequence[str], npt.NDArray[np.float64]]:
        if len(counts) == 0:
            return ([], np.array([]))
        probabilities = np.array(list(counts.values()), dtype=np.float64)
        return (list(counts.keys()), probabilities / probabilities.sum())

    def _rebuild(self) -> None:
        self._counts = {}
        self._probabilities = {}
        self._surface = {}
        self._windows = []
        self._by_first = collections.defaultdict(list)

        for example in self._corpus:
            self._process_example(example)

        for window, counts in self._counts.items():
            self._probabilities[window] = self._build_probabilities(counts)

        self.logger.debug(f'built transition table with {len(self._windows)} windows from {len(self._corpus)} sentences')

    def transitions(self, window:Union[str, Sequence[str]]) -> dict[str, int]:
        """ successor counts for a window, e.g. "the knight"

        the window is case normalized, unknown windows have no successors. """
        if isinstance(window, str):
            key = self._key(window.split())
        else:
            key = self._key(window)
        return dict(self._counts.get(key, {}))

    def stats(self) -> dict[str, float]:
        total = sum(sum(c.values()) for c in self._counts.values())
        return {
            "state_count": len(self._windows),
            "total_transitions": total,
            "average_transitions": total / len(self._windows) if self._windows else 0.,
        }

    def postprocess(self, text:str) -> str:
        if not text:
            return text
        text = text[0].upper() + text[1:]
        if not text.endswith((".", "!", "?")):
            text += "."
        return text

    def _attempt(self, r:np.random.Generator, min_length:int, max_length:int) -> Optional[str]:
        window = util.choose(r, self._windows)
        words = list(self._surface[window])

        for _ in range(self.settings.max_steps):
            token_ids, probabilities = self._probabilities[window]
            if len(token_ids) == 0:
                # dead end, try to pick up from a window that starts where we
                # left off
                similar = self._by_first.get(words[-1].lower())
                if not similar:
                    break
                window = util.choose(r, similar)
                addition = list(self._surface[window][1:])
            else:
                addition = [token_ids[int(r.choice(len(token_ids), p=probabilities))]]

            if len(" ".join(words + addition)) > max_length:
                break
            words.extend(addition)
            window = self._key(words[-self.state_size:])

        text = self.postprocess(" ".join(words))
        if min_length <= len(text) <= max_length:
            return text
        return None

    def fallback(self, r:np.random.Generator) -> str:
        """ stitches together 2-3 distinct corpus sentences """
        if len(self._corpus) == 0:
            return self.settings.empty_text
        count = min(2 + int(r.integers(2)), len(self._corpus))
        picks = r.choice(len(self._corpus), size=count, replace=False)
        combined = ". ".join(self._corpus[int(i)] for i in picks)
        if not combined.endswith("."):
            combined += "."
        return combined

    def generate(self, r:np.random.Generator, min_length:Optional[int]=None, max_length:Optional[int]=None, max_tries:Optional[int]=None) -> str:
        """ generates one piece of text between min_length and max_length
        characters long

        falls back to stitching corpus sentences together if we can't make
        something within max_tries random walks. never returns an empty
        string. """

        if min_length is None:
            min_length = self.settings.min_length
        if max_length is None:
            max_length = self.settings.max_length
        if max_tries is None:
            max_tries = self.settings.max_tries

        if len(self._windows) == 0:
            return self.fallback(r)

        for _ in range(max_tries):
            text = self._attempt(r, min_length, max_length)
            if text is not None:
                return text

        self.logger.debug(f'no walk within [{min_length}, {max_length}] after {max_tries} tries, falling back')
        return self.fallback(r)

    def is_interesting(self, text:str) -> bool:
        """ at least five words and mostly not repeating itself """
        words = text.split()
        if len(words) < 5:
            return False
        return len(set(w.lower() for w in words)) / len(words) > 0.6

    def is_corpus_line(self, text:str) -> bool:
        """ true if text is (nearly) verbatim one of the training sentences """
        stripped = text.rstrip(".!?").lower()
        return any(stripped == s.rstrip(".!?").lower() for s in self._corpus)

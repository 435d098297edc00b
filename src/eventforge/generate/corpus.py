""" Built-in training corpora for text synthesis. """

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Optional

import numpy as np

from eventforge import config

logger = logging.getLogger(__name__)

DEFAULT_THEME = "fantasy"

_corpus_data:Optional[Mapping[str, Any]] = None

def corpus_data() -> Mapping[str, Any]:
    global _corpus_data
    if _corpus_data is None:
        _corpus_data = config.load_data("corpus.toml")
    return _corpus_data

def themes() -> list[str]:
    return list(corpus_data()["themes"].keys())

def cultures(theme:str) -> list[str]:
    return list(corpus_data().get("cultures", {}).get(theme, {}).keys())

def theme_corpus(r:np.random.Generator, theme:Optional[str]=None, culture:Optional[str]=None, blend:Optional[float]=None) -> list[str]:
    """ training sentences for a theme, optionally blended with a culture

    Parameters
    ----------
    r : np.random.Generator
        used to shuffle a blended corpus
    theme : str
        one of themes(), unknown themes fall back to fantasy
    culture : str
        one of cultures(theme), unknown cultures are ignored
    blend : float
        share of the theme corpus kept when blending. the rest of the corpus
        comes from the culture at 1-blend of its size

    Returns
    -------
    out : list of str
        the corpus, shuffled if blended
    """

    data = corpus_data()
    if theme is None:
        theme = config.Settings.corpus.theme
    if blend is None:
        blend = config.Settings.corpus.culture_blend

    if theme not in data["themes"]:
        logger.warning(f'unknown theme {theme}, using {DEFAULT_THEME}')
        theme = DEFAULT_THEME
    base:Sequence[str] = data["themes"][theme]

    theme_cultures = data.get("cultures", {}).get(theme, {})
    if not culture or culture not in theme_cultures:
        if culture:
            logger.warning(f'unknown culture {culture} for theme {theme}, ignoring')
        return list(base)

    cultural:Sequence[str] = theme_cultures[culture]
    blended = list(base[:int(len(base) * blend)]) + list(cultural[:int(len(cultural) * (1 - blend))])
    r.shuffle(blended)
    return blended

import toml # type: ignore
import importlib.resources
import types
from typing import Dict, Optional, Any, List, TextIO

DATA_PACKAGE = "eventforge.data"

def merge(a:Dict[str, Any], b:Dict[str, Any], path:Optional[List[str]]=None) -> Dict[str, Any]:
    """ recursively merges b into a

    b[key] overrides a[key] if key present in both. raises an exception if
    b[key] and a[key] are not of the same type. ints and floats are
    considered the same type since toml distinguishes 1 and 1.0.

    inspired by https://stackoverflow.com/a/51653724/553580
    """

    if path is None: path = []
    for key in b:
        if key in a:
            if isinstance(a[key], dict) and isinstance(b[key], dict):
                merge(a[key], b[key], path + [str(key)])
            elif a[key].__class__ == b[key].__class__:
                a[key] = b[key]
            elif isinstance(a[key], (int, float)) and isinstance(b[key], (int, float)) and not isinstance(b[key], bool):
                a[key] = b[key]
            else:
                raise ValueError('Conflict at %s' % '.'.join(path + [str(key)]))
        else:
            a[key] = b[key]
    return a

def dict_to_simplenamespace(d:Dict[str, Any]) -> types.SimpleNamespace:
    """ Converts a dict recursively to a SimpleNamespace. """
    d = d.copy()
    for key in d:
        if isinstance(d[key], dict):
            d[key] = dict_to_simplenamespace(d[key])

    return types.SimpleNamespace(**d)

def read_data(name:str) -> str:
    return importlib.resources.files(DATA_PACKAGE).joinpath(name).read_text()

def load_data(name:str) -> Dict[str, Any]:
    """ loads one of the toml data files shipped with eventforge

    e.g. "templates.toml", "corpus.toml", "chains.toml" """
    return toml.loads(read_data(name))

def load_config_dict(config_file:Optional[TextIO]=None) -> Dict[str, Any]:
    config = load_data("config.toml")
    if config_file:
        override = toml.load(config_file)
        merge(config, override)
    return config

def load_config(config_file:Optional[TextIO]=None) -> types.SimpleNamespace:
    config = load_config_dict(config_file)

    global Settings, Raw
    Raw = config
    Settings = dict_to_simplenamespace(config)

    return Settings

# it's ok to reload the config with a file elsewhere, but we start with the
# built-in config. components take settings explicitly and only fall back to
# these when none are given.
Raw:Dict[str, Any] = {}
Settings = load_config()

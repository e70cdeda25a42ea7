import toml # type: ignore
import importlib.resources
import types
from typing import Dict, Optional, Any, List, TextIO

def merge(a:Dict[str, Any], b:Dict[str, Any], path:Optional[List[str]]=None) -> Dict[str, Any]:
    """ recursively merges b into a

    b[key] overrides a[key] if key present in both. raises an exception if
    b[key] and a[key] are not of the same type.

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
                # toml distinguishes 1 and 1.0, overrides shouldn't have to
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

def _read_data(name:str) -> Dict[str, Any]:
    return toml.loads(importlib.resources.files("luxstory.data").joinpath(name).read_text(encoding="utf-8"))

def load_config(config_file:Optional[TextIO]=None) -> types.SimpleNamespace:
    config = _read_data("config.toml")
    if config_file:
        override = toml.load(config_file)
        merge(config, override)

    global Settings
    Settings = dict_to_simplenamespace(config)

    return Settings

def load_content(characters_file:Optional[TextIO]=None, dialogs_file:Optional[TextIO]=None) -> None:
    """ Loads authored character tables and dialog graphs.

    Content stays as plain dicts (keyed by character id and dialog id
    respectively), they get compiled by the modules that consume them. Files
    passed in replace the built-in content entirely. """

    global Characters, Dialogs
    Characters = toml.load(characters_file) if characters_file else _read_data("characters.toml")
    Dialogs = toml.load(dialogs_file) if dialogs_file else _read_data("dialogs.toml")

# it's ok to reload the config with a file elsewhere, but we start with the
# built-in config
Settings = load_config()
Characters:Dict[str, Any] = {}
Dialogs:Dict[str, Any] = {}
load_content()

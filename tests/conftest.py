import logging
from typing import Generator

import pytest

from luxstory import config, dialog, navigator, state as st
from . import make_state

# some logging to turn on if we like
#logging.getLogger("luxstory.simulator").level = logging.DEBUG
#logging.getLogger("luxstory.navigator").level = logging.DEBUG

@pytest.fixture(autouse=True)
def settings() -> Generator[None, None, None]:
    # tests may tweak settings, put the built-in ones back afterward
    yield
    config.load_config()
    config.load_content()

@pytest.fixture
def registry() -> dialog.GraphRegistry:
    return dialog.load_registry()

@pytest.fixture
def nav(registry:dialog.GraphRegistry) -> navigator.Navigator:
    return navigator.Navigator(registry)

@pytest.fixture
def player_state() -> st.PlayerState:
    return make_state()

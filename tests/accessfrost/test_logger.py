import logging

import pytest

from accessfrost.logger import GLOBAL_LOGGER, set_verbosity


@pytest.fixture(autouse=True)
def restore_level():
    level = GLOBAL_LOGGER.level
    yield
    GLOBAL_LOGGER.setLevel(level)


@pytest.mark.parametrize(
    "verbose,level",
    [(0, logging.WARNING), (1, logging.INFO), (2, logging.DEBUG), (3, logging.DEBUG)],
)
def test_set_verbosity(verbose, level):
    set_verbosity(verbose)

    assert GLOBAL_LOGGER.level == level

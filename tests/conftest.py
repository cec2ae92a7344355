import logging
from colorama import init, Fore, Style

init()

logging.basicConfig(level=logging.INFO)

pytest_plugins = ["fixtures.fs", "fixtures.cli", "fixtures.repository"]


def _doc(obj):
    doc = getattr(obj, "__doc__", None)
    return " ".join(doc.split()) + " " if doc else ""


def pytest_itemcollected(item):
    """
    Prefix the node id of a test with the docstrings of its class and of the
    test itself, so the reports read like a description of the behavior.
    """
    description = _doc(item.parent.obj) + _doc(item.obj)
    if description:
        item._nodeid = (
            Fore.YELLOW + description + "\n" + Style.RESET_ALL + item._nodeid
        )

from .cli import cli
from . import sync  # noqa: F401


def main():
    cli(obj={})

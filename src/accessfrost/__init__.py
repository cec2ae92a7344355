__version__ = "0.1.0"

from accessfrost.error import SpecLoadingError  # noqa: F401

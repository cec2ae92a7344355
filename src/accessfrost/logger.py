import logging

import coloredlogs

logger = logging.getLogger("accessfrost")
logger_style = "%(asctime)s: [%(levelname)-8s] [%(module)s] %(message)s"
coloredlogs.install(level="DEBUG", logger=logger, fmt=logger_style)

GLOBAL_LOGGER = logger


def set_verbosity(verbose: int) -> None:
    """WARNING by default, INFO for -v and DEBUG for -vv or more"""
    if verbose >= 2:
        logger.setLevel(logging.DEBUG)
    elif verbose == 1:
        logger.setLevel(logging.INFO)
    else:
        logger.setLevel(logging.WARNING)

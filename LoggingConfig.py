"""
Logging Configuration
Sets up the logger used by the screening modules.
"""
import logging
import sys
from typing import List, Optional

# Handlers added by setup_logging; handlers installed by host tools are left alone
_installed_handlers: List[logging.Handler] = []


def setup_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Configures the root logger; every screening module logs under its module name.

    Calling it again replaces (and closes) the handlers of the previous call.

    Args:
        level: Logging level (e.g. logging.DEBUG, logging.INFO)
        log_file: Optional path to append logs to.
    """
    logger = logging.getLogger()
    logger.setLevel(level)

    while _installed_handlers:
        handler = _installed_handlers.pop()
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    _installed_handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        _installed_handlers.append(file_handler)

    for handler in _installed_handlers:
        logger.addHandler(handler)

    logger.info("Logging initialized.")

# Configuration settings should be set in app.config,
# the RESOURCEPY class attributes hold the defaults
import os
import logging
from flask import current_app
from functools import lru_cache
import resourcepy
from typing import Any


@lru_cache(maxsize=128)
def get_config(option: str) -> Any:
    """Retrieve a configuration parameter from the app
    :param option: configuration parameter
    :return: configuration value
    """
    try:
        result = current_app.config[option]
    except (KeyError, RuntimeError):
        # no app context or the option isn't configured in the app
        result = getattr(resourcepy.RESOURCEPY, option, os.environ.get(option, None))
    return result


def is_debug() -> bool:
    return resourcepy.log.getEffectiveLevel() < logging.INFO

import logging
import os
from typing import Optional, Union

from shapewire import constants
from shapewire.constants import FALSE_STRINGS, LOG_LEVELS, TRACE_LOG_LEVELS, TRUE_STRINGS


def eval_log_type(env_var_name: str) -> Union[str, bool]:
    """Get the log type from environment variable"""
    log_type = os.environ.get(env_var_name, "").lower().strip()
    return log_type if log_type in LOG_LEVELS else False


def parse_boolean_env(env_var_name: str) -> Optional[bool]:
    """Parse the value of the given env variable and return True/False, or None if it is not a boolean value."""
    value = os.environ.get(env_var_name, "").lower().strip()
    if value in TRUE_STRINGS:
        return True
    if value in FALSE_STRINGS:
        return False
    return None


def is_env_true(env_var_name: str) -> bool:
    """Whether the given environment variable has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() in TRUE_STRINGS


def is_env_not_false(env_var_name: str) -> bool:
    """Whether the given environment variable is empty or has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() not in FALSE_STRINGS


# whether to enable verbose debug logging
SHAPEWIRE_LOG = eval_log_type("SHAPEWIRE_LOG")
DEBUG = is_env_true("DEBUG") or SHAPEWIRE_LOG in TRACE_LOG_LEVELS

# default encoding used to convert strings to byte arrays
DEFAULT_ENCODING = constants.DEFAULT_ENCODING

# path to the JSON file with patches which are applied to the botocore specs when they are loaded
SPEC_PATCHES_FILE = os.environ.get("SHAPEWIRE_SPEC_PATCHES", "").strip() or os.path.join(
    constants.MODULE_MAIN_PATH, constants.SPEC_PATCHES_FILE_NAME
)


def is_trace_logging_enabled():
    if SHAPEWIRE_LOG:
        log_level = str(SHAPEWIRE_LOG).upper()
        return log_level.lower() in TRACE_LOG_LEVELS
    return False


# set log levels immediately, but will be overwritten later by setup_logging
if DEBUG:
    logging.getLogger("").setLevel(logging.DEBUG)
    logging.getLogger("shapewire").setLevel(logging.DEBUG)

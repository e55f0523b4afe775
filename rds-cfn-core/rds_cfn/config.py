import logging
import os
from dataclasses import dataclass, field
from typing import Union

from rds_cfn.constants import FALSE_STRINGS, LOG_LEVELS, TRACE_LOG_LEVELS, TRUE_STRINGS
from rds_cfn.utils.backoff import ConstantBackoff

LOG = logging.getLogger(__name__)


def eval_log_type(env_var_name: str) -> Union[str, bool]:
    """Get the log type from environment variable"""
    log_type = os.environ.get(env_var_name, "").lower().strip()
    return log_type if log_type in LOG_LEVELS else False


def is_env_true(env_var_name: str) -> bool:
    """Whether the given environment variable has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() in TRUE_STRINGS


def is_env_not_false(env_var_name: str) -> bool:
    """Whether the given environment variable is empty or has a truthy value."""
    return os.environ.get(env_var_name, "").lower().strip() not in FALSE_STRINGS


def get_int_env(env_var_name: str, default: int) -> int:
    value = os.environ.get(env_var_name, "").strip()
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        LOG.warning("Ignoring non-numeric value %r for %s", value, env_var_name)
        return default


# whether to enable verbose debug logging
RDS_CFN_LOG = eval_log_type("RDS_CFN_LOG")
DEBUG = is_env_true("DEBUG") or RDS_CFN_LOG in TRACE_LOG_LEVELS

# whether to log full tracebacks for errors raised by the RDS API
VERBOSE_ERRORS = is_env_true("VERBOSE_ERRORS")

# delay (in seconds) requested from CloudFormation when an operation is retried or handed over
CALLBACK_DELAY_SECONDS = get_int_env("CALLBACK_DELAY_SECONDS", 6)

# interval (in seconds) between two stabilization polls
STABILIZATION_DELAY_SECONDS = get_int_env("STABILIZATION_DELAY_SECONDS", 30)

# huge database resyncs can take a very long time
CREATE_UPDATE_TIMEOUT_SECONDS = get_int_env("CREATE_UPDATE_TIMEOUT_SECONDS", 8 * 60 * 60)

# deleting shouldn't take too long
DELETE_TIMEOUT_SECONDS = get_int_env("DELETE_TIMEOUT_SECONDS", 30 * 60)

# whether create handlers first look up an existing resource before creating it
PROBING_ENABLED = is_env_not_false("PROBING_ENABLED")

# ceiling for the number of handler invocations when driving a provider locally
MAX_HANDLER_INVOCATIONS = get_int_env("MAX_HANDLER_INVOCATIONS", 1000)

# maximum attempts of the boto retry handler for RDS calls
BOTO_MAX_ATTEMPTS = get_int_env("BOTO_MAX_ATTEMPTS", 4)


def is_trace_logging_enabled():
    if RDS_CFN_LOG:
        log_level = str(RDS_CFN_LOG).upper()
        return log_level.lower() in TRACE_LOG_LEVELS
    return False


@dataclass
class HandlerConfig:
    """
    Per-handler knobs. Defaults come from the environment, tests construct their own instances to
    avoid waiting for real stabilization intervals.
    """

    probing_enabled: bool = PROBING_ENABLED
    callback_delay: int = CALLBACK_DELAY_SECONDS
    create_update_delay: ConstantBackoff = field(
        default_factory=lambda: ConstantBackoff(
            delay=STABILIZATION_DELAY_SECONDS, timeout=CREATE_UPDATE_TIMEOUT_SECONDS
        )
    )
    delete_delay: ConstantBackoff = field(
        default_factory=lambda: ConstantBackoff(
            delay=STABILIZATION_DELAY_SECONDS, timeout=DELETE_TIMEOUT_SECONDS
        )
    )

import logging
import sys
import warnings

from rds_cfn import config

from .format import AddFormattedAttributes, DefaultFormatter

# The log levels for modules are evaluated incrementally for logging granularity,
# from highest (DEBUG) to lowest (TRACE). Hence, each module below should have
# higher level which serves as the default.

default_log_levels = {
    "boto3": logging.INFO,
    "botocore": logging.ERROR,
    "urllib3": logging.WARNING,
    "plux": logging.WARNING,
    "rds_cfn.services.cloudformation.progress": logging.INFO,
}

trace_log_levels = {
    "botocore": logging.DEBUG,
    "rds_cfn.services.cloudformation.progress": logging.DEBUG,
}


def get_log_level_from_config():
    # overriding the log level if RDS_CFN_LOG has been set
    if config.RDS_CFN_LOG:
        log_level = str(config.RDS_CFN_LOG).upper()
        if log_level.lower() in config.TRACE_LOG_LEVELS:
            log_level = "DEBUG"
        log_level = logging.getLevelName(log_level)
        return log_level

    return logging.DEBUG if config.DEBUG else logging.INFO


def setup_logging_from_config():
    log_level = get_log_level_from_config()
    setup_logging(log_level)

    if config.is_trace_logging_enabled():
        for name, level in trace_log_levels.items():
            logging.getLogger(name).setLevel(level)


def create_default_handler(log_level: int):
    log_handler = logging.StreamHandler(stream=sys.stderr)
    log_handler.setLevel(log_level)
    log_handler.setFormatter(DefaultFormatter())
    log_handler.addFilter(AddFormattedAttributes())
    return log_handler


def setup_logging(log_level=logging.INFO) -> None:
    """
    Configures the python logging environment for the resource handlers.

    :param log_level: the optional log level.
    """
    # create a default handler for the root logger (basically logging.basicConfig but explicit)
    log_handler = create_default_handler(log_level)

    # replace any existing handlers
    logging.basicConfig(level=log_level, handlers=[log_handler], force=True)

    # disable some logs and warnings
    warnings.filterwarnings("ignore")
    logging.captureWarnings(True)

    # set log levels of loggers
    logging.root.setLevel(log_level)
    logging.getLogger("rds_cfn").setLevel(log_level)
    for logger, level in default_log_levels.items():
        logging.getLogger(logger).setLevel(level)

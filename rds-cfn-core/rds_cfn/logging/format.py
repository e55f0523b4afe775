"""Tools for formatting handler logs."""

import logging
from functools import lru_cache

MAX_NAME_LEN = 30

LOG_FORMAT = f"%(asctime)s.%(msecs)03d %(short_level)5s --- %(short_name)-{MAX_NAME_LEN}s : %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

CUSTOM_LEVEL_NAMES = {
    50: "FATAL",
    40: "ERROR",
    30: "WARN",
    20: "INFO",
    10: "DEBUG",
}


class DefaultFormatter(logging.Formatter):
    """
    A formatter that uses ``LOG_FORMAT`` and ``LOG_DATE_FORMAT``.
    """

    def __init__(self, fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT):
        super().__init__(fmt=fmt, datefmt=datefmt)


class AddFormattedAttributes(logging.Filter):
    """
    Filter that adds two attributes to a log record:

    - short_level: the abbreviated loglevel that's max 5 characters long
    - short_name: the abbreviated name of the logger (e.g., `r.s.rds.tagging`), trimmed to ``MAX_NAME_LEN``
    """

    max_name_len: int

    def __init__(self, max_name_len: int = None):
        super().__init__()
        self.max_name_len = max_name_len if max_name_len else MAX_NAME_LEN

    def filter(self, record):
        record.short_level = CUSTOM_LEVEL_NAMES.get(record.levelno, record.levelname)
        record.short_name = self._get_compressed_logger_name(record.name)
        return True

    @lru_cache(maxsize=256)
    def _get_compressed_logger_name(self, name):
        return compress_logger_name(name, self.max_name_len)


def compress_logger_name(name: str, length: int) -> str:
    """
    Creates a short version of a logger name. For example ``rds_cfn.services.rds.tagging`` with
    length=20 turns into ``r.s.rds.tagging``.

    :param name: the logger name
    :param length: the max length of the logger name
    :return: the compressed name
    """
    if len(name) <= length:
        return name

    parts = name.split(".")
    parts.reverse()

    new_parts = []

    # all parts start out collapsed to their first letter, x.x.x is 2n - 1 characters
    cur_length = (len(parts) * 2) - 1

    for i, part in enumerate(parts):
        next_len = cur_length + (len(part) - 1)

        if next_len > length:
            # the remaining parts only keep their first letter
            new_parts += [p[0] for p in parts[i:]]

            # the last segment of the name is never dropped entirely
            if i == 0:
                remaining = length - cur_length
                if remaining > 0:
                    new_parts[0] = part[: (remaining + 1)]

            break

        new_parts.append(part)
        cur_length = next_len

    new_parts.reverse()
    return ".".join(new_parts)

"""Tools for formatting shapewire logs."""
import logging
from functools import lru_cache

MAX_THREAD_NAME_LEN = 12
MAX_NAME_LEN = 26

LOG_FORMAT = f"%(asctime)s.%(msecs)03d %(sw_level)5s --- [%(sw_thread){MAX_THREAD_NAME_LEN}s] %(sw_name)-{MAX_NAME_LEN}s : %(message)s"
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
        super(DefaultFormatter, self).__init__(fmt=fmt, datefmt=datefmt)


class AddFormattedAttributes(logging.Filter):
    """
    Filter that adds three attributes to a log record:

    - sw_level: the abbreviated loglevel that's max 5 characters long
    - sw_name: the abbreviated name of the logger (e.g., `s.protocol.unmarshaller`), trimmed to ``MAX_NAME_LEN``
    - sw_thread: the abbreviated thread name (prefix trimmed, .e.g, ``omeThread-108``)
    """

    max_name_len: int
    max_thread_len: int

    def __init__(self, max_name_len: int = None, max_thread_len: int = None):
        super(AddFormattedAttributes, self).__init__()
        self.max_name_len = max_name_len if max_name_len else MAX_NAME_LEN
        self.max_thread_len = max_thread_len if max_thread_len else MAX_THREAD_NAME_LEN

    def filter(self, record):
        record.sw_level = CUSTOM_LEVEL_NAMES.get(record.levelno, record.levelname)
        record.sw_name = self._get_compressed_logger_name(record.name)
        record.sw_thread = record.threadName[-self.max_thread_len :]
        return True

    @lru_cache(maxsize=256)
    def _get_compressed_logger_name(self, name):
        return compress_logger_name(name, self.max_name_len)


def compress_logger_name(name: str, length: int) -> str:
    """
    Creates a short version of a logger name. For example ``shapewire.protocol.unmarshaller`` with length=20 turns
    into ``s.p.unmarshaller``. Parts are expanded from the right as long as the result fits into ``length``.

    :param name: the logger name
    :param length: the max length of the logger name
    :return: the compressed name
    """
    if len(name) <= length:
        return name

    parts = list(reversed(name.split(".")))

    # all parts collapsed to a single character, joined by dots: x.x.x
    current_length = len(parts) * 2 - 1
    compressed = []

    for index, part in enumerate(parts):
        expanded_length = current_length + len(part) - 1
        if expanded_length > length:
            compressed.extend(p[0] for p in parts[index:])
            if index == 0:
                # not even the last part fits, show as much of it as the length allows
                remaining = length - current_length
                if remaining > 0:
                    compressed[0] = part[: remaining + 1]
            break
        compressed.append(part)
        current_length = expanded_length

    return ".".join(reversed(compressed))

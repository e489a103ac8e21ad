import logging
import sys

from wsengine.utils import human

LogLevels = [
    "error",
    "warn",
    "info",
    "debug",
]


class WsFormatter(logging.Formatter):
    """
    Formats records as `[time] message`, or `[time][peer] message` if the record
    was logged with a `client` address in its `extra` dict.
    """

    with_client = "[%s][%s] %s"
    without_client = "[%s] %s"

    default_time_format = "%H:%M:%S"
    default_msec_format = "%s.%03d"

    def format(self, record: logging.LogRecord) -> str:
        time = self.formatTime(record)
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        if client := getattr(record, "client", None):
            client = human.format_address(client)
            return self.with_client % (time, client, message)
        else:
            return self.without_client % (time, message)


def setup_logging(level: str = "info") -> logging.Handler:
    """
    Send wsengine's log output to stderr. Returns the installed handler.
    """
    if level not in LogLevels:
        raise ValueError(f"Invalid log level: {level!r}")
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(WsFormatter())
    logger = logging.getLogger("wsengine")
    logger.addHandler(handler)
    logger.setLevel(logging.WARNING if level == "warn" else level.upper())
    return handler

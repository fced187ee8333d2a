"""JSON logging for the issuance scripts.

Log lines go to stderr. Secrets never pass through this logger; they go
through a SecretSink instead.
"""

import logging
import os

from pythonjsonlogger import jsonlogger

LOGGER_NAME = "piv_ca"

# Issuance context fields are kept so a run can be followed by CN
LOG_FIELDS = frozenset(
    {
        "timestamp",
        "level",
        "message",
        "exc_info",
        "funcName",
        "lineno",
        "commonName",
        "profile",
    }
)


class IssuanceJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per line, restricted to LOG_FIELDS."""

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)

        if "levelname" in log_record:
            log_record["level"] = log_record.pop("levelname")

        for key in [key for key in log_record if key not in LOG_FIELDS]:
            log_record.pop(key)


def _setup_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)

    if logger.handlers:
        return logger

    handler = logging.StreamHandler()
    handler.setFormatter(
        IssuanceJsonFormatter(
            fmt="%(timestamp)s %(levelname)s %(funcName)s %(lineno)d %(message)s",
            timestamp=True,
        )
    )

    logger.setLevel(os.environ.get("LOG_LEVEL", "INFO").upper())
    logger.addHandler(handler)
    logger.propagate = False

    return logger


def issuance_logger(common_name: str, profile: str) -> logging.LoggerAdapter:
    """Logger that tags every record with the CN and profile being issued."""
    return logging.LoggerAdapter(LOGGER, {"commonName": common_name, "profile": profile})


LOGGER = _setup_logger()

import logging
import queue
from logging.handlers import QueueHandler, QueueListener
from typing import Optional

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

ROOT_LOGGER_NAME = "assignment_engine"


class StructuredFormatter(logging.Formatter):
    """Appends the ``extra`` fields of a record as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        fields = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if not fields:
            return message
        rendered = " ".join(f"{key}={value!r}" for key, value in sorted(fields.items()))
        return f"{message} | {rendered}"


def configure_logging(
    level: str = "INFO", handler: Optional[logging.Handler] = None
) -> QueueListener:
    """
    Routes the package's log records through a queue so that emitting a log
    line on the assignment path never waits on the real handler.

    The returned listener is already started; stop it on shutdown to flush.
    """
    if handler is None:
        handler = logging.StreamHandler()
    handler.setFormatter(
        StructuredFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )

    log_queue: "queue.SimpleQueue[logging.LogRecord]" = queue.SimpleQueue()
    listener = QueueListener(log_queue, handler, respect_handler_level=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for existing in list(package_logger.handlers):
        if isinstance(existing, QueueHandler):
            package_logger.removeHandler(existing)
    package_logger.addHandler(QueueHandler(log_queue))
    package_logger.setLevel(level.upper())

    listener.start()
    return listener

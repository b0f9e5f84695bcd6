"""Process-wide logging: one queue, a TRACE level and per-thread session ids."""

import logging
import logging.handlers
import queue
import threading
from pathlib import Path
from typing import List, Optional

TRACE_LEVEL_NUM = 5
logging.addLevelName(TRACE_LEVEL_NUM, "TRACE")


def trace(self: logging.Logger, message: str, *args, **kwargs) -> None:
    if self.isEnabledFor(TRACE_LEVEL_NUM):
        self._log(TRACE_LEVEL_NUM, message, args, **kwargs)


logging.Logger.trace = trace  # type: ignore

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s session_id=%(session_id)s: %(message)s"

LOG_QUEUE: "queue.Queue[logging.LogRecord]" = queue.Queue()
QUEUE_LISTENER: Optional[logging.handlers.QueueListener] = None

# Request handling is one thread per request, so the session id is thread-local.
_SESSION_CONTEXT = threading.local()


def set_session_id(session_id: Optional[str]) -> None:
    """Attach a session id to log records emitted from the current thread."""
    _SESSION_CONTEXT.session_id = session_id


def clear_session_id() -> None:
    _SESSION_CONTEXT.session_id = None


def get_session_id() -> Optional[str]:
    return getattr(_SESSION_CONTEXT, "session_id", None)


class SessionIdFilter(logging.Filter):
    """Stamp ``session_id`` on each record (``-`` outside a session)."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "session_id"):
            record.session_id = get_session_id() or "-"
        return True


def _resolve_level(level: str) -> int:
    name = level.upper()
    if name == "TRACE":
        return TRACE_LEVEL_NUM
    return getattr(logging, name, logging.INFO)


def _file_handler(path: str) -> logging.FileHandler:
    target = Path(path).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(target)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    return handler


def configure_logging(
    level: str,
    log_file: Optional[str],
    transcript_log_file: Optional[str] = None,
) -> None:
    """Route the root logger through ``LOG_QUEUE`` to stderr and ``log_file``.

    Transcripts only go to ``transcript_log_file`` and are dropped when it is
    not set.
    """
    global QUEUE_LISTENER

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    sinks: List[logging.Handler] = [console]
    if log_file:
        sinks.append(_file_handler(log_file))

    # The filter runs on the emitting thread, before the record is queued.
    enqueue = logging.handlers.QueueHandler(LOG_QUEUE)
    enqueue.addFilter(SessionIdFilter())
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(_resolve_level(level))
    root.addHandler(enqueue)

    if QUEUE_LISTENER:
        QUEUE_LISTENER.stop()
    QUEUE_LISTENER = logging.handlers.QueueListener(
        LOG_QUEUE, *sinks, respect_handler_level=True
    )
    QUEUE_LISTENER.start()

    _configure_transcript_logger(transcript_log_file)


def _configure_transcript_logger(transcript_log_file: Optional[str]) -> None:
    for handler in list(TRANSCRIPT_LOGGER.handlers):
        handler.close()
        TRANSCRIPT_LOGGER.removeHandler(handler)
    if not transcript_log_file:
        TRANSCRIPT_LOGGER.addHandler(logging.NullHandler())
        return
    handler = _file_handler(transcript_log_file)
    handler.addFilter(SessionIdFilter())
    TRANSCRIPT_LOGGER.addHandler(handler)


LOGGER = logging.getLogger("asr_server")

# Never propagates, so transcripts stay out of the main sinks.
TRANSCRIPT_LOGGER = logging.getLogger("asr_server.transcripts")
TRANSCRIPT_LOGGER.propagate = False
TRANSCRIPT_LOGGER.setLevel(logging.INFO)

__all__ = [
    "LOGGER",
    "LOG_FORMAT",
    "TRACE_LEVEL_NUM",
    "TRANSCRIPT_LOGGER",
    "SessionIdFilter",
    "clear_session_id",
    "configure_logging",
    "get_session_id",
    "set_session_id",
]

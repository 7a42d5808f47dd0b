from __future__ import annotations

import contextvars
import logging
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional, Union

LOGGER_NAME = "escalation_trends"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(run_id)s] %(name)s: %(message)s"

_RUN_ID: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "esc_run_id", default=None
)


class _RunIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.run_id = _RUN_ID.get() or "-"
        return True


def init_logger(
    name: str = LOGGER_NAME, level: Union[int, str] = "INFO"
) -> logging.Logger:
    """Return the batch logger, stamping each line with the active run id."""
    logger = logging.getLogger(name)
    logger.setLevel(_level_value(level))
    if not any(isinstance(f, _RunIdFilter) for f in logger.filters):
        logger.addFilter(_RunIdFilter())
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def current_run_id() -> Optional[str]:
    """Id of the batch being processed, or None outside ``run_context``."""
    return _RUN_ID.get()


@contextmanager
def run_context(run_id: Optional[str] = None) -> Iterator[str]:
    """Mark one batch; reports and log lines written inside carry its id."""
    token = _RUN_ID.set(run_id or uuid.uuid4().hex[:12])
    try:
        yield _RUN_ID.get() or ""
    finally:
        _RUN_ID.reset(token)


def _level_value(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(level.upper())
    return value if isinstance(value, int) else logging.INFO


__all__ = ["LOGGER_NAME", "current_run_id", "init_logger", "run_context"]

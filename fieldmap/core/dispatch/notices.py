"""User-facing notices emitted by the dispatch engine (the host shows them as dialogs/toasts)."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from fieldmap.infra.logging_config import get_logger

logger = get_logger(__name__)


class NoticeLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class Notice:
    title: str
    message: str
    level: NoticeLevel = NoticeLevel.INFO


Notifier = Callable[[Notice], None]

_LOG_LEVELS = {
    NoticeLevel.INFO: logging.INFO,
    NoticeLevel.SUCCESS: logging.INFO,
    NoticeLevel.WARNING: logging.WARNING,
    NoticeLevel.ERROR: logging.WARNING,
}


def log_notifier(notice: Notice) -> None:
    """Default notifier for headless use: notices go to the log."""
    logger.log(_LOG_LEVELS[notice.level], "%s: %s", notice.title, notice.message)

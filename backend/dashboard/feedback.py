"""
User feedback: loading, success, warning and error notices.

A Notifier keeps the visible notices (the dashboard's toasts) and mirrors
every notice to the log. A loading notice is replaced in place by the
success/warning/error that concludes it.
"""
import itertools
import logging
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)

LOADING = "loading"
SUCCESS = "success"
INFO = "info"
WARNING = "warning"
ERROR = "error"

_LOG_LEVELS = {
    LOADING: logging.DEBUG,
    SUCCESS: logging.INFO,
    INFO: logging.INFO,
    WARNING: logging.WARNING,
    ERROR: logging.ERROR,
}


@dataclass
class Notice:
    id: int
    level: str
    message: str
    detail: Optional[str] = None
    dismissible: bool = True


class Notifier:
    def __init__(self, on_change: Optional[Callable[[Notice], None]] = None):
        self.notices: dict = {}
        self.on_change = on_change
        self._ids = itertools.count(1)

    def _post(self, level: str, message: str, detail=None, replace: Optional[int] = None, dismissible=True) -> int:
        notice_id = replace if replace in self.notices else next(self._ids)
        notice = Notice(id=notice_id, level=level, message=message, detail=detail, dismissible=dismissible)
        self.notices[notice_id] = notice
        logger.log(_LOG_LEVELS[level], message, extra={"notice": notice_id, "level": level, "detail": detail})
        if self.on_change is not None:
            self.on_change(notice)
        return notice_id

    def loading(self, message: str) -> int:
        return self._post(LOADING, message, dismissible=False)

    def success(self, message: str, replace: Optional[int] = None) -> int:
        return self._post(SUCCESS, message, replace=replace)

    def info(self, message: str, replace: Optional[int] = None) -> int:
        return self._post(INFO, message, replace=replace)

    def warning(self, message: str, detail: Optional[str] = None, replace: Optional[int] = None) -> int:
        return self._post(WARNING, message, detail=detail, replace=replace)

    def error(self, message: str, detail: Optional[str] = None, replace: Optional[int] = None) -> int:
        return self._post(ERROR, message, detail=detail, replace=replace)

    def dismiss(self, notice_id: int) -> None:
        self.notices.pop(notice_id, None)

    def levels(self) -> list:
        return [notice.level for notice in self.notices.values()]

from __future__ import annotations

import time
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from loguru import logger

MAX_BREADCRUMBS = 100


class ErrorReporter:
    """
    Error-tracking collaborator.

    Breadcrumbs are kept in a bounded trail and attached to every captured
    exception. Captured exceptions are logged with their traceback; nothing is
    re-raised.
    """

    def __init__(self, max_breadcrumbs: int = MAX_BREADCRUMBS):
        self._breadcrumbs: Deque[Dict[str, Any]] = deque(maxlen=max_breadcrumbs)
        self.captured: List[Dict[str, Any]] = []

    def add_breadcrumb(self, message: str, data: Optional[Dict[str, Any]] = None, level: str = "info") -> None:
        crumb = {"ts": time.time(), "message": message, "data": data or {}, "level": level}
        self._breadcrumbs.append(crumb)
        logger.debug(f"Breadcrumb: {message} | {crumb['data']}")

    def capture_exception(self, error: BaseException, **context: Any) -> None:
        event = {
            "ts": time.time(),
            "type": type(error).__name__,
            "message": str(error),
            "context": context,
            "breadcrumbs": list(self._breadcrumbs)[-10:],
        }
        self.captured.append(event)
        if len(self.captured) > MAX_BREADCRUMBS:
            del self.captured[0]
        logger.opt(exception=error).error(f"Captured {event['type']}: {event['message']} | {context}")

    def breadcrumbs(self) -> List[Dict[str, Any]]:
        return list(self._breadcrumbs)

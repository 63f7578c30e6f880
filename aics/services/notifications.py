"""User notification feed."""

import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from aics.constants import MAX_NOTIFICATIONS

logger = logging.getLogger(__name__)

_LOG_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


@dataclass
class Notification:
    plugin_id: str
    message: str
    level: str = "info"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


class NotificationService:
    """Bounded in-memory feed of plugin notifications, newest last."""

    def __init__(self, max_items: int = MAX_NOTIFICATIONS):
        self._items: deque = deque(maxlen=max_items)
        self._lock = threading.Lock()

    def notify(self, plugin_id: str, message: str, level: str = "info") -> Notification:
        notification = Notification(plugin_id=plugin_id, message=message, level=level)
        with self._lock:
            self._items.append(notification)
        logger.log(_LOG_LEVELS.get(level, logging.INFO), f"[{plugin_id}] {message}")
        return notification

    def list(self, plugin_id: Optional[str] = None, limit: Optional[int] = None) -> List[Notification]:
        with self._lock:
            items = list(self._items)
        if plugin_id:
            items = [n for n in items if n.plugin_id == plugin_id]
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

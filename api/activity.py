"""
Activity logging - two bounded recency logs with different orderings

The application log (store key ``logs``) is most-recent-first: entries are
prepended and the tail is trimmed. The authentication log (store key
``activityLogs``) is oldest-first: entries are appended and the head is
trimmed. Both keep at most ``capacity`` entries; they are deliberately
kept as two separate logs.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, List, Optional

from storage.database import KeyValueStore, StoreError

from .models import DataLayerError, Err, Ok, Record, Result, format_timestamp
from .repository import EntityRepository

logger = logging.getLogger(__name__)

DEFAULT_LOG_CAPACITY = 1000
MOCK_IP_ADDRESS = '192.168.1.100'
AUTH_LOG_KEY = 'activityLogs'


class LogEnd(str, Enum):
    FRONT = 'front'
    BACK = 'back'


@dataclass(frozen=True)
class BoundedLog:
    """Insertion/trim policy for a capacity-bounded log"""

    capacity: int
    insert_end: LogEnd
    trim_end: LogEnd

    def insert(self, entries: List[Any], entry: Any) -> List[Any]:
        """Return a new list with entry inserted and the opposite end trimmed to capacity"""
        if self.insert_end == LogEnd.FRONT:
            result = [entry] + list(entries)
        else:
            result = list(entries) + [entry]

        overflow = len(result) - self.capacity
        if overflow > 0:
            if self.trim_end == LogEnd.BACK:
                result = result[:self.capacity]
            else:
                result = result[overflow:]
        return result


def newest_first_log(capacity: int = DEFAULT_LOG_CAPACITY) -> BoundedLog:
    return BoundedLog(capacity, insert_end=LogEnd.FRONT, trim_end=LogEnd.BACK)


def oldest_first_log(capacity: int = DEFAULT_LOG_CAPACITY) -> BoundedLog:
    return BoundedLog(capacity, insert_end=LogEnd.BACK, trim_end=LogEnd.FRONT)


class ActivityLogWriter:
    """Writes application activity into the ``logs`` repository, newest first"""

    def __init__(self,
                 repository: EntityRepository,
                 capacity: int = DEFAULT_LOG_CAPACITY,
                 user_agent: str = 'elearning-data',
                 clock: Optional[Callable[[], float]] = None):
        self.repository = repository
        self.policy = newest_first_log(capacity)
        self.user_agent = user_agent
        self.clock = clock or time.time

    def record(self, action: str, description: str, actor_id: Any = None) -> Result:
        """
        Record one activity entry

        Args:
            action: Short action name (e.g. 'Login', 'Create Course')
            description: Human-readable description
            actor_id: Acting user id; 'system' when omitted

        Returns:
            Ok(entry) or Err(kind, message)
        """
        now = self.clock()
        entry: Record = {
            'id': self.repository.kind.new_string_id(int(now * 1000)),
            'user': actor_id or 'system',
            'action': action,
            'description': description,
            'timestamp': format_timestamp(datetime.fromtimestamp(now, tz=timezone.utc)),
            'ipAddress': MOCK_IP_ADDRESS,
            'userAgent': self.user_agent
        }

        try:
            logs = self.repository.load()
            self.repository.replace(self.policy.insert(logs, entry))
        except DataLayerError as e:
            logger.error(f"Error logging activity '{action}': {e}")
            return Err.from_exception(e)

        logger.debug(f"Logged activity '{action}' for {entry['user']}")
        return Ok(entry)


class AuthActivityLog:
    """
    Activity log owned by the authentication collaborator

    Kept under its own store key, oldest first. Failures are logged and
    reported as Err; they never interrupt the caller.
    """

    def __init__(self,
                 store: KeyValueStore,
                 capacity: int = DEFAULT_LOG_CAPACITY,
                 key: str = AUTH_LOG_KEY,
                 clock: Optional[Callable[[], float]] = None):
        self.store = store
        self.key = key
        self.policy = oldest_first_log(capacity)
        self.clock = clock or time.time

    def entries(self) -> List[Record]:
        try:
            entries = self.store.get_json(self.key, default=[])
        except StoreError as e:
            logger.error(f"Error reading {self.key}: {e}")
            return []
        return entries if isinstance(entries, list) else []

    def record(self, action: str, description: str, username: Optional[str] = None) -> Result:
        entry: Record = {
            'user': username or 'Unknown',
            'action': action,
            'description': description,
            'timestamp': format_timestamp(datetime.fromtimestamp(self.clock(), tz=timezone.utc))
        }

        try:
            self.store.set_json(self.key, self.policy.insert(self.entries(), entry))
        except StoreError as e:
            logger.error(f"Error logging activity '{action}': {e}")
            return Err.from_exception(e)

        return Ok(entry)

"""
Data models for the E-Learning data layer

Records are plain dictionaries (they round-trip through JSON unchanged);
this module describes the entity kinds that hold them, the Result type
returned by every mutating call and the shared error taxonomy.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union
from datetime import datetime, timezone


Record = Dict[str, Any]


class ErrorKind(str, Enum):
    """Failure categories surfaced to callers"""

    RETRIEVAL = 'RetrievalError'
    STORE = 'StoreError'
    NOT_FOUND = 'NotFound'
    INVALID_FORMAT = 'InvalidFormat'
    VALIDATION = 'ValidationError'


class DataLayerError(Exception):
    """Base class for every error raised inside the data layer"""

    kind: ErrorKind = ErrorKind.VALIDATION


class NotFoundError(DataLayerError):
    """Raised when an update/delete target does not exist"""

    kind = ErrorKind.NOT_FOUND


class InvalidFormatError(DataLayerError):
    """Raised when an import document misses mandatory sections"""

    kind = ErrorKind.INVALID_FORMAT


class ValidationError(DataLayerError):
    """Raised for structurally malformed payloads"""

    kind = ErrorKind.VALIDATION


@dataclass(frozen=True)
class Ok:
    """Successful outcome of a mutating operation"""

    value: Any = None

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {'success': True, 'data': self.value}


@dataclass(frozen=True)
class Err:
    """Failed outcome of a mutating operation"""

    kind: ErrorKind
    message: str

    @property
    def success(self) -> bool:
        return False

    @classmethod
    def from_exception(cls, error: Exception) -> 'Err':
        kind = getattr(error, 'kind', ErrorKind.STORE)
        return cls(kind=kind, message=str(error))

    def to_dict(self) -> Dict[str, Any]:
        return {'success': False, 'error': self.message}


Result = Union[Ok, Err]


class IdPolicy(str, Enum):
    """How new identifiers are generated for an entity kind"""

    NUMERIC = 'numeric'      # max(existing) + 1
    TIMESTAMP = 'timestamp'  # "<prefix>_<epochMillis>"


@dataclass(frozen=True)
class EntityKind:
    """Describes one repository: where it lives and how records are identified"""

    name: str
    store_key: str
    seed_path: str
    id_field: str = 'id'
    id_policy: IdPolicy = IdPolicy.TIMESTAMP
    id_prefix: Optional[str] = None
    label: str = 'Record'

    def new_string_id(self, epoch_millis: int) -> str:
        return f"{self.id_prefix or self.name}_{epoch_millis}"


USERS = EntityKind('users', 'users', 'mock-users.json', 'id', IdPolicy.NUMERIC, label='User')
COURSES = EntityKind('courses', 'courses', 'mock-courses.json', 'courseId', IdPolicy.TIMESTAMP, 'course', 'Course')
QUIZZES = EntityKind('quizzes', 'quizzes', 'mock-quizzes.json', 'id', IdPolicy.TIMESTAMP, 'quiz', 'Quiz')
LOGS = EntityKind('logs', 'logs', 'mock-logs.json', 'id', IdPolicy.TIMESTAMP, 'log', 'Log entry')

ENTITY_KINDS: Dict[str, EntityKind] = {
    kind.name: kind for kind in (USERS, COURSES, QUIZZES, LOGS)
}

DEFAULT_SETTINGS: Record = {
    'theme': 'light',
    'language': 'vi',
    'notifications': True,
    'autoSave': True
}

# Store keys created at startup when absent, with their initial documents
DEFAULT_STORE_DOCUMENTS: Dict[str, Any] = {
    'users': [],
    'courses': [],
    'quizzes': [],
    'logs': [],
    'currentUser': [],
    'userSessions': [],
    'appSettings': DEFAULT_SETTINGS,
}


def format_timestamp(moment: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with millisecond precision and a Z suffix"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def is_record_list(value: Any) -> bool:
    """True for a list whose every element is a Record (JSON object)"""
    return isinstance(value, list) and all(isinstance(item, dict) for item in value)


_FRACTION = re.compile(r'(\d{2}:\d{2}:\d{2})\.(\d+)')


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 string (or epoch milliseconds) into an aware datetime

    Returns:
        The parsed datetime, or None when the value is missing or unparseable
    """
    if value is None or value == '':
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None

    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    text = _FRACTION.sub(lambda m: m.group(1) + '.' + (m.group(2) + '000000')[:6], text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

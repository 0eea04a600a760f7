"""
Search, filtering and statistics over the entity repositories
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from api.models import ValidationError, Record, parse_timestamp

logger = logging.getLogger(__name__)

ACTIVE_WINDOW = timedelta(days=7)

# Text fields matched by free-text queries, per collection
SEARCH_FIELDS: Dict[str, List[str]] = {
    'users': ['fullName', 'email', 'username'],
    'courses': ['title', 'description', 'instructor'],
    'quizzes': ['title', 'description'],
    'logs': ['user', 'action', 'description'],
}


class QueryService:
    """
    Read-side queries for UI collaborators

    Free text is matched case-insensitively as a substring of any of the
    collection's text fields. Filters are AND-combined exact matches,
    except for derived fields (a user's ``status`` is computed from
    recent activity). A missing query or filter value matches everything.
    """

    def __init__(self, context, clock: Optional[Callable[[], float]] = None):
        """
        Args:
            context: DataContext providing the repositories
            clock: Callable returning epoch seconds (defaults to the context clock)
        """
        self.context = context
        self.clock = clock or getattr(context, 'clock', time.time)

        self.derived_fields: Dict[str, Dict[str, Callable[[Record], Any]]] = {
            'users': {'status': self.user_status},
        }

    def _now(self) -> datetime:
        return datetime.fromtimestamp(self.clock(), tz=timezone.utc)

    # ------------------------------------------------------------------
    # derived fields
    # ------------------------------------------------------------------

    def user_status(self, user: Record) -> str:
        """'active' when the last activity (or creation) is within 7 days"""
        last_activity = parse_timestamp(user.get('lastActivity') or user.get('createdAt'))
        if last_activity is None:
            return 'inactive'
        return 'active' if self._now() - last_activity <= ACTIVE_WINDOW else 'inactive'

    def quiz_is_open(self, quiz: Record) -> bool:
        deadline = parse_timestamp(quiz.get('deadline'))
        return deadline is not None and deadline > self._now()

    def is_today(self, log: Record) -> bool:
        logged_at = parse_timestamp(log.get('timestamp'))
        if logged_at is None:
            return False
        local_now = self._now().astimezone()
        return logged_at.astimezone(local_now.tzinfo).date() == local_now.date()

    # ------------------------------------------------------------------
    # search
    # ------------------------------------------------------------------

    def _matches_query(self, record: Record, fields: List[str], needle: str) -> bool:
        for field in fields:
            value = record.get(field)
            if value is not None and needle in str(value).lower():
                return True
        return False

    def _matches_filters(self, collection: str, record: Record, filters: Mapping[str, Any]) -> bool:
        derived = self.derived_fields.get(collection, {})
        for field, expected in filters.items():
            if expected is None or expected == '':
                continue
            actual = derived[field](record) if field in derived else record.get(field)
            if actual != expected:
                return False
        return True

    def search(self,
               collection: str,
               query: Optional[str] = None,
               filters: Optional[Mapping[str, Any]] = None) -> List[Record]:
        """
        Filter a collection

        Args:
            collection: 'users', 'courses', 'quizzes' or 'logs'
            query: Free text (case-insensitive substring)
            filters: Field -> expected value

        Returns:
            Matching records in snapshot order

        Raises:
            ValidationError: For unknown collections
        """
        if collection not in SEARCH_FIELDS:
            raise ValidationError(f"Unknown collection '{collection}'")

        records = self.context.repository(collection).load()
        needle = (query or '').strip().lower()
        filters = filters or {}

        results = [
            record for record in records
            if (not needle or self._matches_query(record, SEARCH_FIELDS[collection], needle))
            and self._matches_filters(collection, record, filters)
        ]

        logger.debug(f"Search {collection} for '{needle}' {dict(filters)}: {len(results)} results")
        return results

    def search_users(self, query: Optional[str] = None, filters: Optional[Mapping[str, Any]] = None) -> List[Record]:
        filters = filters or {}
        return self.search('users', query, {
            'role': filters.get('role'),
            'status': filters.get('status'),
        })

    def search_courses(self, query: Optional[str] = None, filters: Optional[Mapping[str, Any]] = None) -> List[Record]:
        filters = filters or {}
        return self.search('courses', query, {
            'category': filters.get('category'),
            'level': filters.get('level'),
        })

    # ------------------------------------------------------------------
    # statistics
    # ------------------------------------------------------------------

    def aggregate_statistics(self) -> Dict[str, Any]:
        """
        Cross-collection statistics

        The four repository loads run concurrently and all of them finish
        before anything is counted. A failed load already yields an empty
        list, so a broken collection only zeroes its own slice.
        """
        names = ['users', 'courses', 'quizzes', 'logs']
        start_time = time.time()

        with ThreadPoolExecutor(max_workers=len(names)) as executor:
            futures = {name: executor.submit(self.context.repository(name).load) for name in names}
            loaded = {name: future.result() for name, future in futures.items()}

        users, courses, quizzes, logs = (loaded[name] for name in names)

        by_role: Dict[str, int] = {}
        for user in users:
            role = user.get('role') or 'unknown'
            by_role[role] = by_role.get(role, 0) + 1

        by_status: Dict[str, int] = {}
        for course in courses:
            status = course.get('status') or 'unknown'
            by_status[status] = by_status.get(status, 0) + 1

        open_quizzes = sum(1 for quiz in quizzes if self.quiz_is_open(quiz))

        stats = {
            'users': {
                'total': len(users),
                'students': by_role.get('student', 0),
                'teachers': by_role.get('teacher', 0),
                'admins': by_role.get('admin', 0),
                'active': sum(1 for user in users if self.user_status(user) == 'active'),
                'byRole': by_role
            },
            'courses': {
                'total': len(courses),
                'published': by_status.get('published', 0),
                'draft': by_status.get('draft', 0),
                'byStatus': by_status
            },
            'quizzes': {
                'total': len(quizzes),
                'active': open_quizzes,
                'expired': len(quizzes) - open_quizzes
            },
            'activities': {
                'total': len(logs),
                'today': sum(1 for log in logs if self.is_today(log))
            }
        }

        logger.info(f"Aggregated statistics in {time.time() - start_time:.3f}s")
        return stats

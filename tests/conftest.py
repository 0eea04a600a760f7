from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Make the flat top-level packages importable when running from a checkout
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from api.context import DataContext, DataLayerConfig  # noqa: E402

START = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc).timestamp()

SEED_USERS = [
    {"id": 1, "username": "admin", "email": "admin@elearning.vn", "role": "admin",
     "fullName": "Nguyen Van Admin", "createdAt": "2024-01-10T08:00:00.000Z"},
    {"id": 2, "username": "teacher1", "email": "lan@elearning.vn", "role": "teacher",
     "fullName": "Tran Thi Lan", "createdAt": "2024-02-03T09:15:00.000Z"},
    {"id": 3, "username": "student1", "email": "khoa@elearning.vn", "role": "student",
     "fullName": "Le Minh Khoa", "createdAt": "2024-03-12T10:20:00.000Z"},
]

SEED_COURSES = [
    {"courseId": "course_1", "title": "HTML & CSS Fundamentals", "description": "Responsive pages",
     "instructor": "Tran Thi Lan", "category": "web", "level": "beginner", "status": "published"},
    {"courseId": "course_2", "title": "Python for Data Analysis", "description": "Pandas and plots",
     "instructor": "Tran Thi Lan", "category": "data", "level": "intermediate", "status": "draft"},
]

SEED_QUIZZES = [
    {"id": "quiz_1", "courseId": "course_1", "title": "HTML Basics", "deadline": "2020-01-01T00:00:00.000Z"},
]


class FakeClock:
    """Controllable replacement for time.time"""

    def __init__(self, start: float = START):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def write_seed(directory: Path, users=None, courses=None, quizzes=None, logs=None) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    documents = {
        "mock-users.json": SEED_USERS if users is None else users,
        "mock-courses.json": SEED_COURSES if courses is None else courses,
        "mock-quizzes.json": SEED_QUIZZES if quizzes is None else quizzes,
        "mock-logs.json": [] if logs is None else logs,
    }
    for name, document in documents.items():
        (directory / name).write_text(json.dumps(document), encoding="utf-8")
    return directory


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def seed_dir(tmp_path):
    return write_seed(tmp_path / "seed")


@pytest.fixture()
def empty_seed_dir(tmp_path):
    return write_seed(tmp_path / "empty-seed", users=[], courses=[], quizzes=[], logs=[])


@pytest.fixture()
def make_context(tmp_path, clock):
    """Factory building contexts on a temporary store; same name = same store file."""
    created = []

    def _make(seed: Path, store_name: str = "store.db", **overrides) -> DataContext:
        config = DataLayerConfig(
            store_path=str(tmp_path / store_name),
            seed_base_url=str(seed),
            **overrides,
        )
        context = DataContext(config, clock=clock)
        created.append(context)
        return context

    yield _make

    for context in created:
        context.close()


@pytest.fixture()
def context(make_context, seed_dir):
    return make_context(seed_dir)


@pytest.fixture()
def empty_context(make_context, empty_seed_dir):
    return make_context(empty_seed_dir)

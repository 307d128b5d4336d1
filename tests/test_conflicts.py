from datetime import datetime

import pytest

from dentalcare.conflicts import has_conflict, intervals_overlap
from dentalcare.db import db_session
from dentalcare.models import UserType
from dentalcare.store import DirectoryStore


def dt(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 1, 10, hour, minute)


@pytest.mark.parametrize(
    "s2,e2,expected",
    [
        (dt(9, 30), dt(10, 30), True),   # inizia dentro
        (dt(8, 30), dt(9, 30), True),    # finisce dentro
        (dt(8), dt(11), True),           # contiene
        (dt(9, 15), dt(9, 45), True),    # contenuto
        (dt(9), dt(10), True),           # identico
        (dt(10), dt(11), False),         # consecutivo dopo
        (dt(8), dt(9), False),           # consecutivo prima
        (dt(11), dt(12), False),
    ],
)
def test_intervals_overlap(s2, e2, expected):
    assert intervals_overlap(dt(9), dt(10), s2, e2) is expected
    assert intervals_overlap(s2, e2, dt(9), dt(10)) is expected


@pytest.fixture
def booked(make_user, insert_visit):
    make_user(10, UserType.CLINIC)
    make_user(11, UserType.CLINIC)
    make_user(20, UserType.PATIENT, clinic_id=10)
    return insert_visit(20, 10, dt(9), dt(10))


def test_has_conflict_same_clinic_only(session_factory, booked):
    with db_session(session_factory) as s:
        store = DirectoryStore(s)
        assert has_conflict(store, 10, dt(9, 30), dt(10, 30))
        assert not has_conflict(store, 11, dt(9, 30), dt(10, 30))


def test_has_conflict_allows_back_to_back(session_factory, booked):
    with db_session(session_factory) as s:
        store = DirectoryStore(s)
        assert not has_conflict(store, 10, dt(10), dt(11))
        assert not has_conflict(store, 10, dt(8), dt(9))


def test_has_conflict_excludes_given_visit(session_factory, booked):
    with db_session(session_factory) as s:
        store = DirectoryStore(s)
        assert not has_conflict(store, 10, dt(9, 30), dt(10, 30), exclude_visit_id=booked)
        assert has_conflict(store, 10, dt(9, 30), dt(10, 30), exclude_visit_id=booked + 1)

"""Shared fixtures and fakes for the check-in tests."""
import asyncio
import dataclasses
import itertools
import math
from datetime import date, datetime, time

import pytest
from flask_jwt_extended import create_access_token

from geocheckin import create_app, db
from geocheckin.domain import (
    AttendanceRecordInfo, AttendanceStats, AttendanceStatus, BatchItemResult, CheckInMethod,
    ClassLocationInfo, Coordinate, SessionContext, SessionInfo, UserRole
)
from geocheckin.repositories.base import SessionRepository
from geocheckin.services.location_provider import GRANTED, LocationProvider
from geocheckin.utils.errors import CheckInError, Err, ErrorCode, Ok

CENTER = Coordinate(21.0, 105.0)
NEAR = Coordinate(21.001, 105.0)   # about 111 m north
FAR = Coordinate(21.005, 105.0)    # about 556 m north
SESSION_DATE = date(2024, 3, 4)
DURING_CLASS = datetime(2024, 3, 4, 9, 0)

# Latitude offset of exactly 400 m along a meridian
OFFSET_400M = math.degrees(400 / 6371000)

HANG = object()


class FrozenClock:
    """Settable clock handed to SessionContext and the app config."""

    def __init__(self, now=DURING_CLASS):
        self.now = now

    def __call__(self):
        return self.now


class FakeLocationProvider(LocationProvider):
    """Scripted provider that records every platform call."""

    def __init__(self, positions=None, permission=GRANTED, check_answer=None):
        self.positions = list(positions if positions is not None else [NEAR])
        self.permission = permission
        self.check_answer = check_answer
        self.position_calls = []
        self.permission_requests = 0
        self.watch_calls = 0
        self.cleared = []
        self.clear_error = None
        self.on_position = None
        self.on_error = None
        self._ids = itertools.count(1)

    def _answers(self, permissions, answer):
        if isinstance(answer, dict):
            return answer
        return {permission: answer for permission in permissions}

    async def check_permission(self, permissions):
        return self._answers(permissions, self.check_answer or self.permission)

    async def request_permission(self, permissions):
        self.permission_requests += 1
        await asyncio.sleep(0)
        return self._answers(permissions, self.permission)

    async def get_position(self, high_accuracy, timeout_ms, maximum_age_ms):
        self.position_calls.append((high_accuracy, timeout_ms, maximum_age_ms))
        outcome = self.positions.pop(0) if len(self.positions) > 1 else self.positions[0]
        if outcome is HANG:
            await asyncio.sleep(3600)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def watch_position(self, on_position, on_error, options):
        self.watch_calls += 1
        self.on_position = on_position
        self.on_error = on_error
        return next(self._ids)

    def clear_watch(self, watch_id):
        self.cleared.append(watch_id)
        if self.clear_error:
            raise self.clear_error


class FakeRepository(SessionRepository):
    """In-memory repository mirroring the server's duplicate rule."""

    def __init__(self, sessions=None, student_id='S1'):
        self.sessions = {s.id: s for s in (sessions or [])}
        self.student_id = student_id
        self.records = {}
        self.calls = []
        self.check_in_error = None
        self.batch_error = None
        self.history_error = None
        self.distance_override = None
        self.check_in_gate = None

    async def get_session(self, session_id):
        self.calls.append(('get_session', session_id))
        if session_id not in self.sessions:
            return Err(CheckInError.from_code(ErrorCode.NOT_FOUND, status_code=404))
        return Ok(self.sessions[session_id])

    async def get_my_record(self, session_id):
        self.calls.append(('get_my_record', session_id))
        return Ok(self.records.get((session_id, self.student_id)))

    async def check_in(self, session_id, location):
        self.calls.append(('check_in', session_id))
        await asyncio.sleep(0)
        if self.check_in_gate is not None:
            await self.check_in_gate.wait()
        if self.check_in_error:
            return Err(self.check_in_error)
        key = (session_id, self.student_id)
        if key in self.records and self.records[key].has_checked_in:
            return Err(CheckInError.from_code(ErrorCode.ALREADY_CHECKED_IN, status_code=409))
        record = AttendanceRecordInfo(
            session_id=session_id,
            student_id=self.student_id,
            status=AttendanceStatus.PRESENT,
            has_checked_in=True,
            check_in_time=DURING_CLASS,
            distance_from_location=self.distance_override if self.distance_override is not None else 111.2,
            is_valid_location=True
        )
        self.records[key] = record
        return Ok(record)

    async def manual_mark(self, session_id, student_id, status, note=None):
        self.calls.append(('manual_mark', session_id, student_id))
        record = AttendanceRecordInfo(
            session_id=session_id,
            student_id=student_id,
            status=status,
            has_checked_in=True,
            check_in_method=CheckInMethod.MANUAL,
            note=note,
            marked_by='T1'
        )
        self.records[record.key] = record
        return Ok(record)

    async def manual_mark_batch(self, session_id, entries):
        self.calls.append(('manual_mark_batch', session_id, list(entries)))
        if self.batch_error:
            return Err(self.batch_error)
        return Ok([
            BatchItemResult(student_id=entry['student_id'], success=True, status=entry['status'])
            for entry in entries
        ])

    async def set_session_open(self, session_id, is_open):
        self.calls.append(('set_session_open', session_id, is_open))
        session = self.sessions[session_id]
        updated = dataclasses.replace(session, is_open=is_open)
        self.sessions[session_id] = updated
        return Ok(updated)

    async def get_history(self, limit=20):
        self.calls.append(('get_history', limit))
        if self.history_error:
            return Err(self.history_error)
        return Ok([r for r in self.records.values() if r.student_id == self.student_id])

    async def get_stats(self):
        self.calls.append(('get_stats',))
        return Ok(AttendanceStats(total_sessions=1, attended_sessions=1, attendance_rate=100.0))

    def count(self, name):
        return sum(1 for call in self.calls if call[0] == name)


def make_location(radius=400.0, coordinate=CENTER):
    return ClassLocationInfo(id='1', name='Hall A', coordinate=coordinate, radius_meters=radius,
                             address='Main Building')


def make_session(**overrides):
    fields = dict(
        id='10',
        course_id='CS101',
        date=SESSION_DATE,
        start_time=time(8, 0),
        end_time=time(10, 0),
        class_location=make_location(),
        is_open=True,
        title='Algorithms'
    )
    fields.update(overrides)
    return SessionInfo(**fields)


def checked_in_record(session_id='10', student_id='S1'):
    return AttendanceRecordInfo(
        session_id=session_id,
        student_id=student_id,
        status=AttendanceStatus.PRESENT,
        has_checked_in=True
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def student_context(clock):
    return SessionContext(user_id='S1', role=UserRole.STUDENT, access_token='token', clock=clock)


@pytest.fixture
def teacher_context(clock):
    return SessionContext(user_id='T1', role=UserRole.TEACHER, access_token='token', clock=clock)


@pytest.fixture
def app(clock):
    """Create test app."""
    app = create_app('testing')
    app.config['CHECKIN_CLOCK'] = clock
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


def auth_headers(user_id, role):
    token = create_access_token(identity=user_id, additional_claims={'role': role})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def teacher_headers(app):
    return auth_headers('T1', 'teacher')


@pytest.fixture
def student_headers(app):
    return auth_headers('S1', 'student')

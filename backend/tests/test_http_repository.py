"""Tests for the HTTP session repository against the Flask app and faked transports."""
import asyncio
from datetime import date, time

import pytest
import requests

from geocheckin.domain import AttendanceStatus, SessionContext, UserRole
from geocheckin.models import AttendanceSession, ClassLocation
from geocheckin.repositories.http_repository import HttpSessionRepository
from geocheckin.services.attendance_cache import AttendanceCache
from geocheckin.services.checkin_service import CheckInService
from geocheckin.services.location_service import LocationService
from geocheckin.utils.errors import ErrorCode, map_server_error

from conftest import FAR, NEAR, FakeLocationProvider, auth_headers

BASE_URL = 'http://localhost/api/attendance'


class FlaskClientResponse:
    """requests.Response look-alike over a Flask test response."""

    def __init__(self, response):
        self._response = response
        self.status_code = response.status_code

    def json(self):
        body = self._response.get_json(silent=True)
        if body is None:
            raise ValueError('No JSON body')
        return body


class FlaskClientHttp:
    """Routes requests.Session.request calls into the Flask test client."""

    def __init__(self, client):
        self.client = client
        self.requests = []

    def request(self, method, url, json=None, params=None, headers=None, timeout=None):
        self.requests.append((method, url, timeout))
        response = self.client.open(url, method=method, json=json, query_string=params, headers=headers)
        return FlaskClientResponse(response)


class RaisingHttp:
    def __init__(self, error):
        self.error = error
        self.calls = 0

    def request(self, *args, **kwargs):
        self.calls += 1
        raise self.error


class StaticHttp:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self.body = body

    def request(self, *args, **kwargs):
        return self

    def json(self):
        if self.body is None:
            raise ValueError('No JSON body')
        return self.body


@pytest.fixture
def session(app):
    location = ClassLocation(
        name='Hall A', address='Main Building', latitude=21.0, longitude=105.0, radius_meters=400
    ).save()
    return AttendanceSession(
        course_id='CS101', title='Algorithms', date=date(2024, 3, 4),
        start_time=time(8, 0), end_time=time(10, 0), class_location_id=location.id, is_open=True
    ).save()


def repository_for(client, user_id, role, clock):
    token = auth_headers(user_id, role)['Authorization'].split(' ', 1)[1]
    context = SessionContext(user_id=user_id, role=UserRole(role), access_token=token, clock=clock)
    http = FlaskClientHttp(client)
    return HttpSessionRepository(BASE_URL, context, http=http), context, http


def test_full_check_in_through_the_api(client, session, clock):
    repository, context, http = repository_for(client, 'S1', 'student', clock)
    cache = AttendanceCache()
    service = CheckInService(context, LocationService(FakeLocationProvider([NEAR])), repository, cache)

    async def scenario():
        await service.load_session(str(session.id))
        first = await service.perform_check_in(str(session.id))
        second = await service.perform_check_in(str(session.id))
        return first, second

    first, second = asyncio.run(scenario())

    assert first.ok
    assert first.value.status is AttendanceStatus.PRESENT
    assert first.value.distance_from_location == pytest.approx(111.19, abs=0.5)
    assert second.error.code is ErrorCode.ALREADY_CHECKED_IN
    assert cache.stats.attended_sessions == 1
    assert [method for method, url, timeout in http.requests].count('POST') == 1
    assert all(timeout == HttpSessionRepository.DEFAULT_TIMEOUT_SECONDS for _, _, timeout in http.requests)


def test_server_side_rejection_maps_to_taxonomy(client, session, clock):
    repository, context, http = repository_for(client, 'S1', 'student', clock)

    result = asyncio.run(repository.check_in(str(session.id), FAR))

    assert result.error.code is ErrorCode.OUT_OF_RANGE
    assert result.error.status_code == 400
    assert result.error.distance_meters == pytest.approx(556, abs=1)
    assert '556 m' in result.error.message


def test_missing_session_is_not_found(client, session, clock):
    repository, context, http = repository_for(client, 'S1', 'student', clock)

    result = asyncio.run(repository.get_session('does-not-exist'))

    assert result.error.code is ErrorCode.NOT_FOUND


def test_teacher_operations_round_trip(client, session, clock):
    repository, context, http = repository_for(client, 'T1', 'teacher', clock)

    async def scenario():
        toggled = await repository.set_session_open(str(session.id), False)
        marked = await repository.manual_mark(str(session.id), 'S7', AttendanceStatus.LATE, 'Bus delay')
        batch = await repository.manual_mark_batch(str(session.id), [
            {'student_id': 'S8', 'status': 'present', 'note': None},
            {'student_id': 'S9', 'status': 'nope', 'note': None},
        ])
        return toggled, marked, batch

    toggled, marked, batch = asyncio.run(scenario())

    assert toggled.value.is_open is False
    assert marked.value.status is AttendanceStatus.LATE
    assert marked.value.note == 'Bus delay'
    assert [(item.student_id, item.success) for item in batch.value] == [('S8', True), ('S9', False)]


def test_student_cannot_use_teacher_endpoints(client, session, clock):
    repository, context, http = repository_for(client, 'S1', 'student', clock)

    result = asyncio.run(repository.set_session_open(str(session.id), False))

    assert result.error.code is ErrorCode.VALIDATION_ERROR
    assert result.error.status_code == 403


@pytest.mark.parametrize('error, message_part', [
    (requests.Timeout('slow'), 'timed out'),
    (requests.ConnectionError('offline'), 'internet connection'),
])
def test_transport_failures_are_network_errors(error, message_part):
    http = RaisingHttp(error)
    repository = HttpSessionRepository(BASE_URL, SessionContext(user_id='S1'), http=http)

    result = asyncio.run(repository.check_in('1', NEAR))

    assert result.error.code is ErrorCode.NETWORK_ERROR
    assert message_part in result.error.message
    assert http.calls == 1


@pytest.mark.parametrize('status_code, body, code', [
    (500, None, ErrorCode.SERVER_ERROR),
    (503, {'error': True, 'message': 'down'}, ErrorCode.SERVER_ERROR),
    (429, {'error': True, 'message': 'slow down'}, ErrorCode.SERVER_ERROR),
    (409, {'error': True, 'message': 'dup'}, ErrorCode.ALREADY_CHECKED_IN),
    (400, {'error': True, 'code': 'DUPLICATE_ATTENDANCE'}, ErrorCode.ALREADY_CHECKED_IN),
    (400, {'error': True, 'code': 'LOCATION_TOO_FAR'}, ErrorCode.OUT_OF_RANGE),
    (422, {'error': True, 'message': 'latitude missing'}, ErrorCode.VALIDATION_ERROR),
    (418, None, ErrorCode.UNKNOWN_ERROR),
])
def test_error_responses_map_to_codes(status_code, body, code):
    repository = HttpSessionRepository(BASE_URL, SessionContext(user_id='S1'), http=StaticHttp(status_code, body))

    result = asyncio.run(repository.get_stats())

    assert result.error.code is code
    assert result.error.status_code == status_code


def test_validation_errors_keep_server_message():
    error = map_server_error(422, {'message': 'latitude missing'})

    assert error.message == 'latitude missing'


def test_unreadable_success_body_is_server_error():
    repository = HttpSessionRepository(
        BASE_URL, SessionContext(user_id='S1'), http=StaticHttp(200, {'error': False, 'data': {}})
    )

    result = asyncio.run(repository.get_session('1'))

    assert result.error.code is ErrorCode.SERVER_ERROR


def test_from_config_reads_repository_keys(app):
    context = SessionContext(user_id='S1')

    repository = HttpSessionRepository.from_config(context, {
        'REPOSITORY_BASE_URL': 'https://attendance.example.edu/api/attendance/',
        'REPOSITORY_TIMEOUT_SECONDS': 5,
    })
    from_app = HttpSessionRepository.from_config(context, app.config)

    assert repository.base_url == 'https://attendance.example.edu/api/attendance'
    assert repository.timeout == 5
    assert from_app.base_url == app.config['REPOSITORY_BASE_URL']
    assert from_app.timeout == app.config['REPOSITORY_TIMEOUT_SECONDS']

    with pytest.raises(ValueError):
        HttpSessionRepository.from_config(context, {'REPOSITORY_BASE_URL': ''})


def test_error_body_with_list_data_is_mapped():
    repository = HttpSessionRepository(
        BASE_URL, SessionContext(user_id='S1'),
        http=StaticHttp(400, {'error': True, 'code': 'OUT_OF_RANGE', 'data': ['unexpected']})
    )

    result = asyncio.run(repository.check_in('1', NEAR))

    assert result.error.code is ErrorCode.OUT_OF_RANGE
    assert result.error.distance_meters is None

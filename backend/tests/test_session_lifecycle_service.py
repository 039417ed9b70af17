"""Tests for session state classification and the open/close toggle."""
from datetime import datetime

import pytest

from geocheckin.services.session_lifecycle_service import SessionLifecycleService, SessionState
from geocheckin.utils.errors import ValidationError

from conftest import DURING_CLASS, make_session

BEFORE_CLASS = datetime(2024, 3, 4, 7, 30)
AFTER_CLASS = datetime(2024, 3, 4, 10, 30)


@pytest.mark.parametrize('is_open, now, expected', [
    (True, DURING_CLASS, SessionState.OPEN),
    (False, DURING_CLASS, SessionState.CLOSED),
    (True, BEFORE_CLASS, SessionState.SCHEDULED),
    (True, datetime(2024, 3, 3, 9, 0), SessionState.SCHEDULED),
    (True, AFTER_CLASS, SessionState.EXPIRED),
    (False, datetime(2024, 3, 5, 9, 0), SessionState.EXPIRED),
])
def test_classify(is_open, now, expected):
    assert SessionLifecycleService.classify(make_session(is_open=is_open), now) is expected


def test_expired_sessions_cannot_be_reopened():
    assert SessionLifecycleService.can_reopen(SessionState.CLOSED) is True
    assert SessionLifecycleService.can_reopen(SessionState.EXPIRED) is False


def test_toggle_closes_open_session():
    decision = SessionLifecycleService.validate_toggle(make_session(), False, DURING_CLASS)

    assert decision.state_before is SessionState.OPEN
    assert decision.state_after is SessionState.CLOSED
    assert decision.warning is None


def test_opening_expired_session_is_accepted_with_warning():
    decision = SessionLifecycleService.validate_toggle(make_session(is_open=False), True, AFTER_CLASS)

    assert decision.is_open is True
    assert decision.state_after is SessionState.EXPIRED
    assert 'rejected' in decision.warning


def test_opening_future_session_warns_about_start_time():
    decision = SessionLifecycleService.validate_toggle(make_session(is_open=False), True, BEFORE_CLASS)

    assert decision.state_after is SessionState.SCHEDULED
    assert '08:00' in decision.warning


@pytest.mark.parametrize('value', ['true', 1, None])
def test_toggle_rejects_non_boolean(value):
    with pytest.raises(ValidationError):
        SessionLifecycleService.validate_toggle(make_session(), value, DURING_CLASS)


@pytest.mark.parametrize('start, end, valid', [
    ('08:00', '10:00', True),
    ('10:00', '10:00', False),
    ('11:00', '10:00', False),
    ('8am', '10:00', False),
    ('08:00', '24:00', False),
])
def test_validate_session_times(start, end, valid):
    assert SessionLifecycleService.validate_session_times(start, end)['is_valid'] is valid

"""Tests for manual attendance and the teacher toggle."""
import asyncio
from datetime import datetime

from geocheckin.domain import AttendanceStatus, CheckInMethod
from geocheckin.services.attendance_cache import AttendanceCache, summarize_session
from geocheckin.services.manual_attendance_service import ManualAttendanceService
from geocheckin.utils.errors import CheckInError, ErrorCode

from conftest import FakeRepository, make_session


def build(context, cached=True):
    session = make_session()
    repository = FakeRepository([session])
    cache = AttendanceCache()
    if cached:
        cache.store_session(session)
    return ManualAttendanceService(context, repository, cache), repository, cache


def test_manual_mark_stores_server_record(teacher_context):
    service, repository, cache = build(teacher_context)

    result = asyncio.run(service.manual_mark('10', 'S2', 'excused', note='Medical leave'))

    assert result.ok
    record = cache.get_record('10', 'S2')
    assert record.status is AttendanceStatus.EXCUSED
    assert record.check_in_method is CheckInMethod.MANUAL
    assert record.has_checked_in is True


def test_marks_for_other_students_stay_out_of_history(teacher_context):
    service, repository, cache = build(teacher_context)

    async def scenario():
        await service.manual_mark('10', 'S2', 'excused')
        await service.mark_batch('10', {'S3': 'present'})

    asyncio.run(scenario())

    assert cache.get_record('10', 'S2') is not None
    assert cache.get_record('10', 'S3') is not None
    assert cache.history == ()


def test_manual_mark_bypasses_time_checks(teacher_context, clock):
    service, repository, cache = build(teacher_context)
    clock.now = datetime(2024, 6, 1, 23, 0)

    result = asyncio.run(service.manual_mark('10', 'S2', AttendanceStatus.PRESENT))

    assert result.ok


def test_manual_mark_validation(teacher_context):
    service, repository, cache = build(teacher_context)

    bad_status = asyncio.run(service.manual_mark('10', 'S2', 'sleeping'))
    long_note = asyncio.run(service.manual_mark('10', 'S2', 'late', note='x' * 256))
    no_student = asyncio.run(service.manual_mark('10', '', 'late'))

    assert bad_status.error.code is ErrorCode.VALIDATION_ERROR
    assert long_note.error.code is ErrorCode.VALIDATION_ERROR
    assert no_student.error.code is ErrorCode.VALIDATION_ERROR
    assert repository.count('manual_mark') == 0


def test_note_at_limit_is_accepted(teacher_context):
    service, repository, cache = build(teacher_context)

    assert asyncio.run(service.manual_mark('10', 'S2', 'late', note='x' * 255)).ok


def test_batch_partial_failure_is_itemized(teacher_context):
    service, repository, cache = build(teacher_context)

    batch = asyncio.run(service.mark_batch('10', {
        'S1': 'present',
        'S2': ('absent', 'No show'),
        'S3': 'teleported',
    }))

    assert batch.summary == {'total': 3, 'successful': 2, 'failed': 1}
    assert [item.student_id for item in batch.failed] == ['S3']
    assert batch.failed[0].code == ErrorCode.VALIDATION_ERROR.value
    submitted = repository.calls[-1][2]
    assert [entry['student_id'] for entry in submitted] == ['S1', 'S2']
    assert cache.get_record('10', 'S2').status is AttendanceStatus.ABSENT


def test_batch_network_failure_fails_only_submitted_entries(teacher_context):
    service, repository, cache = build(teacher_context)
    repository.batch_error = CheckInError.from_code(ErrorCode.NETWORK_ERROR)

    batch = asyncio.run(service.mark_batch('10', {'S1': 'present', 'S2': 'bogus'}))

    assert batch.succeeded == []
    codes = {item.student_id: item.code for item in batch.failed}
    assert codes == {'S1': 'NETWORK_ERROR', 'S2': 'VALIDATION_ERROR'}


def test_batch_with_nothing_valid_is_not_submitted(teacher_context):
    service, repository, cache = build(teacher_context)

    batch = asyncio.run(service.mark_batch('10', {'S1': 'bogus'}))

    assert batch.summary['failed'] == 1
    assert repository.count('manual_mark_batch') == 0


def test_set_session_open_updates_cache(teacher_context):
    service, repository, cache = build(teacher_context)

    result = asyncio.run(service.set_session_open('10', False))

    assert result.ok
    assert cache.get_session('10').is_open is False


def test_set_session_open_rejects_non_boolean(teacher_context):
    service, repository, cache = build(teacher_context, cached=False)

    result = asyncio.run(service.set_session_open('10', 'yes'))

    assert result.error.code is ErrorCode.VALIDATION_ERROR
    assert repository.count('set_session_open') == 0


def test_opening_expired_session_still_submits(teacher_context, clock):
    service, repository, cache = build(teacher_context)
    clock.now = datetime(2024, 3, 4, 11, 0)

    result = asyncio.run(service.set_session_open('10', True))

    assert result.ok
    assert repository.count('set_session_open') == 1


def test_summarize_session_counts_statuses(teacher_context):
    service, repository, cache = build(teacher_context)
    asyncio.run(service.mark_batch('10', {'S1': 'present', 'S2': 'late', 'S3': 'absent'}))

    summary = summarize_session(cache.records_for_session('10'), total_students=4)

    assert summary.present == 1
    assert summary.late == 1
    assert summary.absent == 1
    assert summary.not_marked == 1
    assert summary.attendance_rate == 50.0

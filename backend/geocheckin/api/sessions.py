# File: backend/geocheckin/api/sessions.py
"""Attendance session API: lifecycle, location check-in and manual marks."""
from datetime import date

from flask import Blueprint, current_app, request
from flask_jwt_extended import get_jwt_identity, jwt_required
from sqlalchemy.exc import IntegrityError

from geocheckin import db, limiter
from geocheckin.domain import AttendanceStatus, BatchItemResult, CheckInMethod, Coordinate, parse_time
from geocheckin.models.attendance import AttendanceRecord
from geocheckin.models.attendance_session import AttendanceSession
from geocheckin.models.class_location import ClassLocation
from geocheckin.services.attendance_cache import summarize_session
from geocheckin.services.eligibility_service import EligibilityService, ReasonCode
from geocheckin.services.session_lifecycle_service import SessionLifecycleService
from geocheckin.utils.decorators import student_required, teacher_required
from geocheckin.utils.errors import ErrorCode, ValidationError, describe_error
from geocheckin.utils.helpers import current_time, error_response, success_response
from geocheckin.utils.validators import Validator

sessions_bp = Blueprint('sessions', __name__)


def _checkin_rate_limit() -> str:
    return current_app.config.get('CHECKIN_RATE_LIMIT', '10 per minute')


def _session_or_404(session_id):
    session = AttendanceSession.get_by_id(session_id)
    if session is None:
        return None, error_response("Session not found", 404, code=ErrorCode.NOT_FOUND)
    return session, None


def _session_payload(session, now):
    data = session.to_dict()
    data['state'] = SessionLifecycleService.classify(session.to_domain(), now).value
    return data


@sessions_bp.route('', methods=['POST'])
@jwt_required()
@teacher_required
def create_session():
    """Schedule an attendance session at a class location."""
    try:
        data = request.get_json(silent=True) or {}

        validation = Validator.validate_session_data(data)
        errors = list(validation['errors'])
        if data.get('start_time') and data.get('end_time'):
            errors.extend(SessionLifecycleService.validate_session_times(
                data['start_time'], data['end_time']
            )['errors'])
        if errors:
            return error_response('; '.join(errors), 400, code=ErrorCode.VALIDATION_ERROR)

        location = ClassLocation.get_by_id(data['class_location_id'])
        if not location or not location.is_active:
            return error_response("Class location not found", 404, code=ErrorCode.NOT_FOUND)

        session = AttendanceSession(
            course_id=str(data['course_id']),
            title=data['title'],
            date=date.fromisoformat(data['date']),
            start_time=parse_time(data['start_time']),
            end_time=parse_time(data['end_time']),
            class_location_id=location.id,
            is_open=bool(data.get('is_open', False)),
            allow_late_check_in=bool(data.get('allow_late_check_in', False)),
            max_distance_override=data.get('max_distance_override'),
            created_by=get_jwt_identity()
        )
        session.save()

        current_app.logger.info(f"Session {session.id} scheduled for course {session.course_id}")
        return success_response(
            data={'session': _session_payload(session, current_time())},
            message="Session created successfully",
            status_code=201
        )

    except Exception as e:
        db.session.rollback()
        current_app.logger.exception('Error creating session')
        return error_response(f"Error creating session: {str(e)}", 500)


@sessions_bp.route('/<int:session_id>', methods=['GET'])
@jwt_required()
def get_session(session_id):
    """Get a session with its current lifecycle state."""
    session, not_found = _session_or_404(session_id)
    if not_found:
        return not_found

    return success_response(data={'session': _session_payload(session, current_time())})


@sessions_bp.route('/course/<course_id>', methods=['GET'])
@jwt_required()
def get_course_sessions(course_id):
    """List a course's sessions, most recent first."""
    try:
        sessions = AttendanceSession.query.filter_by(course_id=course_id).order_by(
            AttendanceSession.date.desc(), AttendanceSession.start_time.desc()
        ).all()
        now = current_time()

        return success_response(data={'sessions': [_session_payload(s, now) for s in sessions]})

    except Exception as e:
        current_app.logger.exception('Error fetching course sessions')
        return error_response(f"Error fetching sessions: {str(e)}", 500)


@sessions_bp.route('/<int:session_id>/status', methods=['PATCH'])
@jwt_required()
@teacher_required
def set_session_status(session_id):
    """Open or close a session for check-ins."""
    session, not_found = _session_or_404(session_id)
    if not_found:
        return not_found

    data = request.get_json(silent=True) or {}
    try:
        decision = SessionLifecycleService.validate_toggle(
            session.to_domain(), data.get('is_open'), current_time()
        )
    except ValidationError as e:
        return error_response(str(e), 400, code=ErrorCode.VALIDATION_ERROR)

    try:
        session.update(is_open=decision.is_open)
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception('Error updating session status')
        return error_response(f"Error updating session: {str(e)}", 500)

    if decision.warning:
        current_app.logger.warning(f"Session {session.id}: {decision.warning}")

    return success_response(
        data={'session': _session_payload(session, current_time()), 'toggle': decision.to_dict()},
        message=decision.warning or ("Session opened" if decision.is_open else "Session closed")
    )


@sessions_bp.route('/<int:session_id>/my-status', methods=['GET'])
@jwt_required()
def get_my_status(session_id):
    """The caller's record for a session and whether they could check in now."""
    session, not_found = _session_or_404(session_id)
    if not_found:
        return not_found

    record = AttendanceRecord.find(session.id, get_jwt_identity())
    domain_record = record.to_domain() if record else None
    rejection = EligibilityService.precheck(
        session.to_domain(), domain_record, current_time(),
        current_app.config['LATE_CHECK_IN_GRACE_MINUTES']
    )

    return success_response(data={
        'record': domain_record.to_dict() if domain_record else None,
        'can_check_in': rejection is None,
        'reason': rejection.reason.value if rejection else None
    })


@sessions_bp.route('/<int:session_id>/students-status', methods=['GET'])
@jwt_required()
@teacher_required
def get_students_status(session_id):
    """All records of a session with a status summary."""
    session, not_found = _session_or_404(session_id)
    if not_found:
        return not_found

    records = [record.to_domain() for record in session.records.all()]
    total_students = request.args.get('total_students', type=int)

    return success_response(data={
        'session': _session_payload(session, current_time()),
        'records': [record.to_dict() for record in records],
        'summary': summarize_session(records, total_students).to_dict()
    })


@sessions_bp.route('/<int:session_id>/check-in', methods=['POST'])
@jwt_required()
@student_required
@limiter.limit(_checkin_rate_limit)
def check_in(session_id):
    """Record a location check-in after re-validating it against stored session data."""
    session, not_found = _session_or_404(session_id)
    if not_found:
        return not_found

    data = request.get_json(silent=True) or {}
    errors = Validator.validate_coordinate(
        data.get('latitude'), data.get('longitude'), data.get('accuracy')
    )
    if errors:
        return error_response('; '.join(errors), 400, code=ErrorCode.VALIDATION_ERROR)

    coordinate = Coordinate(data['latitude'], data['longitude'], data.get('accuracy'))
    student_id = get_jwt_identity()
    now = current_time()

    record = AttendanceRecord.find(session.id, student_id)
    verdict = EligibilityService.evaluate(
        session.to_domain(),
        record.to_domain() if record else None,
        now,
        coordinate,
        current_app.config['LATE_CHECK_IN_GRACE_MINUTES']
    )

    if not verdict.can_attend:
        current_app.logger.info(
            f"Check-in rejected for {student_id} in session {session.id}: {verdict.reason.value}"
        )
        status_code = 409 if verdict.reason is ReasonCode.ALREADY_CHECKED_IN else 400
        return error_response(
            verdict.to_error().message, status_code,
            code=verdict.error_code, data=verdict.to_dict()
        )

    try:
        if record is None:
            record = AttendanceRecord(session_id=session.id, student_id=student_id, course_id=session.course_id)
            db.session.add(record)

        record.status = AttendanceStatus.LATE if verdict.is_late else AttendanceStatus.PRESENT
        record.has_checked_in = True
        record.check_in_time = now
        record.check_in_method = CheckInMethod.LOCATION
        record.latitude = coordinate.latitude
        record.longitude = coordinate.longitude
        record.accuracy = coordinate.accuracy
        record.distance_from_location = round(verdict.distance_meters, 2)
        record.is_valid_location = True
        db.session.commit()

    except IntegrityError:
        # A concurrent request for the same student won the insert
        db.session.rollback()
        return error_response(
            describe_error(ErrorCode.ALREADY_CHECKED_IN), 409, code=ErrorCode.ALREADY_CHECKED_IN
        )
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception('Error recording check-in')
        return error_response(f"Error recording check-in: {str(e)}", 500)

    current_app.logger.info(
        f"Student {student_id} checked in to session {session.id} "
        f"as {record.status.value} at {verdict.distance_meters:.1f} m"
    )
    return success_response(
        data={'record': record.to_dict(), 'verdict': verdict.to_dict()},
        message="Checked in successfully",
        status_code=201
    )


@sessions_bp.route('/<int:session_id>/manual', methods=['POST'])
@jwt_required()
@teacher_required
def manual_mark(session_id):
    """Assign a student's status directly; location and time are not checked."""
    session, not_found = _session_or_404(session_id)
    if not_found:
        return not_found

    data = request.get_json(silent=True) or {}
    errors = Validator.validate_manual_mark(
        str(session.id), data.get('student_id'), data.get('status'), data.get('note'),
        current_app.config['MANUAL_NOTE_MAX_LENGTH']
    )
    if errors:
        return error_response('; '.join(errors), 400, code=ErrorCode.VALIDATION_ERROR)

    try:
        record = AttendanceRecord.mark(
            session,
            data['student_id'],
            AttendanceStatus(data['status']),
            marked_by=get_jwt_identity(),
            note=data.get('note'),
            now=current_time()
        )
        db.session.commit()

    except Exception as e:
        db.session.rollback()
        current_app.logger.exception('Error saving manual attendance')
        return error_response(f"Error saving attendance: {str(e)}", 500)

    current_app.logger.info(
        f"Student {record.student_id} marked {record.status.value} in session {session.id} by {record.marked_by}"
    )
    return success_response(data={'record': record.to_dict()}, message="Attendance updated")


@sessions_bp.route('/<int:session_id>/manual/batch', methods=['POST'])
@jwt_required()
@teacher_required
def manual_mark_batch(session_id):
    """Mark many students; each entry succeeds or fails on its own."""
    session, not_found = _session_or_404(session_id)
    if not_found:
        return not_found

    data = request.get_json(silent=True) or {}
    entries = data.get('attendance_list')
    if not isinstance(entries, list) or not entries:
        return error_response("attendance_list is required", 400, code=ErrorCode.VALIDATION_ERROR)

    teacher_id = get_jwt_identity()
    now = current_time()
    max_note_length = current_app.config['MANUAL_NOTE_MAX_LENGTH']
    results = []

    for entry in entries:
        entry = entry if isinstance(entry, dict) else {}
        student_id = entry.get('student_id')
        errors = Validator.validate_manual_mark(
            str(session.id), student_id, entry.get('status'), entry.get('note'), max_note_length
        )
        if errors:
            results.append(BatchItemResult(
                student_id=str(student_id), success=False,
                error='; '.join(errors), code=ErrorCode.VALIDATION_ERROR.value
            ))
            continue

        try:
            with db.session.begin_nested():
                record = AttendanceRecord.mark(
                    session, student_id, AttendanceStatus(entry['status']),
                    marked_by=teacher_id, note=entry.get('note'), now=now
                )
            results.append(BatchItemResult(student_id=student_id, success=True, status=record.status.value))
        except Exception as e:
            current_app.logger.warning(f"Batch entry for {student_id} failed: {e}")
            results.append(BatchItemResult(
                student_id=student_id, success=False,
                error=str(e), code=ErrorCode.SERVER_ERROR.value
            ))

    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        current_app.logger.exception('Error saving batch attendance')
        return error_response(f"Error saving attendance: {str(e)}", 500)

    successful = sum(1 for result in results if result.success)
    summary = {'total': len(results), 'successful': successful, 'failed': len(results) - successful}

    current_app.logger.info(f"Batch attendance for session {session.id}: {summary}")
    return success_response(
        data={'results': [result.to_dict() for result in results], 'summary': summary},
        message=f"{successful} of {len(results)} students updated"
    )

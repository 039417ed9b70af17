# File: backend/geocheckin/api/attendance.py
"""Student attendance history and statistics."""
from collections import defaultdict

from flask import Blueprint, current_app, request
from flask_jwt_extended import get_jwt_identity, jwt_required

from geocheckin.domain import AttendanceStats, AttendanceStatus, CourseStats, attendance_rate
from geocheckin.models.attendance import AttendanceRecord
from geocheckin.models.attendance_session import AttendanceSession
from geocheckin.utils.helpers import current_time, error_response, success_response

attendance_bp = Blueprint('attendance', __name__)

ATTENDED = (AttendanceStatus.PRESENT, AttendanceStatus.LATE)


@attendance_bp.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint."""
    return success_response(message='Attendance service is running')


@attendance_bp.route('/history', methods=['GET'])
@jwt_required()
def get_history():
    """The caller's attendance records, newest first."""
    try:
        limit = min(max(request.args.get('limit', 20, type=int), 1), 100)

        records = AttendanceRecord.query.filter_by(student_id=get_jwt_identity()).order_by(
            AttendanceRecord.check_in_time.desc(), AttendanceRecord.id.desc()
        ).limit(limit).all()

        return success_response(data={'records': [record.to_dict() for record in records]})

    except Exception as e:
        current_app.logger.exception('Error fetching attendance history')
        return error_response(f"Error fetching history: {str(e)}", 500)


@attendance_bp.route('/stats', methods=['GET'])
@jwt_required()
def get_stats():
    """Attendance totals per course for sessions that have started."""
    try:
        student_id = get_jwt_identity()
        now = current_time()

        records = AttendanceRecord.query.filter_by(student_id=student_id).all()
        course_ids = {record.course_id for record in records if record.course_id}
        attended_by_session = {
            record.session_id for record in records if record.has_checked_in and record.status in ATTENDED
        }

        totals = defaultdict(int)
        attended = defaultdict(int)
        if course_ids:
            sessions = AttendanceSession.query.filter(AttendanceSession.course_id.in_(course_ids)).all()
            for session in sessions:
                if session.to_domain().starts_at > now:
                    continue
                totals[session.course_id] += 1
                if session.id in attended_by_session:
                    attended[session.course_id] += 1

        course_stats = [
            CourseStats(
                course_id=course_id,
                total_sessions=totals[course_id],
                attended_sessions=attended[course_id],
                attendance_rate=attendance_rate(attended[course_id], totals[course_id])
            )
            for course_id in sorted(totals)
        ]
        total = sum(totals.values())
        present = sum(attended.values())

        stats = AttendanceStats(
            total_sessions=total,
            attended_sessions=present,
            attendance_rate=attendance_rate(present, total),
            course_stats=course_stats
        )
        return success_response(data=stats.to_dict())

    except Exception as e:
        current_app.logger.exception('Error computing attendance stats')
        return error_response(f"Error computing stats: {str(e)}", 500)

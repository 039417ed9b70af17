# backend/geocheckin/models/attendance.py
"""Attendance record model with check-in verification details."""
from datetime import datetime
from typing import Optional

from geocheckin import db
from geocheckin.domain import AttendanceRecordInfo, AttendanceStatus, CheckInMethod
from geocheckin.models.base import BaseModel


class AttendanceRecord(BaseModel):
    """One student's attendance for one session."""

    __tablename__ = 'attendance_records'
    __table_args__ = (
        db.UniqueConstraint('session_id', 'student_id', name='uq_attendance_session_student'),
    )

    session_id = db.Column(db.Integer, db.ForeignKey('attendance_sessions.id'), nullable=False)
    student_id = db.Column(db.String(64), nullable=False, index=True)
    course_id = db.Column(db.String(64), nullable=True)

    status = db.Column(db.Enum(AttendanceStatus), nullable=False, default=AttendanceStatus.ABSENT)
    has_checked_in = db.Column(db.Boolean, default=False, nullable=False)
    check_in_time = db.Column(db.DateTime, nullable=True)
    check_in_method = db.Column(db.Enum(CheckInMethod), nullable=False, default=CheckInMethod.LOCATION)

    # Location where check-in happened
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    accuracy = db.Column(db.Float, nullable=True)
    distance_from_location = db.Column(db.Float, nullable=True)
    is_valid_location = db.Column(db.Boolean, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    marked_by = db.Column(db.String(64), nullable=True)

    @classmethod
    def find(cls, session_id: int, student_id: str) -> Optional['AttendanceRecord']:
        return cls.query.filter_by(session_id=session_id, student_id=student_id).first()

    @classmethod
    def mark(
        cls,
        session,
        student_id: str,
        status: AttendanceStatus,
        marked_by: str,
        note: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> 'AttendanceRecord':
        """Create or amend a manual mark; the caller commits."""
        record = cls.find(session.id, student_id)
        if record is None:
            record = cls(session_id=session.id, student_id=student_id, course_id=session.course_id)
            db.session.add(record)

        record.status = status
        record.has_checked_in = True
        record.check_in_method = CheckInMethod.MANUAL
        record.check_in_time = record.check_in_time or now or datetime.now()
        record.note = note
        record.marked_by = marked_by
        return record

    def to_domain(self) -> AttendanceRecordInfo:
        return AttendanceRecordInfo(
            session_id=str(self.session_id),
            student_id=self.student_id,
            course_id=self.course_id,
            status=self.status,
            has_checked_in=self.has_checked_in,
            check_in_time=self.check_in_time,
            check_in_method=self.check_in_method,
            distance_from_location=self.distance_from_location,
            is_valid_location=self.is_valid_location,
            note=self.note,
            marked_by=self.marked_by
        )

    def to_dict(self):
        return self.to_domain().to_dict()

    def __repr__(self):
        return f'<AttendanceRecord {self.student_id}-{self.session_id}>'

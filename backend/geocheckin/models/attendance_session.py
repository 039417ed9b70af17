# backend/geocheckin/models/attendance_session.py
"""Attendance session held at a class location."""
from geocheckin import db
from geocheckin.domain import SessionInfo
from geocheckin.models.base import BaseModel


class AttendanceSession(BaseModel):
    """A class meeting students check in to; never deleted once records exist."""

    __tablename__ = 'attendance_sessions'

    course_id = db.Column(db.String(64), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    date = db.Column(db.Date, nullable=False)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    class_location_id = db.Column(db.Integer, db.ForeignKey('class_locations.id'), nullable=False)

    is_open = db.Column(db.Boolean, default=False, nullable=False)
    allow_late_check_in = db.Column(db.Boolean, default=False, nullable=False)
    max_distance_override = db.Column(db.Float, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)

    records = db.relationship('AttendanceRecord', backref='session', lazy='dynamic')

    def to_domain(self) -> SessionInfo:
        return SessionInfo(
            id=str(self.id),
            course_id=self.course_id,
            title=self.title,
            date=self.date,
            start_time=self.start_time,
            end_time=self.end_time,
            class_location=self.class_location.to_domain(),
            is_open=self.is_open,
            allow_late_check_in=self.allow_late_check_in,
            max_distance_override=self.max_distance_override
        )

    def to_dict(self):
        data = self.to_domain().to_dict()
        data['created_by'] = self.created_by
        return data

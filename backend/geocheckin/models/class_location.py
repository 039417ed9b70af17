# backend/geocheckin/models/class_location.py
"""Class location (geofence center) model."""
from datetime import datetime

from geocheckin import db
from geocheckin.domain import ClassLocationInfo, Coordinate
from geocheckin.models.base import BaseModel


class ClassLocation(BaseModel):
    """A place where sessions are held; check-ins are measured from its center."""

    __tablename__ = 'class_locations'

    name = db.Column(db.String(100), nullable=False)
    address = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)
    radius_meters = db.Column(db.Float, nullable=False, default=100)

    # Soft delete; sessions keep pointing at retired locations
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)

    created_by = db.Column(db.String(64), nullable=True)

    sessions = db.relationship('AttendanceSession', backref='class_location', lazy='dynamic')

    @classmethod
    def active(cls):
        return cls.query.filter_by(is_active=True).order_by(cls.name)

    def soft_delete(self) -> None:
        self.is_active = False
        self.deleted_at = datetime.utcnow()
        db.session.commit()

    def to_domain(self) -> ClassLocationInfo:
        return ClassLocationInfo(
            id=str(self.id),
            name=self.name,
            coordinate=Coordinate(self.latitude, self.longitude),
            radius_meters=self.radius_meters,
            address=self.address or '',
            description=self.description,
            is_active=self.is_active
        )

    def to_dict(self):
        data = super().to_dict(exclude=['created_by'])
        data['id'] = str(self.id)
        return data

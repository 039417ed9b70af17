# backend/geocheckin/services/eligibility_service.py
"""Eligibility rules deciding whether a location check-in may proceed."""
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, Optional

from geocheckin.domain import AttendanceRecordInfo, Coordinate, SessionInfo
from geocheckin.services.gps_service import GPSService
from geocheckin.utils.errors import CheckInError, ErrorCode, ValidationError


class ReasonCode(Enum):
    """Why a check-in is or is not allowed."""
    CAN_ATTEND = 'CAN_ATTEND'
    ALREADY_CHECKED_IN = 'ALREADY_CHECKED_IN'
    NOT_TODAY = 'NOT_TODAY'
    SESSION_CLOSED = 'SESSION_CLOSED'
    TOO_EARLY = 'TOO_EARLY'
    TOO_LATE = 'TOO_LATE'
    LOCATION_UNAVAILABLE = 'LOCATION_UNAVAILABLE'
    OUT_OF_RANGE = 'OUT_OF_RANGE'


@dataclass(frozen=True)
class EligibilityVerdict:
    """Result of one evaluation; computed fresh on every attempt."""
    can_attend: bool
    reason: ReasonCode
    distance_meters: Optional[float] = None
    radius_meters: Optional[float] = None
    is_late: bool = False

    @property
    def error_code(self) -> Optional[ErrorCode]:
        if self.can_attend:
            return None
        return ErrorCode(self.reason.value)

    def to_error(self) -> CheckInError:
        """Express a rejection in the shared error taxonomy."""
        if self.can_attend:
            raise ValueError("An accepted verdict has no error")
        return CheckInError.from_code(
            self.error_code,
            distance_meters=self.distance_meters,
            radius_meters=self.radius_meters
        )

    def to_dict(self) -> Dict:
        return {
            'can_attend': self.can_attend,
            'reason': self.reason.value,
            'distance_meters': self.distance_meters,
            'radius_meters': self.radius_meters,
            'is_late': self.is_late
        }


class EligibilityService:
    """
    Pure decision function for location check-ins.

    Checks run in a fixed order and the first failing one wins:
    duplicate, date, open flag, start time, end time, location, distance.
    Time and state come before space so a student far from a closed
    session is told it is closed rather than that they are too far away.
    """

    @staticmethod
    def precheck(
        session: SessionInfo,
        record: Optional[AttendanceRecordInfo],
        now: datetime,
        late_grace_minutes: float = 0
    ) -> Optional[EligibilityVerdict]:
        """Run the non-spatial checks; returns the rejection or None when they all pass."""
        if late_grace_minutes < 0:
            raise ValidationError("late_grace_minutes cannot be negative")

        if record is not None and record.has_checked_in:
            return EligibilityVerdict(False, ReasonCode.ALREADY_CHECKED_IN)

        if now.date() != session.date:
            return EligibilityVerdict(False, ReasonCode.NOT_TODAY)

        if not session.is_open:
            return EligibilityVerdict(False, ReasonCode.SESSION_CLOSED)

        if now < session.starts_at:
            return EligibilityVerdict(False, ReasonCode.TOO_EARLY)

        if now > session.ends_at:
            grace_ends_at = session.ends_at + timedelta(minutes=late_grace_minutes)
            if not session.allow_late_check_in or now > grace_ends_at:
                return EligibilityVerdict(False, ReasonCode.TOO_LATE)

        return None

    @classmethod
    def evaluate(
        cls,
        session: SessionInfo,
        record: Optional[AttendanceRecordInfo],
        now: datetime,
        device_location: Optional[Coordinate],
        late_grace_minutes: float = 0
    ) -> EligibilityVerdict:
        """Decide whether a check-in may proceed right now from this location."""
        rejection = cls.precheck(session, record, now, late_grace_minutes)
        if rejection is not None:
            return rejection

        is_late = now > session.ends_at
        radius = session.effective_radius

        if device_location is None:
            return EligibilityVerdict(
                False, ReasonCode.LOCATION_UNAVAILABLE, radius_meters=radius, is_late=is_late
            )

        distance = GPSService.distance_between(device_location, session.class_location.coordinate)

        if distance > radius:
            return EligibilityVerdict(
                False, ReasonCode.OUT_OF_RANGE,
                distance_meters=distance, radius_meters=radius, is_late=is_late
            )

        return EligibilityVerdict(
            True, ReasonCode.CAN_ATTEND,
            distance_meters=distance, radius_meters=radius, is_late=is_late
        )

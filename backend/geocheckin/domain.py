# backend/geocheckin/domain.py
"""Value types exchanged between the check-in engine, its caches and the repository."""
from dataclasses import dataclass, field
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from geocheckin.utils.errors import ValidationError
from geocheckin.utils.validators import Validator


class AttendanceStatus(Enum):
    """Attendance status enumeration."""
    PRESENT = 'present'
    LATE = 'late'
    ABSENT = 'absent'
    EXCUSED = 'excused'


class CheckInMethod(Enum):
    """How an attendance record was produced."""
    LOCATION = 'location'
    MANUAL = 'manual'
    QR_CODE = 'qr_code'


class UserRole(Enum):
    """User roles enumeration."""
    STUDENT = 'student'
    TEACHER = 'teacher'
    ADMIN = 'admin'


def parse_time(value: Any) -> time:
    """Parse a local HH:MM session time."""
    if isinstance(value, time):
        return value
    if not Validator.validate_time(value):
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
    return datetime.strptime(value, '%H:%M').time()


def parse_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD")


def parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"Invalid timestamp {value!r}")


@dataclass(frozen=True)
class Coordinate:
    """A device or geofence position; accuracy is the reported error radius in meters."""
    latitude: float
    longitude: float
    accuracy: Optional[float] = None

    def __post_init__(self):
        Validator.ensure_coordinate(self.latitude, self.longitude, self.accuracy)

    def to_dict(self) -> Dict[str, Any]:
        data = {'latitude': self.latitude, 'longitude': self.longitude}
        if self.accuracy is not None:
            data['accuracy'] = self.accuracy
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Coordinate':
        return cls(
            latitude=data.get('latitude'),
            longitude=data.get('longitude'),
            accuracy=data.get('accuracy')
        )


@dataclass(frozen=True)
class ClassLocationInfo:
    """A registered geofence center."""
    id: str
    name: str
    coordinate: Coordinate
    radius_meters: float
    address: str = ''
    description: Optional[str] = None
    is_active: bool = True

    def __post_init__(self):
        if not isinstance(self.radius_meters, (int, float)) or self.radius_meters <= 0:
            raise ValidationError("radius_meters must be greater than zero")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'latitude': self.coordinate.latitude,
            'longitude': self.coordinate.longitude,
            'radius_meters': self.radius_meters,
            'address': self.address,
            'description': self.description,
            'is_active': self.is_active
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ClassLocationInfo':
        return cls(
            id=str(data['id']),
            name=data.get('name', ''),
            coordinate=Coordinate(data['latitude'], data['longitude']),
            radius_meters=data['radius_meters'],
            address=data.get('address') or '',
            description=data.get('description'),
            is_active=data.get('is_active', True)
        )


@dataclass(frozen=True)
class SessionInfo:
    """A class meeting that students may check in to."""
    id: str
    course_id: str
    date: date
    start_time: time
    end_time: time
    class_location: ClassLocationInfo
    is_open: bool = False
    allow_late_check_in: bool = False
    max_distance_override: Optional[float] = None
    title: str = ''

    def __post_init__(self):
        if self.start_time >= self.end_time:
            raise ValidationError("start_time must be before end_time")
        if self.max_distance_override is not None and self.max_distance_override <= 0:
            raise ValidationError("max_distance_override must be greater than zero")

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.date, self.start_time)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.date, self.end_time)

    @property
    def effective_radius(self) -> float:
        if self.max_distance_override is not None:
            return self.max_distance_override
        return self.class_location.radius_meters

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'course_id': self.course_id,
            'title': self.title,
            'date': self.date.isoformat(),
            'start_time': self.start_time.strftime('%H:%M'),
            'end_time': self.end_time.strftime('%H:%M'),
            'class_location': self.class_location.to_dict(),
            'is_open': self.is_open,
            'allow_late_check_in': self.allow_late_check_in,
            'max_distance_override': self.max_distance_override
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SessionInfo':
        return cls(
            id=str(data['id']),
            course_id=str(data['course_id']),
            title=data.get('title') or '',
            date=parse_date(data['date']),
            start_time=parse_time(data['start_time']),
            end_time=parse_time(data['end_time']),
            class_location=ClassLocationInfo.from_dict(data['class_location']),
            is_open=bool(data.get('is_open', False)),
            allow_late_check_in=bool(data.get('allow_late_check_in', False)),
            max_distance_override=data.get('max_distance_override')
        )


@dataclass(frozen=True)
class AttendanceRecordInfo:
    """One student's attendance for one session."""
    session_id: str
    student_id: str
    status: AttendanceStatus
    has_checked_in: bool = False
    check_in_time: Optional[datetime] = None
    check_in_method: CheckInMethod = CheckInMethod.LOCATION
    distance_from_location: Optional[float] = None
    is_valid_location: Optional[bool] = None
    note: Optional[str] = None
    marked_by: Optional[str] = None
    course_id: Optional[str] = None

    @property
    def key(self):
        return (self.session_id, self.student_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'session_id': self.session_id,
            'student_id': self.student_id,
            'course_id': self.course_id,
            'status': self.status.value,
            'has_checked_in': self.has_checked_in,
            'check_in_time': self.check_in_time.isoformat() if self.check_in_time else None,
            'check_in_method': self.check_in_method.value,
            'distance_from_location': self.distance_from_location,
            'is_valid_location': self.is_valid_location,
            'note': self.note,
            'marked_by': self.marked_by
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttendanceRecordInfo':
        try:
            status = AttendanceStatus(data['status'])
            method = CheckInMethod(data.get('check_in_method') or CheckInMethod.LOCATION.value)
        except ValueError as e:
            raise ValidationError(str(e))
        course_id = data.get('course_id')
        return cls(
            session_id=str(data['session_id']),
            student_id=str(data['student_id']),
            course_id=str(course_id) if course_id is not None else None,
            status=status,
            has_checked_in=bool(data.get('has_checked_in', False)),
            check_in_time=parse_datetime(data.get('check_in_time')),
            check_in_method=method,
            distance_from_location=data.get('distance_from_location'),
            is_valid_location=data.get('is_valid_location'),
            note=data.get('note'),
            marked_by=data.get('marked_by')
        )


@dataclass(frozen=True)
class BatchItemResult:
    """Outcome of one student's entry in a manual batch."""
    student_id: str
    success: bool
    status: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'student_id': self.student_id,
            'success': self.success,
            'status': self.status,
            'error': self.error,
            'code': self.code
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BatchItemResult':
        return cls(
            student_id=str(data['student_id']),
            success=bool(data.get('success')),
            status=data.get('status'),
            error=data.get('error'),
            code=data.get('code')
        )


@dataclass(frozen=True)
class CourseStats:
    course_id: str
    total_sessions: int
    attended_sessions: int
    attendance_rate: float


@dataclass(frozen=True)
class AttendanceStats:
    """A student's attendance totals across courses."""
    total_sessions: int
    attended_sessions: int
    attendance_rate: float
    course_stats: List[CourseStats] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_sessions': self.total_sessions,
            'attended_sessions': self.attended_sessions,
            'attendance_rate': self.attendance_rate,
            'course_stats': [
                {
                    'course_id': course.course_id,
                    'total_sessions': course.total_sessions,
                    'attended_sessions': course.attended_sessions,
                    'attendance_rate': course.attendance_rate
                }
                for course in self.course_stats
            ]
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AttendanceStats':
        return cls(
            total_sessions=int(data.get('total_sessions', 0)),
            attended_sessions=int(data.get('attended_sessions', 0)),
            attendance_rate=float(data.get('attendance_rate', 0)),
            course_stats=[
                CourseStats(
                    course_id=str(course['course_id']),
                    total_sessions=int(course.get('total_sessions', 0)),
                    attended_sessions=int(course.get('attended_sessions', 0)),
                    attendance_rate=float(course.get('attendance_rate', 0))
                )
                for course in data.get('course_stats', [])
            ]
        )


def attendance_rate(attended: int, total: int) -> float:
    """Percentage of attended sessions, rounded to two decimals."""
    if total <= 0:
        return 0.0
    return round(attended / total * 100, 2)


@dataclass
class SessionContext:
    """Who is acting and what time it is; passed explicitly instead of global auth state."""
    user_id: str
    role: UserRole = UserRole.STUDENT
    access_token: Optional[str] = None
    clock: Callable[[], datetime] = datetime.now

    def now(self) -> datetime:
        return self.clock()

    @property
    def is_teacher(self) -> bool:
        return self.role in (UserRole.TEACHER, UserRole.ADMIN)

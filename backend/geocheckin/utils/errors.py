# backend/geocheckin/utils/errors.py
"""Error taxonomy and result types shared by the check-in engine and the API."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar, Union

from geocheckin.utils.helpers import format_distance

T = TypeVar('T')


class ValidationError(Exception):
    """Malformed input supplied by a caller."""
    pass


class InvalidCoordinate(ValidationError):
    """Latitude, longitude or accuracy outside its valid range."""
    pass


class ErrorCode(Enum):
    """Machine-readable failure identifiers, identical on the client and the wire."""
    PERMISSION_DENIED = 'PERMISSION_DENIED'
    PERMISSION_PERMANENTLY_DENIED = 'PERMISSION_PERMANENTLY_DENIED'
    POSITION_UNAVAILABLE = 'POSITION_UNAVAILABLE'
    LOCATION_TIMEOUT = 'LOCATION_TIMEOUT'
    LOCATION_UNAVAILABLE = 'LOCATION_UNAVAILABLE'
    ALREADY_CHECKED_IN = 'ALREADY_CHECKED_IN'
    NOT_TODAY = 'NOT_TODAY'
    SESSION_CLOSED = 'SESSION_CLOSED'
    TOO_EARLY = 'TOO_EARLY'
    TOO_LATE = 'TOO_LATE'
    OUT_OF_RANGE = 'OUT_OF_RANGE'
    CHECK_IN_IN_PROGRESS = 'CHECK_IN_IN_PROGRESS'
    NOT_FOUND = 'NOT_FOUND'
    VALIDATION_ERROR = 'VALIDATION_ERROR'
    NETWORK_ERROR = 'NETWORK_ERROR'
    SERVER_ERROR = 'SERVER_ERROR'
    UNKNOWN_ERROR = 'UNKNOWN_ERROR'


MESSAGES = {
    ErrorCode.PERMISSION_DENIED: "Location permission was denied. Allow location access to check in.",
    ErrorCode.PERMISSION_PERMANENTLY_DENIED: (
        "Location access is blocked. Enable it for this app in your device settings."
    ),
    ErrorCode.POSITION_UNAVAILABLE: "Your position is unavailable. Make sure GPS is turned on.",
    ErrorCode.LOCATION_TIMEOUT: "Getting your location took too long. Please try again.",
    ErrorCode.LOCATION_UNAVAILABLE: (
        "Could not determine your location. Check GPS and try again, preferably near a window."
    ),
    ErrorCode.ALREADY_CHECKED_IN: "You have already checked in for this session.",
    ErrorCode.NOT_TODAY: "This session is not scheduled for today.",
    ErrorCode.SESSION_CLOSED: "The teacher has not opened this session for check-in.",
    ErrorCode.TOO_EARLY: "Check-in has not started yet for this session.",
    ErrorCode.TOO_LATE: "The check-in window for this session has ended.",
    ErrorCode.OUT_OF_RANGE: "You are outside the allowed check-in area.",
    ErrorCode.CHECK_IN_IN_PROGRESS: "A check-in for this session is already being processed.",
    ErrorCode.NOT_FOUND: "The attendance session could not be found.",
    ErrorCode.VALIDATION_ERROR: "The check-in request is invalid.",
    ErrorCode.NETWORK_ERROR: "Network error. Check your internet connection and try again.",
    ErrorCode.SERVER_ERROR: "The server is having trouble right now. Please try again later.",
    ErrorCode.UNKNOWN_ERROR: "Something went wrong. Please try again.",
}

# Identifiers older servers send for the same conditions
SERVER_CODE_ALIASES = {
    'DUPLICATE_ATTENDANCE': ErrorCode.ALREADY_CHECKED_IN,
    'LOCATION_TOO_FAR': ErrorCode.OUT_OF_RANGE,
    'TIME_EXPIRED': ErrorCode.TOO_LATE,
    'BAD_REQUEST': ErrorCode.VALIDATION_ERROR,
    'TIMEOUT': ErrorCode.NETWORK_ERROR,
}


def describe_error(
    code: ErrorCode,
    distance_meters: Optional[float] = None,
    radius_meters: Optional[float] = None
) -> str:
    """Return the user-facing message for an error code."""
    if code is ErrorCode.OUT_OF_RANGE and distance_meters is not None and radius_meters is not None:
        missed_by = max(distance_meters - radius_meters, 0)
        return (
            f"You are {format_distance(distance_meters)} from the class location. "
            f"Check-in is allowed within {format_distance(radius_meters)} "
            f"({format_distance(missed_by)} too far)."
        )
    return MESSAGES.get(code, MESSAGES[ErrorCode.UNKNOWN_ERROR])


@dataclass(frozen=True)
class CheckInError:
    """A typed failure returned to callers instead of an exception."""
    code: ErrorCode
    message: str
    distance_meters: Optional[float] = None
    radius_meters: Optional[float] = None
    status_code: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_code(
        cls,
        code: ErrorCode,
        message: Optional[str] = None,
        **kwargs
    ) -> 'CheckInError':
        """Build an error, filling in the standard message when none is given."""
        if message is None:
            message = describe_error(
                code,
                kwargs.get('distance_meters'),
                kwargs.get('radius_meters')
            )
        return cls(code=code, message=message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code.value,
            'message': self.message,
            'distance_meters': self.distance_meters,
            'radius_meters': self.radius_meters
        }


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying a typed error."""
    error: CheckInError

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok, Err]


def map_server_error(status_code: int, body: Optional[Dict[str, Any]]) -> CheckInError:
    """Translate a repository error response into the shared taxonomy."""
    body = body or {}
    server_message = body.get('message')
    data = body.get('data')
    if not isinstance(data, dict):
        data = {}
    raw_code = body.get('code')

    code = None
    if raw_code:
        code = SERVER_CODE_ALIASES.get(raw_code)
        if code is None and raw_code in ErrorCode.__members__:
            code = ErrorCode[raw_code]

    if code is None:
        if status_code == 409:
            code = ErrorCode.ALREADY_CHECKED_IN
        elif status_code == 404:
            code = ErrorCode.NOT_FOUND
        elif status_code in (400, 401, 403, 422):
            code = ErrorCode.VALIDATION_ERROR
        elif status_code == 429 or status_code >= 500:
            code = ErrorCode.SERVER_ERROR
        else:
            code = ErrorCode.UNKNOWN_ERROR

    distance = data.get('distance_meters')
    radius = data.get('radius_meters')

    # Validation and unknown failures are only actionable with the server's wording
    if code in (ErrorCode.VALIDATION_ERROR, ErrorCode.UNKNOWN_ERROR) and server_message:
        message = server_message
    else:
        message = describe_error(code, distance, radius)

    return CheckInError(
        code=code,
        message=message,
        distance_meters=distance,
        radius_meters=radius,
        status_code=status_code,
        details={'server_message': server_message} if server_message else {}
    )

"""Validation utilities for the application."""
import math
import re
from datetime import date
from typing import Any, Dict, List, Optional

from geocheckin.utils.errors import InvalidCoordinate, ValidationError

TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):[0-5][0-9]$')

ATTENDANCE_STATUSES = ('present', 'late', 'absent', 'excused')

MIN_LOCATION_RADIUS = 10
MAX_LOCATION_RADIUS = 1000

__all__ = ['Validator', 'ValidationError', 'InvalidCoordinate', 'TIME_PATTERN']


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and not math.isnan(value)


class Validator:
    """Validation helper class."""

    @staticmethod
    def validate_coordinate(latitude: Any, longitude: Any, accuracy: Any = None) -> List[str]:
        """Return the problems with a latitude/longitude/accuracy triple."""
        errors = []

        if not _is_number(latitude):
            errors.append("Latitude must be a number")
        elif latitude < -90 or latitude > 90:
            errors.append("Latitude must be between -90 and 90")

        if not _is_number(longitude):
            errors.append("Longitude must be a number")
        elif longitude < -180 or longitude > 180:
            errors.append("Longitude must be between -180 and 180")

        if accuracy is not None:
            if not _is_number(accuracy):
                errors.append("Accuracy must be a number")
            elif accuracy < 0:
                errors.append("Accuracy cannot be negative")

        return errors

    @staticmethod
    def ensure_coordinate(latitude: Any, longitude: Any, accuracy: Any = None) -> None:
        """Raise InvalidCoordinate instead of clamping bad input."""
        errors = Validator.validate_coordinate(latitude, longitude, accuracy)
        if errors:
            raise InvalidCoordinate('; '.join(errors))

    @staticmethod
    def validate_time(value: Any) -> bool:
        """Validate a local HH:MM time string."""
        return isinstance(value, str) and bool(TIME_PATTERN.match(value))

    @staticmethod
    def validate_required_fields(data: Dict, required_fields: List[str]) -> Dict[str, Any]:
        """Validate required fields in data."""
        errors = []

        for field in required_fields:
            if field not in data or data[field] is None or data[field] == '':
                errors.append(f"{field} is required")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def validate_session_data(data: Dict) -> Dict[str, Any]:
        """Validate a request to create an attendance session (time bounds are checked separately)."""
        result = Validator.validate_required_fields(
            data, ['course_id', 'title', 'date', 'start_time', 'end_time', 'class_location_id']
        )
        errors = result['errors']

        if data.get('date'):
            try:
                date.fromisoformat(str(data['date']))
            except ValueError:
                errors.append("date must use the YYYY-MM-DD format")

        override = data.get('max_distance_override')
        if override is not None and (not _is_number(override) or override <= 0):
            errors.append("max_distance_override must be a positive number")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def validate_location_data(data: Dict, partial: bool = False) -> Dict[str, Any]:
        """Validate a class location payload; partial allows missing fields on update."""
        errors = []

        if not partial or 'name' in data:
            if not isinstance(data.get('name'), str) or not data['name'].strip():
                errors.append("name is required")
        if not partial or 'address' in data:
            if not isinstance(data.get('address'), str) or not data['address'].strip():
                errors.append("address is required")

        if not partial or 'latitude' in data or 'longitude' in data:
            errors.extend(Validator.validate_coordinate(data.get('latitude'), data.get('longitude')))

        radius = data.get('radius_meters')
        if radius is not None:
            if not _is_number(radius):
                errors.append("radius_meters must be a number")
            elif radius < MIN_LOCATION_RADIUS or radius > MAX_LOCATION_RADIUS:
                errors.append(
                    f"radius_meters must be between {MIN_LOCATION_RADIUS} and {MAX_LOCATION_RADIUS}"
                )

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

    @staticmethod
    def validate_manual_mark(
        session_id: Any,
        student_id: Any,
        status: Any,
        note: Optional[str] = None,
        max_note_length: int = 255
    ) -> List[str]:
        """Validate a teacher's manual attendance mark."""
        errors = []

        if not isinstance(session_id, str) or not session_id.strip():
            errors.append("Session ID is required")
        if not isinstance(student_id, str) or not student_id.strip():
            errors.append("Student ID is required")

        status_value = getattr(status, 'value', status)
        if status_value not in ATTENDANCE_STATUSES:
            errors.append(f"Invalid attendance status: {status_value!r}")

        if note is not None:
            if not isinstance(note, str):
                errors.append("Note must be text")
            elif len(note) > max_note_length:
                errors.append(f"Note cannot exceed {max_note_length} characters")

        return errors

    @staticmethod
    def minutes_of(value: str) -> int:
        hours, minutes = value.split(':')
        return int(hours) * 60 + int(minutes)

"""Models package with all models."""
from .base import BaseModel
from .class_location import ClassLocation
from .attendance_session import AttendanceSession
from .attendance import AttendanceRecord

__all__ = ['BaseModel', 'ClassLocation', 'AttendanceSession', 'AttendanceRecord']

# backend/geocheckin/utils/decorators.py
"""Custom decorators for authorization."""
from functools import wraps

from flask_jwt_extended import get_jwt

from geocheckin.domain import UserRole
from geocheckin.utils.helpers import error_response


def current_role() -> UserRole:
    """Role claim of the current token; unknown claims count as student."""
    try:
        return UserRole(get_jwt().get('role', UserRole.STUDENT.value))
    except ValueError:
        return UserRole.STUDENT


def teacher_required(f):
    """Decorator to require teacher role or higher."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_role() not in (UserRole.TEACHER, UserRole.ADMIN):
            return error_response("Teacher access required", 403)

        return f(*args, **kwargs)
    return decorated_function


def student_required(f):
    """Decorator to require student role."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if current_role() is not UserRole.STUDENT:
            return error_response("Student access required", 403)

        return f(*args, **kwargs)
    return decorated_function

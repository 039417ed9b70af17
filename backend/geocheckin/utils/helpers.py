"""Helper functions for the application."""
from datetime import datetime
from typing import Any, Optional

from flask import current_app, jsonify


def handle_error(error, status_code: int):
    """Handle application errors with consistent format."""
    return jsonify({
        'error': True,
        'message': str(error),
        'status_code': status_code
    }), status_code


def success_response(data: Any = None, message: str = "Success", status_code: int = 200):
    """Return consistent success response."""
    response = {
        'error': False,
        'message': message
    }

    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def error_response(message: str, status_code: int = 400, code=None, data: Any = None):
    """Return consistent error response with a machine-readable code."""
    response = {
        'error': True,
        'message': message,
        'status_code': status_code
    }

    if code is not None:
        response['code'] = getattr(code, 'value', code)
    if data is not None:
        response['data'] = data

    return jsonify(response), status_code


def current_time() -> datetime:
    """Local wall-clock time; tests swap it through the CHECKIN_CLOCK config key."""
    clock = current_app.config.get('CHECKIN_CLOCK') or datetime.now
    return clock()


def format_distance(distance: Optional[float]) -> str:
    """Render a distance in meters for display."""
    if distance is None:
        return '-'
    if distance < 1:
        return '< 1 m'
    if distance < 1000:
        return f'{round(distance)} m'
    return f'{distance / 1000:.1f} km'

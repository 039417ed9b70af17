"""Settings shared by every environment."""
import os
from datetime import timedelta


class Config:
    """Base configuration class."""

    # Basic Flask config
    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///geocheckin_dev.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'dev-jwt-secret-change-in-production-0000')
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)

    # CORS
    CORS_ORIGINS = os.getenv('CORS_ORIGINS', '*').split(',')

    # Rate Limiting
    RATELIMIT_STORAGE_URI = 'memory://'
    CHECKIN_RATE_LIMIT = os.getenv('CHECKIN_RATE_LIMIT', '10 per minute')

    # Location acquisition
    LOCATION_TIMEOUT_MS = int(os.getenv('LOCATION_TIMEOUT_MS', 18000))
    LOCATION_FALLBACK_TIMEOUT_MS = int(os.getenv('LOCATION_FALLBACK_TIMEOUT_MS', 12000))
    LOCATION_MAXIMUM_AGE_MS = int(os.getenv('LOCATION_MAXIMUM_AGE_MS', 10000))
    LOCATION_PLATFORM = os.getenv('LOCATION_PLATFORM', 'android')

    # Check-in rules
    LATE_CHECK_IN_GRACE_MINUTES = float(os.getenv('LATE_CHECK_IN_GRACE_MINUTES', 0))
    MANUAL_NOTE_MAX_LENGTH = 255
    DEFAULT_LOCATION_RADIUS_METERS = 100

    # Repository client
    REPOSITORY_BASE_URL = os.getenv('REPOSITORY_BASE_URL', 'http://127.0.0.1:5000/api/attendance')
    REPOSITORY_TIMEOUT_SECONDS = float(os.getenv('REPOSITORY_TIMEOUT_SECONDS', 15))

    # None means wall-clock local time
    CHECKIN_CLOCK = None

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_DIR = 'logs'

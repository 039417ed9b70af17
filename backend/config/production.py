"""Production configuration."""
import os

from .base import Config


class ProductionConfig(Config):
    """Production configuration class."""

    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv('SECRET_KEY')  # Must be set in production

    # Database
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL')

    # Redis
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

    # JWT Configuration
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')

    # Rate Limiting shared across workers
    RATELIMIT_STORAGE_URI = REDIS_URL

    LOG_LEVEL = 'INFO'
    LOG_DIR = os.getenv('LOG_DIR', '/app/logs')

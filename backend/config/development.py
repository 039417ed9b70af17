"""Development configuration."""
from .base import Config


class DevelopmentConfig(Config):
    """Development configuration class."""

    DEBUG = True
    TESTING = False
    SQLALCHEMY_ECHO = False

    LOG_LEVEL = 'DEBUG'

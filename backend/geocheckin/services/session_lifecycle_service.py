# backend/geocheckin/services/session_lifecycle_service.py
"""Session state classification and teacher toggle validation."""
import dataclasses
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from geocheckin.domain import SessionInfo
from geocheckin.utils.errors import ValidationError
from geocheckin.utils.validators import Validator


class SessionState(Enum):
    """Where a session is in its lifecycle at a given moment."""
    SCHEDULED = 'scheduled'
    OPEN = 'open'
    CLOSED = 'closed'
    EXPIRED = 'expired'


@dataclass(frozen=True)
class ToggleDecision:
    """Outcome of validating a teacher's open/close request."""
    is_open: bool
    state_before: SessionState
    state_after: SessionState
    warning: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_open': self.is_open,
            'state_before': self.state_before.value,
            'state_after': self.state_after.value,
            'warning': self.warning
        }


class SessionLifecycleService:
    """Classifies sessions; never schedules transitions itself."""

    @staticmethod
    def classify(session: SessionInfo, now: datetime) -> SessionState:
        """Classify a session given its stored fields and the current time."""
        if now > session.ends_at:
            return SessionState.EXPIRED
        if now < session.starts_at:
            return SessionState.SCHEDULED
        return SessionState.OPEN if session.is_open else SessionState.CLOSED

    @staticmethod
    def can_reopen(state: SessionState) -> bool:
        """Whether opening the session would make it eligible for check-ins again."""
        return state is not SessionState.EXPIRED

    @classmethod
    def validate_toggle(cls, session: SessionInfo, is_open: Any, now: datetime) -> ToggleDecision:
        """
        Validate a teacher's open/close request.

        Any boolean is accepted at any time. Opening an expired session is
        stored as requested, but check-ins stay rejected by the time check,
        so the decision carries a warning the caller can show.
        """
        if not isinstance(is_open, bool):
            raise ValidationError("is_open must be true or false")

        state_before = cls.classify(session, now)
        state_after = cls.classify(dataclasses.replace(session, is_open=is_open), now)

        warning = None
        if is_open and not cls.can_reopen(state_after):
            warning = "Session is open but its time window has ended; check-ins will be rejected."
        elif is_open and state_after is SessionState.SCHEDULED:
            warning = "Session is open but check-in starts at {}.".format(
                session.start_time.strftime('%H:%M')
            )

        return ToggleDecision(
            is_open=is_open,
            state_before=state_before,
            state_after=state_after,
            warning=warning
        )

    @staticmethod
    def validate_session_times(start_time: Any, end_time: Any) -> Dict[str, Any]:
        """Validate HH:MM bounds of a same-day session."""
        errors = []

        if not Validator.validate_time(start_time):
            errors.append("start_time must use the HH:MM format")
        if not Validator.validate_time(end_time):
            errors.append("end_time must use the HH:MM format")
        if not errors and Validator.minutes_of(start_time) >= Validator.minutes_of(end_time):
            errors.append("start_time must be before end_time")

        return {
            "is_valid": len(errors) == 0,
            "errors": errors
        }

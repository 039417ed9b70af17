"""Session repository interface consumed by the check-in engine."""
from abc import ABC, abstractmethod
from typing import List, Optional

from geocheckin.domain import AttendanceStatus, Coordinate
from geocheckin.utils.errors import Result


class SessionRepository(ABC):
    """
    Network CRUD for sessions and attendance records.

    Every method returns Ok(value) or Err(CheckInError); transport failures
    are reported as NETWORK_ERROR results, not raised.
    """

    @abstractmethod
    async def get_session(self, session_id: str) -> Result:
        """Ok(SessionInfo)."""

    @abstractmethod
    async def get_my_record(self, session_id: str) -> Result:
        """Ok(AttendanceRecordInfo or None) for the authenticated student."""

    @abstractmethod
    async def check_in(self, session_id: str, location: Coordinate) -> Result:
        """Ok(AttendanceRecordInfo) as confirmed by the server."""

    @abstractmethod
    async def manual_mark(
        self,
        session_id: str,
        student_id: str,
        status: AttendanceStatus,
        note: Optional[str] = None
    ) -> Result:
        """Ok(AttendanceRecordInfo)."""

    @abstractmethod
    async def manual_mark_batch(self, session_id: str, entries: List[dict]) -> Result:
        """Ok(list of BatchItemResult); entries hold student_id, status and note."""

    @abstractmethod
    async def set_session_open(self, session_id: str, is_open: bool) -> Result:
        """Ok(SessionInfo) after the toggle."""

    @abstractmethod
    async def get_history(self, limit: int = 20) -> Result:
        """Ok(list of AttendanceRecordInfo), newest first."""

    @abstractmethod
    async def get_stats(self) -> Result:
        """Ok(AttendanceStats)."""

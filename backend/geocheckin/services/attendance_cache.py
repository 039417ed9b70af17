# backend/geocheckin/services/attendance_cache.py
"""Client-side session and attendance state, reconciled from server responses."""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from geocheckin.domain import (
    AttendanceRecordInfo, AttendanceStats, AttendanceStatus, SessionInfo, attendance_rate
)


@dataclass(frozen=True)
class SessionSummary:
    """Per-session attendance counts."""
    total: int
    present: int
    late: int
    absent: int
    excused: int
    not_marked: int
    attendance_rate: float

    def to_dict(self) -> Dict:
        return {
            'total': self.total,
            'present': self.present,
            'late': self.late,
            'absent': self.absent,
            'excused': self.excused,
            'not_marked': self.not_marked,
            'attendance_rate': self.attendance_rate
        }


def summarize_session(
    records: Iterable[AttendanceRecordInfo],
    total_students: Optional[int] = None
) -> SessionSummary:
    """Count statuses; students without a mark count as not marked."""
    counts = {status: 0 for status in AttendanceStatus}
    marked = 0
    for record in records:
        if not record.has_checked_in:
            continue
        marked += 1
        counts[record.status] += 1

    total = max(total_students or 0, marked)
    attended = counts[AttendanceStatus.PRESENT] + counts[AttendanceStatus.LATE]

    return SessionSummary(
        total=total,
        present=counts[AttendanceStatus.PRESENT],
        late=counts[AttendanceStatus.LATE],
        absent=counts[AttendanceStatus.ABSENT],
        excused=counts[AttendanceStatus.EXCUSED],
        not_marked=total - marked,
        attendance_rate=attendance_rate(attended, total)
    )


class AttendanceCache:
    """
    Holds sessions, records, history and stats for the current user.

    Only the check-in and manual attendance services write here, and only
    with server-confirmed data. Everything else reads the immutable views.
    """

    def __init__(self):
        self._sessions: Dict[str, SessionInfo] = {}
        self._records: Dict[Tuple[str, str], AttendanceRecordInfo] = {}
        self._history: List[AttendanceRecordInfo] = []
        self._stats: Optional[AttendanceStats] = None
        self._selected_session_id: Optional[str] = None

    # Read side

    @property
    def sessions(self) -> Mapping[str, SessionInfo]:
        return MappingProxyType(self._sessions)

    @property
    def history(self) -> Tuple[AttendanceRecordInfo, ...]:
        return tuple(self._history)

    @property
    def stats(self) -> Optional[AttendanceStats]:
        return self._stats

    @property
    def selected_session(self) -> Optional[SessionInfo]:
        if self._selected_session_id is None:
            return None
        return self._sessions.get(self._selected_session_id)

    def get_session(self, session_id: str) -> Optional[SessionInfo]:
        return self._sessions.get(session_id)

    def get_record(self, session_id: str, student_id: str) -> Optional[AttendanceRecordInfo]:
        return self._records.get((session_id, student_id))

    def records_for_session(self, session_id: str) -> List[AttendanceRecordInfo]:
        return [record for key, record in self._records.items() if key[0] == session_id]

    # Write side

    def store_session(self, session: SessionInfo, select: bool = False) -> None:
        self._sessions[session.id] = session
        if select:
            self._selected_session_id = session.id

    def store_record(self, record: AttendanceRecordInfo, in_history: bool = True) -> None:
        """Replace the single record for the pair and move it to the top of history."""
        self._records[record.key] = record
        if not in_history:
            return
        self._history = [item for item in self._history if item.key != record.key]
        self._history.insert(0, record)

    def store_history(self, records: Iterable[AttendanceRecordInfo]) -> None:
        self._history = list(records)
        for record in self._history:
            self._records[record.key] = record

    def store_stats(self, stats: AttendanceStats) -> None:
        self._stats = stats

    def clear(self) -> None:
        self._sessions.clear()
        self._records.clear()
        self._history = []
        self._stats = None
        self._selected_session_id = None

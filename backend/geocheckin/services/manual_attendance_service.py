# backend/geocheckin/services/manual_attendance_service.py
"""Teacher-side attendance: manual marks, batches and the open/close toggle."""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from geocheckin.domain import (
    AttendanceRecordInfo, AttendanceStatus, BatchItemResult, CheckInMethod, SessionContext
)
from geocheckin.repositories.base import SessionRepository
from geocheckin.services.attendance_cache import AttendanceCache
from geocheckin.services.session_lifecycle_service import SessionLifecycleService
from geocheckin.utils.errors import CheckInError, Err, ErrorCode, Result, ValidationError
from geocheckin.utils.validators import Validator

logger = logging.getLogger(__name__)

MarkValue = Union[AttendanceStatus, str, Tuple[Any, Optional[str]]]


@dataclass
class BatchResult:
    """Itemized outcome of a batch; one entry per submitted student."""
    succeeded: List[BatchItemResult] = field(default_factory=list)
    failed: List[BatchItemResult] = field(default_factory=list)

    @property
    def summary(self) -> Dict[str, int]:
        return {
            'total': len(self.succeeded) + len(self.failed),
            'successful': len(self.succeeded),
            'failed': len(self.failed)
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            'results': [item.to_dict() for item in self.succeeded + self.failed],
            'summary': self.summary
        }


def _coerce_status(value: Any) -> Optional[AttendanceStatus]:
    if isinstance(value, AttendanceStatus):
        return value
    try:
        return AttendanceStatus(value)
    except ValueError:
        return None


class ManualAttendanceService:
    """Manual override path; bypasses location and time checks entirely."""

    def __init__(
        self,
        context: SessionContext,
        repository: SessionRepository,
        cache: Optional[AttendanceCache] = None,
        note_max_length: int = 255
    ):
        self.context = context
        self.repository = repository
        self.cache = cache if cache is not None else AttendanceCache()
        self.note_max_length = note_max_length

    def _validate(self, session_id, student_id, status, note) -> Optional[CheckInError]:
        errors = Validator.validate_manual_mark(
            session_id, student_id, status, note, self.note_max_length
        )
        if errors:
            return CheckInError.from_code(ErrorCode.VALIDATION_ERROR, '; '.join(errors))
        return None

    async def manual_mark(
        self,
        session_id: str,
        student_id: str,
        status: Union[AttendanceStatus, str],
        note: Optional[str] = None
    ) -> Result:
        """Assign a status to one student; returns Ok(AttendanceRecordInfo)."""
        error = self._validate(session_id, student_id, status, note)
        if error is not None:
            return Err(error)

        result = await self.repository.manual_mark(
            session_id, student_id, _coerce_status(status), note
        )
        if result.ok:
            self._store(result.value)
            logger.info('Marked %s as %s in session %s',
                        student_id, result.value.status.value, session_id)
        return result

    async def mark_batch(self, session_id: str, marks: Mapping[str, MarkValue]) -> BatchResult:
        """
        Mark many students at once.

        Each entry is validated on its own; invalid entries are reported and
        the rest are still submitted. A failed submission fails only the
        entries it carried.
        """
        batch = BatchResult()
        entries = []

        for student_id, value in marks.items():
            status, note = value if isinstance(value, tuple) else (value, None)
            error = self._validate(session_id, student_id, status, note)
            if error is not None:
                batch.failed.append(BatchItemResult(
                    student_id=str(student_id),
                    success=False,
                    error=error.message,
                    code=error.code.value
                ))
                continue
            entries.append({
                'student_id': student_id,
                'status': _coerce_status(status).value,
                'note': note
            })

        if not entries:
            return batch

        result = await self.repository.manual_mark_batch(session_id, entries)
        if not result.ok:
            logger.warning('Batch attendance for session %s failed: %s',
                           session_id, result.error.code.value)
            for entry in entries:
                batch.failed.append(BatchItemResult(
                    student_id=entry['student_id'],
                    success=False,
                    status=entry['status'],
                    error=result.error.message,
                    code=result.error.code.value
                ))
            return batch

        for item in result.value:
            (batch.succeeded if item.success else batch.failed).append(item)

        for item in batch.succeeded:
            if _coerce_status(item.status) is None:
                continue
            self._store(AttendanceRecordInfo(
                session_id=session_id,
                student_id=item.student_id,
                status=AttendanceStatus(item.status),
                has_checked_in=True,
                check_in_method=CheckInMethod.MANUAL,
                marked_by=self.context.user_id
            ))

        logger.info('Batch attendance for session %s: %s', session_id, batch.summary)
        return batch

    def _store(self, record: AttendanceRecordInfo) -> None:
        # Marks for other students stay out of this user's history
        self.cache.store_record(record, in_history=record.student_id == self.context.user_id)

    async def set_session_open(self, session_id: str, is_open: Any) -> Result:
        """Open or close a session for check-ins; returns Ok(SessionInfo)."""
        if not isinstance(session_id, str) or not session_id.strip():
            return Err(CheckInError.from_code(ErrorCode.VALIDATION_ERROR, "Session ID is required"))

        warning = None
        session = self.cache.get_session(session_id)
        try:
            if session is not None:
                decision = SessionLifecycleService.validate_toggle(session, is_open, self.context.now())
                warning = decision.warning
            elif not isinstance(is_open, bool):
                raise ValidationError("is_open must be true or false")
        except ValidationError as e:
            return Err(CheckInError.from_code(ErrorCode.VALIDATION_ERROR, str(e)))

        if warning:
            logger.warning('Session %s: %s', session_id, warning)

        result = await self.repository.set_session_open(session_id, is_open)
        if result.ok:
            self.cache.store_session(result.value)
            logger.info('Session %s is now %s', session_id, 'open' if is_open else 'closed')
        return result

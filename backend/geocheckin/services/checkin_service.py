# backend/geocheckin/services/checkin_service.py
"""Student check-in flow: acquire, pre-validate, submit, reconcile."""
import asyncio
import logging
from typing import Dict, Optional, Set

from geocheckin.domain import Coordinate, SessionContext
from geocheckin.repositories.base import SessionRepository
from geocheckin.services.attendance_cache import AttendanceCache
from geocheckin.services.eligibility_service import EligibilityService, EligibilityVerdict
from geocheckin.services.location_service import LocationService
from geocheckin.utils.errors import CheckInError, Err, ErrorCode, Ok, Result

logger = logging.getLogger(__name__)

# Acquisition failures a user can fix themselves keep their own code
PERMISSION_ERRORS = (ErrorCode.PERMISSION_DENIED, ErrorCode.PERMISSION_PERMANENTLY_DENIED)


class CheckInService:
    """Orchestrates one location check-in for the authenticated student."""

    HISTORY_LIMIT = 20

    def __init__(
        self,
        context: SessionContext,
        location_service: LocationService,
        repository: SessionRepository,
        cache: Optional[AttendanceCache] = None,
        late_grace_minutes: float = 0,
        timeout_ms: int = LocationService.DEFAULT_TIMEOUT_MS
    ):
        self.context = context
        self.location_service = location_service
        self.repository = repository
        self.cache = cache if cache is not None else AttendanceCache()
        self.late_grace_minutes = late_grace_minutes
        self.timeout_ms = timeout_ms
        self._in_flight: Set[str] = set()
        self._submissions: Dict[str, asyncio.Task] = {}

    def is_in_flight(self, session_id: str) -> bool:
        return session_id in self._in_flight

    async def perform_check_in(self, session_id: str) -> Result:
        """
        Check the student in to a session from their current location.

        Returns Ok(AttendanceRecordInfo) as confirmed by the server, or
        Err(CheckInError). Nothing is submitted when a cached session already
        rules the attempt out, and a submission is never retried.
        """
        if not isinstance(session_id, str) or not session_id.strip():
            return Err(CheckInError.from_code(ErrorCode.VALIDATION_ERROR, "Session ID is required"))

        if session_id in self._in_flight:
            logger.info('Check-in for session %s already in progress', session_id)
            return Err(CheckInError.from_code(ErrorCode.CHECK_IN_IN_PROGRESS))

        self._in_flight.add(session_id)
        try:
            return await self._check_in(session_id)
        finally:
            # A submission still running keeps the session guarded
            if session_id not in self._submissions:
                self._in_flight.discard(session_id)

    async def _check_in(self, session_id: str) -> Result:
        session = self.cache.get_session(session_id)
        record = self.cache.get_record(session_id, self.context.user_id)

        if record is not None and record.has_checked_in:
            return Err(CheckInError.from_code(ErrorCode.ALREADY_CHECKED_IN))

        if session is not None:
            rejection = EligibilityService.precheck(
                session, record, self.context.now(), self.late_grace_minutes
            )
            if rejection is not None:
                logger.info('Check-in for session %s rejected locally: %s',
                            session_id, rejection.reason.value)
                return Err(rejection.to_error())

        location = await self.location_service.get_current_location(
            high_accuracy=True, timeout_ms=self.timeout_ms
        )
        if not location.ok:
            if location.error in PERMISSION_ERRORS:
                return Err(CheckInError.from_code(location.error))
            return Err(CheckInError.from_code(
                ErrorCode.LOCATION_UNAVAILABLE,
                details={'cause': location.error.value}
            ))

        if session is not None:
            verdict = EligibilityService.evaluate(
                session, record, self.context.now(), location.coordinate, self.late_grace_minutes
            )
            if not verdict.can_attend:
                logger.info('Check-in for session %s rejected locally: %s',
                            session_id, verdict.reason.value)
                return Err(verdict.to_error())

        # Once sent, a submission and its reconcile outlive a cancelled caller
        task = asyncio.ensure_future(self._submit(session_id, location.coordinate))
        self._submissions[session_id] = task
        task.add_done_callback(lambda _: self._submission_done(session_id))
        return await asyncio.shield(task)

    async def _submit(self, session_id: str, coordinate: Coordinate) -> Result:
        logger.info('Submitting check-in for session %s by %s', session_id, self.context.user_id)
        try:
            result = await self.repository.check_in(session_id, coordinate)
        except Exception:
            logger.exception('Check-in submission for session %s failed', session_id)
            return Err(CheckInError.from_code(ErrorCode.UNKNOWN_ERROR))

        if not result.ok:
            if result.error.code is ErrorCode.ALREADY_CHECKED_IN:
                await self._refresh_my_record(session_id)
            return result

        self.cache.store_record(result.value)
        await self._refresh_summaries()
        return result

    def _submission_done(self, session_id: str) -> None:
        self._submissions.pop(session_id, None)
        self._in_flight.discard(session_id)

    async def wait_for_submissions(self) -> None:
        """Wait until every submission already sent has been reconciled."""
        pending = list(self._submissions.values())
        if pending:
            await asyncio.gather(*pending)

    async def load_session(self, session_id: str) -> Result:
        """Fetch a session and the student's record for it into the cache."""
        result = await self.repository.get_session(session_id)
        if not result.ok:
            return result

        self.cache.store_session(result.value, select=True)
        await self._refresh_my_record(session_id)
        return result

    async def live_status(self, session_id: str, coordinate: Optional[Coordinate] = None) -> Result:
        """
        Evaluate eligibility for a cached session without submitting.

        Uses the given coordinate, or the latest watched or acquired one.
        """
        session = self.cache.get_session(session_id)
        if session is None:
            return Err(CheckInError.from_code(ErrorCode.NOT_FOUND))

        coordinate = coordinate or self.location_service.last_known
        verdict: EligibilityVerdict = EligibilityService.evaluate(
            session,
            self.cache.get_record(session_id, self.context.user_id),
            self.context.now(),
            coordinate,
            self.late_grace_minutes
        )
        return Ok(verdict)

    async def _refresh_my_record(self, session_id: str) -> None:
        result = await self.repository.get_my_record(session_id)
        if not result.ok:
            logger.warning('Refreshing attendance record for session %s failed: %s',
                           session_id, result.error.code.value)
        elif result.value is not None:
            self.cache.store_record(result.value)

    async def _refresh_summaries(self) -> None:
        history = await self.repository.get_history(self.HISTORY_LIMIT)
        if history.ok:
            self.cache.store_history(history.value)
        else:
            logger.warning('Refreshing attendance history failed: %s', history.error.code.value)

        stats = await self.repository.get_stats()
        if stats.ok:
            self.cache.store_stats(stats.value)
        else:
            logger.warning('Refreshing attendance stats failed: %s', stats.error.code.value)

# backend/geocheckin/repositories/http_repository.py
"""Session repository backed by the attendance REST API."""
import asyncio
import logging
from typing import Any, Callable, Dict, List, Optional

import requests

from geocheckin.domain import (
    AttendanceRecordInfo, AttendanceStats, AttendanceStatus, BatchItemResult,
    Coordinate, SessionContext, SessionInfo
)
from geocheckin.repositories.base import SessionRepository
from geocheckin.utils.errors import (
    CheckInError, Err, ErrorCode, Ok, Result, ValidationError, map_server_error
)

logger = logging.getLogger(__name__)


class HttpSessionRepository(SessionRepository):
    """
    Talks to the /api/attendance endpoints.

    Requests are blocking, so each one runs via asyncio.to_thread and the
    event loop keeps serving while a call is outstanding. Calls are never
    retried here; a check-in submission is not idempotent.
    """

    DEFAULT_TIMEOUT_SECONDS = 15

    def __init__(
        self,
        base_url: str,
        context: SessionContext,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        http: Optional[Any] = None
    ):
        self.base_url = base_url.rstrip('/')
        self.context = context
        self.timeout = timeout
        self.http = http or requests.Session()

    @classmethod
    def from_config(cls, context: SessionContext, config, http: Optional[Any] = None) -> 'HttpSessionRepository':
        """Build from a config class or mapping with the REPOSITORY_* keys."""
        def get(key, default):
            if isinstance(config, dict):
                return config.get(key, default)
            return getattr(config, key, default)

        base_url = get('REPOSITORY_BASE_URL', None)
        if not base_url:
            raise ValueError('REPOSITORY_BASE_URL is not configured')

        return cls(
            base_url,
            context,
            timeout=get('REPOSITORY_TIMEOUT_SECONDS', cls.DEFAULT_TIMEOUT_SECONDS),
            http=http
        )

    def _headers(self) -> Dict[str, str]:
        headers = {'Accept': 'application/json'}
        if self.context.access_token:
            headers['Authorization'] = f'Bearer {self.context.access_token}'
        return headers

    def _send(
        self,
        method: str,
        path: str,
        payload: Optional[Dict] = None,
        params: Optional[Dict] = None
    ) -> Result:
        url = f'{self.base_url}{path}'
        try:
            response = self.http.request(
                method, url,
                json=payload,
                params=params,
                headers=self._headers(),
                timeout=self.timeout
            )
        except requests.Timeout:
            logger.warning('%s %s timed out', method, path)
            return Err(CheckInError.from_code(
                ErrorCode.NETWORK_ERROR, 'The connection timed out. Please try again.'
            ))
        except requests.RequestException as e:
            logger.warning('%s %s failed: %s', method, path, e)
            return Err(CheckInError.from_code(ErrorCode.NETWORK_ERROR))

        try:
            body = response.json()
        except ValueError:
            body = None

        if 200 <= response.status_code < 300 and isinstance(body, dict) and not body.get('error'):
            return Ok(body.get('data'))

        error = map_server_error(response.status_code, body if isinstance(body, dict) else None)
        logger.info('%s %s rejected: %s (HTTP %s)', method, path, error.code.value, response.status_code)
        return Err(error)

    async def _call(self, method: str, path: str, parse: Callable[[Any], Any], **kwargs) -> Result:
        result = await asyncio.to_thread(self._send, method, path, **kwargs)
        if not result.ok:
            return result
        try:
            return Ok(parse(result.value))
        except (KeyError, TypeError, ValidationError) as e:
            logger.warning('Unexpected response from %s %s: %s', method, path, e)
            return Err(CheckInError.from_code(
                ErrorCode.SERVER_ERROR, 'The server sent a response this app cannot read.'
            ))

    async def get_session(self, session_id: str) -> Result:
        return await self._call(
            'GET', f'/sessions/{session_id}',
            lambda data: SessionInfo.from_dict(data['session'])
        )

    async def get_my_record(self, session_id: str) -> Result:
        def parse(data):
            record = data.get('record')
            return AttendanceRecordInfo.from_dict(record) if record else None

        return await self._call('GET', f'/sessions/{session_id}/my-status', parse)

    async def check_in(self, session_id: str, location: Coordinate) -> Result:
        return await self._call(
            'POST', f'/sessions/{session_id}/check-in',
            lambda data: AttendanceRecordInfo.from_dict(data['record']),
            payload=location.to_dict()
        )

    async def manual_mark(
        self,
        session_id: str,
        student_id: str,
        status: AttendanceStatus,
        note: Optional[str] = None
    ) -> Result:
        return await self._call(
            'POST', f'/sessions/{session_id}/manual',
            lambda data: AttendanceRecordInfo.from_dict(data['record']),
            payload={'student_id': student_id, 'status': status.value, 'note': note}
        )

    async def manual_mark_batch(self, session_id: str, entries: List[dict]) -> Result:
        return await self._call(
            'POST', f'/sessions/{session_id}/manual/batch',
            lambda data: [BatchItemResult.from_dict(item) for item in data['results']],
            payload={'attendance_list': entries}
        )

    async def set_session_open(self, session_id: str, is_open: bool) -> Result:
        return await self._call(
            'PATCH', f'/sessions/{session_id}/status',
            lambda data: SessionInfo.from_dict(data['session']),
            payload={'is_open': is_open}
        )

    async def get_history(self, limit: int = 20) -> Result:
        return await self._call(
            'GET', '/history',
            lambda data: [AttendanceRecordInfo.from_dict(item) for item in data['records']],
            params={'limit': limit}
        )

    async def get_stats(self) -> Result:
        return await self._call('GET', '/stats', AttendanceStats.from_dict)

# backend/geocheckin/services/location_service.py
"""Location acquisition with permission negotiation and accuracy fallback."""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from geocheckin.domain import Coordinate
from geocheckin.services.location_provider import (
    BLOCKED, GRANTED, PLATFORM_PERMISSIONS, LocationProvider, PositionError, WatchOptions
)
from geocheckin.utils.errors import ErrorCode, InvalidCoordinate, describe_error

logger = logging.getLogger(__name__)


class PermissionState(Enum):
    """Location permission state machine."""
    UNREQUESTED = 'unrequested'
    REQUESTING = 'requesting'
    GRANTED = 'granted'
    DENIED = 'denied'
    PERMANENTLY_DENIED = 'permanently_denied'


class AcquisitionState(Enum):
    """Single-shot acquisition state machine."""
    IDLE = 'idle'
    ACQUIRING = 'acquiring'
    RESOLVED = 'resolved'
    FAILED = 'failed'


POSITION_ERROR_CODES = {
    PositionError.PERMISSION_DENIED: ErrorCode.PERMISSION_DENIED,
    PositionError.POSITION_UNAVAILABLE: ErrorCode.POSITION_UNAVAILABLE,
    PositionError.TIMEOUT: ErrorCode.LOCATION_TIMEOUT,
}

# Failures worth a second, low-accuracy attempt; GPS often cannot fix indoors
FALLBACK_ERRORS = (ErrorCode.POSITION_UNAVAILABLE, ErrorCode.LOCATION_TIMEOUT)


@dataclass
class LocationResult:
    """A coordinate or a typed error; acquisition failures are never raised."""
    coordinate: Optional[Coordinate] = None
    error: Optional[ErrorCode] = None
    message: Optional[str] = None
    used_fallback: bool = False

    @property
    def ok(self) -> bool:
        return self.coordinate is not None

    @classmethod
    def failed(cls, error: ErrorCode, message: Optional[str] = None) -> 'LocationResult':
        return cls(error=error, message=message or describe_error(error))


class WatchHandle:
    """Cancellation token for the process-wide location watch."""

    def __init__(self):
        self.watch_id: Optional[int] = None
        self.cancelled = False
        self.latest: Optional[Coordinate] = None
        self._listeners: List[Callable[[Coordinate], None]] = []

    @property
    def active(self) -> bool:
        return not self.cancelled

    @property
    def listeners(self):
        return tuple(self._listeners)

    def add_listener(self, listener: Callable[[Coordinate], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def __repr__(self) -> str:
        return f'<WatchHandle {self.watch_id} active={self.active}>'


class LocationService:
    """
    Obtains a best-effort device coordinate.

    Permission: UNREQUESTED -> REQUESTING -> GRANTED | DENIED | PERMANENTLY_DENIED.
    Acquisition: IDLE -> ACQUIRING -> RESOLVED | FAILED.
    """

    DEFAULT_TIMEOUT_MS = 18000
    FALLBACK_TIMEOUT_MS = 12000
    MAXIMUM_AGE_MS = 10000
    FALLBACK_MAXIMUM_AGE_MS = 30000
    GPS_STATUS_TIMEOUT_MS = 5000

    def __init__(
        self,
        provider: LocationProvider,
        platform: str = 'android',
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        fallback_timeout_ms: int = FALLBACK_TIMEOUT_MS,
        maximum_age_ms: int = MAXIMUM_AGE_MS
    ):
        if platform not in PLATFORM_PERMISSIONS:
            raise ValueError(f"Unsupported platform: {platform}")

        self.provider = provider
        self.platform = platform
        self.timeout_ms = timeout_ms
        self.fallback_timeout_ms = fallback_timeout_ms
        self.maximum_age_ms = maximum_age_ms

        self.permission_state = PermissionState.UNREQUESTED
        self.acquisition_state = AcquisitionState.IDLE
        self.last_known: Optional[Coordinate] = None
        self.last_error: Optional[ErrorCode] = None

        self._permission_task: Optional[asyncio.Future] = None
        self._watch: Optional[WatchHandle] = None

    @classmethod
    def from_config(cls, provider: LocationProvider, config) -> 'LocationService':
        """Build from a config class or mapping with the LOCATION_* keys."""
        def get(key, default):
            if isinstance(config, dict):
                return config.get(key, default)
            return getattr(config, key, default)

        return cls(
            provider,
            platform=get('LOCATION_PLATFORM', 'android'),
            timeout_ms=get('LOCATION_TIMEOUT_MS', cls.DEFAULT_TIMEOUT_MS),
            fallback_timeout_ms=get('LOCATION_FALLBACK_TIMEOUT_MS', cls.FALLBACK_TIMEOUT_MS),
            maximum_age_ms=get('LOCATION_MAXIMUM_AGE_MS', cls.MAXIMUM_AGE_MS)
        )

    @property
    def permissions(self):
        """Android asks for fine and coarse location, iOS for when-in-use."""
        return PLATFORM_PERMISSIONS[self.platform]

    @property
    def needs_settings_redirect(self) -> bool:
        """True when only the system settings screen can grant access."""
        return self.permission_state is PermissionState.PERMANENTLY_DENIED

    # =================== PERMISSION ===================

    def _interpret_permissions(self, answers: Dict[str, str]) -> PermissionState:
        values = [answers.get(permission) for permission in self.permissions]
        if GRANTED in values:
            return PermissionState.GRANTED
        if values and all(value == BLOCKED for value in values):
            return PermissionState.PERMANENTLY_DENIED
        return PermissionState.DENIED

    async def check_permission(self) -> PermissionState:
        """Refresh the permission state from the platform without prompting."""
        try:
            answers = await self.provider.check_permission(self.permissions)
        except Exception:
            logger.warning('Checking location permission failed', exc_info=True)
            return self.permission_state

        state = self._interpret_permissions(answers)
        if state is not PermissionState.DENIED:
            self.permission_state = state
        return self.permission_state

    async def request_permission(self) -> PermissionState:
        """Prompt for location access unless already decided for good."""
        if self.permission_state is PermissionState.PERMANENTLY_DENIED:
            logger.info('Location permission permanently denied; direct the user to settings')
            return self.permission_state
        if self.permission_state is PermissionState.GRANTED:
            return self.permission_state

        # Concurrent callers share one prompt
        if self._permission_task is None:
            self._permission_task = asyncio.ensure_future(self._prompt_for_permission())
        task = self._permission_task
        try:
            return await task
        finally:
            if self._permission_task is task:
                self._permission_task = None

    async def _prompt_for_permission(self) -> PermissionState:
        self.permission_state = PermissionState.REQUESTING
        try:
            answers = await self.provider.request_permission(self.permissions)
        except Exception:
            logger.warning('Location permission request failed', exc_info=True)
            self.permission_state = PermissionState.DENIED
            return self.permission_state

        self.permission_state = self._interpret_permissions(answers)
        logger.info('Location permission %s', self.permission_state.value)
        return self.permission_state

    # =================== SINGLE-SHOT ===================

    async def get_current_location(
        self,
        high_accuracy: bool = True,
        timeout_ms: Optional[int] = None
    ) -> LocationResult:
        """
        Acquire one coordinate.

        A high-accuracy attempt that times out or finds no position is retried
        once in low-accuracy mode with a shorter timeout before giving up.
        """
        timeout_ms = timeout_ms or self.timeout_ms

        if self.permission_state is not PermissionState.GRANTED:
            state = await self.request_permission()
            if state is PermissionState.PERMANENTLY_DENIED:
                return self._finish(LocationResult.failed(ErrorCode.PERMISSION_PERMANENTLY_DENIED))
            if state is not PermissionState.GRANTED:
                return self._finish(LocationResult.failed(ErrorCode.PERMISSION_DENIED))

        self.acquisition_state = AcquisitionState.ACQUIRING
        result = await self._try_acquire(high_accuracy, timeout_ms, self.maximum_age_ms)

        if not result.ok and high_accuracy and result.error in FALLBACK_ERRORS:
            logger.info('High accuracy location failed (%s); retrying with low accuracy',
                        result.error.value)
            result = await self._try_acquire(
                False, self._fallback_timeout(timeout_ms), self.FALLBACK_MAXIMUM_AGE_MS
            )
            result.used_fallback = True

        return self._finish(result)

    def _fallback_timeout(self, timeout_ms: int) -> int:
        return max(1, min(self.fallback_timeout_ms, timeout_ms * 2 // 3))

    async def _try_acquire(self, high_accuracy: bool, timeout_ms: int, maximum_age_ms: int) -> LocationResult:
        try:
            coordinate = await asyncio.wait_for(
                self.provider.get_position(high_accuracy, timeout_ms, maximum_age_ms),
                timeout_ms / 1000
            )
        except asyncio.TimeoutError:
            return LocationResult.failed(ErrorCode.LOCATION_TIMEOUT)
        except PositionError as e:
            error = POSITION_ERROR_CODES.get(e.code, ErrorCode.POSITION_UNAVAILABLE)
            if error is ErrorCode.PERMISSION_DENIED:
                self.permission_state = PermissionState.DENIED
            return LocationResult.failed(error)
        except InvalidCoordinate as e:
            logger.warning('Provider returned an invalid coordinate: %s', e)
            return LocationResult.failed(ErrorCode.POSITION_UNAVAILABLE)
        except Exception:
            logger.warning('Location provider failed', exc_info=True)
            return LocationResult.failed(ErrorCode.POSITION_UNAVAILABLE)

        return LocationResult(coordinate=coordinate)

    async def check_gps_status(self, timeout_ms: int = GPS_STATUS_TIMEOUT_MS) -> LocationResult:
        """
        Quick pre-flight probe: can the device produce any fix right now?

        One low-accuracy attempt that accepts a cached fix and never prompts
        for permission. Acquisition state is left untouched.
        """
        if self.permission_state is not PermissionState.GRANTED:
            await self.check_permission()
            if self.permission_state is PermissionState.PERMANENTLY_DENIED:
                return LocationResult.failed(ErrorCode.PERMISSION_PERMANENTLY_DENIED)
            if self.permission_state is not PermissionState.GRANTED:
                return LocationResult.failed(ErrorCode.PERMISSION_DENIED)

        result = await self._try_acquire(False, timeout_ms, self.FALLBACK_MAXIMUM_AGE_MS)
        if result.ok:
            self.last_known = result.coordinate
        else:
            logger.info('GPS status check failed: %s', result.error.value)
        return result

    def _finish(self, result: LocationResult) -> LocationResult:
        if result.ok:
            self.acquisition_state = AcquisitionState.RESOLVED
            self.last_known = result.coordinate
            self.last_error = None
        else:
            self.acquisition_state = AcquisitionState.FAILED
            self.last_error = result.error
            logger.warning('Location unavailable: %s', result.error.value)
        return result

    # =================== CONTINUOUS WATCH ===================

    @property
    def is_watching(self) -> bool:
        return self._watch is not None and self._watch.active

    def start_watch(
        self,
        listener: Callable[[Coordinate], None],
        options: Optional[WatchOptions] = None
    ) -> WatchHandle:
        """Start continuous updates, reusing the running watch if there is one."""
        if self.is_watching:
            self._watch.add_listener(listener)
            return self._watch

        handle = WatchHandle()
        handle.add_listener(listener)
        self._watch = handle

        try:
            handle.watch_id = self.provider.watch_position(
                lambda coordinate: self._deliver(handle, coordinate),
                lambda error: self._watch_failed(handle, error),
                options or WatchOptions()
            )
        except Exception:
            handle.cancelled = True
            self._watch = None
            raise

        logger.debug('Started location watch %s', handle.watch_id)
        return handle

    def stop_watch(self, handle: Optional[WatchHandle] = None) -> None:
        """Stop a watch; never fails, and later platform callbacks are ignored."""
        handle = handle or self._watch
        if handle is None:
            return

        handle.cancelled = True
        if self._watch is handle:
            self._watch = None

        if handle.watch_id is not None:
            try:
                self.provider.clear_watch(handle.watch_id)
            except Exception:
                logger.warning('Clearing location watch %s failed', handle.watch_id, exc_info=True)

    def _deliver(self, handle: WatchHandle, coordinate: Coordinate) -> None:
        if handle.cancelled:
            return

        handle.latest = coordinate
        self.last_known = coordinate
        for listener in handle.listeners:
            try:
                listener(coordinate)
            except Exception:
                logger.exception('Location listener failed')

    def _watch_failed(self, handle: WatchHandle, error: PositionError) -> None:
        if handle.cancelled:
            return

        code = POSITION_ERROR_CODES.get(getattr(error, 'code', None), ErrorCode.POSITION_UNAVAILABLE)
        self.last_error = code
        if code is ErrorCode.LOCATION_TIMEOUT:
            logger.debug('Location watch timed out; waiting for next fix')
        else:
            logger.warning('Location watch error: %s', code.value)

# backend/geocheckin/services/location_provider.py
"""Platform geolocation interface consumed by the location service."""
import asyncio
import itertools
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Sequence

from geocheckin.domain import Coordinate

ANDROID_PERMISSIONS = (
    'android.permission.ACCESS_FINE_LOCATION',
    'android.permission.ACCESS_COARSE_LOCATION',
)
IOS_PERMISSIONS = ('location_when_in_use',)

PLATFORM_PERMISSIONS = {
    'android': ANDROID_PERMISSIONS,
    'ios': IOS_PERMISSIONS,
}

# Per-permission answers a provider reports
GRANTED = 'granted'
DENIED = 'denied'
BLOCKED = 'blocked'


class PositionError(Exception):
    """Platform location failure with a standard geolocation error code."""

    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3

    def __init__(self, code: int, message: str = ''):
        super().__init__(message or f'Location error {code}')
        self.code = code


@dataclass(frozen=True)
class WatchOptions:
    """Continuous watch settings."""
    high_accuracy: bool = True
    distance_filter_meters: float = 10.0
    timeout_ms: int = 25000
    maximum_age_ms: int = 10000


PositionCallback = Callable[[Coordinate], None]
ErrorCallback = Callable[[PositionError], None]


class LocationProvider(ABC):
    """Device geolocation as exposed by the platform."""

    @abstractmethod
    async def check_permission(self, permissions: Sequence[str]) -> Dict[str, str]:
        """Report current permission answers without prompting."""

    @abstractmethod
    async def request_permission(self, permissions: Sequence[str]) -> Dict[str, str]:
        """Prompt the user; returns granted/denied/blocked per permission."""

    @abstractmethod
    async def get_position(self, high_accuracy: bool, timeout_ms: int, maximum_age_ms: int) -> Coordinate:
        """Single-shot fix; raises PositionError on failure."""

    @abstractmethod
    def watch_position(
        self,
        on_position: PositionCallback,
        on_error: ErrorCallback,
        options: WatchOptions
    ) -> int:
        """Start continuous updates and return the platform watch id."""

    @abstractmethod
    def clear_watch(self, watch_id: int) -> None:
        """Stop a platform watch."""


class FixedLocationProvider(LocationProvider):
    """
    Provider that reports a configured position.

    Used by kiosks bolted to a classroom wall and by the CLI, where the
    coordinate comes from configuration rather than a GPS chip.
    """

    def __init__(self, coordinate: Optional[Coordinate] = None):
        self.coordinate = coordinate
        self._watch_ids = itertools.count(1)
        self._watchers: Dict[int, PositionCallback] = {}

    async def check_permission(self, permissions):
        return {permission: GRANTED for permission in permissions}

    async def request_permission(self, permissions):
        return {permission: GRANTED for permission in permissions}

    async def get_position(self, high_accuracy, timeout_ms, maximum_age_ms):
        await asyncio.sleep(0)
        if self.coordinate is None:
            raise PositionError(PositionError.POSITION_UNAVAILABLE, 'No position configured')
        return self.coordinate

    def watch_position(self, on_position, on_error, options):
        watch_id = next(self._watch_ids)
        self._watchers[watch_id] = on_position
        if self.coordinate is not None:
            on_position(self.coordinate)
        return watch_id

    def clear_watch(self, watch_id):
        self._watchers.pop(watch_id, None)

    def update(self, coordinate: Coordinate) -> None:
        """Move the configured position and notify active watches."""
        self.coordinate = coordinate
        for on_position in list(self._watchers.values()):
            on_position(coordinate)

# backend/geocheckin/services/gps_service.py
"""GPS distance and geofence verification service."""
import math
from typing import Dict, Optional

from geocheckin.domain import ClassLocationInfo, Coordinate
from geocheckin.utils.helpers import format_distance
from geocheckin.utils.validators import Validator


class GPSService:
    """Service for GPS and location verification."""

    EARTH_RADIUS_METERS = 6371000

    @staticmethod
    def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
        """Calculate great-circle distance between two GPS points in meters."""
        Validator.ensure_coordinate(lat1, lon1)
        Validator.ensure_coordinate(lat2, lon2)

        R = GPSService.EARTH_RADIUS_METERS

        lat1_rad = math.radians(lat1)
        lat2_rad = math.radians(lat2)
        delta_lat = math.radians(lat2 - lat1)
        delta_lon = math.radians(lon2 - lon1)

        a = (math.sin(delta_lat/2) ** 2 +
             math.cos(lat1_rad) * math.cos(lat2_rad) *
             math.sin(delta_lon/2) ** 2)
        a = min(1.0, a)  # rounding can push antipodal points past 1
        c = 2 * math.atan2(math.sqrt(a), math.sqrt(1-a))

        return R * c

    @staticmethod
    def distance_between(a: Coordinate, b: Coordinate) -> float:
        """Distance in meters between two coordinates."""
        return GPSService.calculate_distance(a.latitude, a.longitude, b.latitude, b.longitude)

    @staticmethod
    def verify_location(
        coordinate: Coordinate,
        class_location: ClassLocationInfo,
        radius_meters: Optional[float] = None
    ) -> Dict:
        """Verify if a device is within a class location's geofence."""
        radius = radius_meters if radius_meters is not None else class_location.radius_meters
        distance = GPSService.distance_between(coordinate, class_location.coordinate)

        is_inside = distance <= radius

        return {
            'is_inside': is_inside,
            'distance': distance,
            'distance_display': format_distance(distance),
            'radius': radius,
            'center': {
                'latitude': class_location.coordinate.latitude,
                'longitude': class_location.coordinate.longitude
            }
        }

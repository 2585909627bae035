"""Distance and walking-time helpers."""

import math

import numpy as np

EARTH_RADIUS_M = 6_371_000.0
WALKING_SPEED_M_PER_MIN = 83.33  # ~5 km/h


def distance_meters(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle (Haversine) distance between two points in meters."""
    lat1_r, lat2_r = math.radians(lat1), math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def walking_minutes(meters: float) -> int:
    """Minutes needed to walk the given distance, rounded up."""
    if meters <= 0:
        return 0
    return math.ceil(meters / WALKING_SPEED_M_PER_MIN)


def distances_from(lat: float, lon: float, lats: np.ndarray, lons: np.ndarray) -> np.ndarray:
    """Vectorized Haversine from one point to arrays of coordinates, in meters."""
    lat_r = math.radians(lat)
    lats_r = np.radians(lats)
    dlat = lats_r - lat_r
    dlon = np.radians(lons) - math.radians(lon)

    a = np.sin(dlat / 2) ** 2 + math.cos(lat_r) * np.cos(lats_r) * np.sin(dlon / 2) ** 2
    a = np.clip(a, 0.0, 1.0)  # float noise can push a past 1
    return EARTH_RADIUS_M * 2 * np.arctan2(np.sqrt(a), np.sqrt(1 - a))

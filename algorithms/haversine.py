"""
Haversine Algorithm - Calculate distance between two geographical points
Used to find donors nearest to the hospital requesting blood
"""

import math
import numbers

import numpy as np

from algorithms.exceptions import ValidationError

EARTH_RADIUS_KM = 6371

# Average speeds in km/h
TRAVEL_SPEEDS = {
    'driving': 30,  # city traffic
    'walking': 5,
    'cycling': 15,
}
DEFAULT_TRAVEL_MODE = 'driving'


def _round_half_up(value, digits=0):
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def haversine_distance(lat1, lon1, lat2, lon2):
    """
    Calculate straight-line distance between two points.
    Note: This is "as the crow flies" distance, not road distance.

    Args:
        lat1, lon1: Latitude and longitude of point 1 (hospital)
        lat2, lon2: Latitude and longitude of point 2 (donor)

    Returns:
        Distance in kilometers
    """
    lat1, lon1, lat2, lon2 = map(math.radians, [lat1, lon1, lat2, lon2])

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # float error can push a just past 1 for antipodal points
    c = 2 * math.asin(math.sqrt(min(1.0, a)))

    return c * EARTH_RADIUS_KM


def distances_from(lat, lon, points):
    """
    Vectorised haversine from one centre to many points.

    Args:
        lat, lon: Centre coordinates
        points: Sequence of (latitude, longitude) pairs

    Returns:
        numpy array of distances in kilometers, same order as points
    """
    coords = np.asarray(points, dtype=float).reshape(-1, 2)
    if coords.shape[0] == 0:
        return np.zeros(0)

    lat1 = np.radians(lat)
    lon1 = np.radians(lon)
    lat2 = np.radians(coords[:, 0])
    lon2 = np.radians(coords[:, 1])

    a = np.sin((lat2 - lat1) / 2) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin((lon2 - lon1) / 2) ** 2
    return 2 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(np.minimum(1.0, a)))


def bounding_box(lat, lon, radius_km):
    """
    Rectangle that fully contains the circle of radius_km around a point.
    Used to prefilter donors in the database before exact distances.

    Near the antimeridian the longitude range wraps: min_lng is then
    greater than max_lng and a point is inside when its longitude is
    >= min_lng OR <= max_lng.

    Returns:
        dict with min_lat, max_lat, min_lng, max_lng and wraps
    """
    lat_delta = radius_km / EARTH_RADIUS_KM * (180 / math.pi)
    cos_lat = math.cos(lat * math.pi / 180)
    if cos_lat < 1e-12:
        # at the poles every longitude is in range
        lng_delta = 180.0
    else:
        lng_delta = radius_km / (EARTH_RADIUS_KM * cos_lat) * (180 / math.pi)

    min_lng = lon - lng_delta
    max_lng = lon + lng_delta
    if lng_delta >= 180.0:
        min_lng, max_lng = -180.0, 180.0
    elif min_lng < -180.0:
        min_lng += 360.0
    elif max_lng > 180.0:
        max_lng -= 360.0

    return {
        'min_lat': lat - lat_delta,
        'max_lat': lat + lat_delta,
        'min_lng': min_lng,
        'max_lng': max_lng,
        'wraps': min_lng > max_lng,
    }


def estimate_travel_time(distance_km, mode=DEFAULT_TRAVEL_MODE):
    """
    Constant-speed travel time estimate.

    Returns:
        dict with 'minutes' (int) and 'formatted' ("25 min" or "1h 10m")
    """
    speed = TRAVEL_SPEEDS.get(mode, TRAVEL_SPEEDS[DEFAULT_TRAVEL_MODE])
    minutes = int(_round_half_up(distance_km / speed * 60))

    if minutes < 60:
        formatted = f"{minutes} min"
    else:
        formatted = f"{minutes // 60}h {minutes % 60}m"

    return {'minutes': minutes, 'formatted': formatted}


def format_distance(distance_km):
    if distance_km < 1:
        return f"{int(_round_half_up(distance_km * 1000))}m"
    if distance_km < 10:
        return f"{_round_half_up(distance_km, 1):g}km"
    return f"{int(_round_half_up(distance_km))}km"


def is_valid_coordinates(lat, lon):
    for value in (lat, lon):
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            return False
        if math.isnan(value):
            return False
    return -90 <= lat <= 90 and -180 <= lon <= 180


def validate_coordinates(lat, lon):
    """
    Raises:
        ValidationError: if the pair is not a usable lat/lng
    """
    if not is_valid_coordinates(lat, lon):
        raise ValidationError(f"Invalid coordinates: ({lat!r}, {lon!r})", latitude=lat, longitude=lon)
    return float(lat), float(lon)

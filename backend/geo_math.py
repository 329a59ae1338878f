"""Pure geographic helpers shared by routing, filtering and assembly.

All coordinates are ``(lat, lng)`` tuples in decimal degrees. Nothing in this
module performs I/O or raises for well-formed input.
"""

import math

LatLng = tuple[float, float]

# Mean Earth radius used for every great-circle calculation.
EARTH_RADIUS_M: float = 6_371_000

# Assumed walking speed when a leg has to be estimated without a router.
DEFAULT_WALKING_SPEED_M_PER_MIN: float = 80.0


def haversine_m(a: LatLng, b: LatLng) -> float:
    """Returns the great-circle distance in metres between two points."""
    lat1_r, lat2_r = math.radians(a[0]), math.radians(b[0])
    dlat = lat2_r - lat1_r
    dlng = math.radians(b[1] - a[1])
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlng / 2) ** 2
    )
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def is_valid_coordinate(lat: float, lng: float) -> bool:
    """True when both values are finite and inside the WGS84 ranges."""
    try:
        lat_f, lng_f = float(lat), float(lng)
    except (TypeError, ValueError):
        return False
    if not (math.isfinite(lat_f) and math.isfinite(lng_f)):
        return False
    return -90 <= lat_f <= 90 and -180 <= lng_f <= 180


def straight_line(a: LatLng, b: LatLng) -> list[LatLng]:
    """Two-point geometry used whenever a routed path is unavailable."""
    return [(float(a[0]), float(a[1])), (float(b[0]), float(b[1]))]


def walking_minutes(
    distance_m: float, speed_m_per_min: float = DEFAULT_WALKING_SPEED_M_PER_MIN
) -> int:
    """Estimated walking time in whole minutes, rounded up."""
    return math.ceil(distance_m / speed_m_per_min)


def path_length_m(points: list[LatLng]) -> float:
    """Sums the haversine length of consecutive segments in ``points``."""
    return sum(haversine_m(points[i - 1], points[i]) for i in range(1, len(points)))


# ---------------------------------------------------------------------------
# Google encoded polylines
# ---------------------------------------------------------------------------


def decode_polyline(encoded: str, precision: int = 5) -> list[LatLng]:
    """Decodes a Google-encoded polyline string to a list of (lat, lng) points.

    Implements the standard Google polyline encoding algorithm.
    See: https://developers.google.com/maps/documentation/utilities/polylinealgorithm

    A truncated string stops decoding at the last complete point instead of
    raising.
    """
    factor = 10**precision
    result: list[LatLng] = []
    index = 0
    lat = 0
    lng = 0

    def _next_value() -> int | None:
        nonlocal index
        shift = 0
        value = 0
        while index < len(encoded):
            b = ord(encoded[index]) - 63
            index += 1
            value |= (b & 0x1F) << shift
            shift += 5
            if b < 0x20:
                return ~(value >> 1) if (value & 1) else (value >> 1)
        return None

    while index < len(encoded):
        dlat = _next_value()
        dlng = _next_value()
        if dlat is None or dlng is None:
            break
        lat += dlat
        lng += dlng
        result.append((lat / factor, lng / factor))

    return result


def encode_polyline(coordinates: list[LatLng], precision: int = 5) -> str:
    """Encodes a list of (lat, lng) tuples into a Google-encoded polyline."""
    factor = 10**precision
    encoded: list[str] = []
    prev_lat = 0
    prev_lng = 0

    for lat, lng in coordinates:
        lat_e = round(lat * factor)
        lng_e = round(lng * factor)

        for delta in (lat_e - prev_lat, lng_e - prev_lng):
            value = ~(delta << 1) if delta < 0 else (delta << 1)
            while value >= 0x20:
                encoded.append(chr((0x20 | (value & 0x1F)) + 63))
                value >>= 5
            encoded.append(chr(value + 63))

        prev_lat = lat_e
        prev_lng = lng_e

    return "".join(encoded)

"""Geographic helpers - Pure functions.

Great-circle distance for cross-provider event matching, plus the
bounding box used both in provider queries and snapshot filters.
"""

import math
from dataclasses import dataclass


EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class BoundingBox:
    """Latitude/longitude rectangle, edges inclusive.

    Attributes:
        min_latitude: Southern edge
        max_latitude: Northern edge
        min_longitude: Western edge
        max_longitude: Eastern edge
    """
    min_latitude: float
    max_latitude: float
    min_longitude: float
    max_longitude: float

    def contains(self, latitude: float, longitude: float) -> bool:
        return (
            self.min_latitude <= latitude <= self.max_latitude
            and self.min_longitude <= longitude <= self.max_longitude
        )

    def query_params(self, latitude_name: str = "latitude", longitude_name: str = "longitude") -> dict[str, str]:
        """Render the box as min/max query parameters.

        FDSN services spell them 'minlatitude'...; AFAD uses 'minlat'...
        """
        return {
            f"min{latitude_name}": str(self.min_latitude),
            f"max{latitude_name}": str(self.max_latitude),
            f"min{longitude_name}": str(self.min_longitude),
            f"max{longitude_name}": str(self.max_longitude),
        }


# Coverage of the Turkish national and regional feeds
TURKEY_BOUNDS = BoundingBox(
    min_latitude=30.0,
    max_latitude=45.0,
    min_longitude=25.0,
    max_longitude=45.0,
)


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in kilometers between two points given in degrees."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)

    h = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push h past 1 near antipodes
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(min(1.0, h)))


def is_valid_latitude(value: float) -> bool:
    """Check that a latitude lies in [-90, 90]."""
    return -90.0 <= value <= 90.0


def is_valid_longitude(value: float) -> bool:
    """Check that a longitude lies in [-180, 180]."""
    return -180.0 <= value <= 180.0


def format_coordinates(latitude: float, longitude: float) -> str:
    """Format a point as a short label, e.g. '37.226N 37.014E'.

    Pure function. Used when a provider sends no location text.
    """
    ns = "N" if latitude >= 0 else "S"
    ew = "E" if longitude >= 0 else "W"
    return f"{abs(latitude):.3f}{ns} {abs(longitude):.3f}{ew}"

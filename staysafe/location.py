"""
Location collaborators for the SOS workflow

A provider answers a single pull-based "where am I now" request and raises
an SOSError subclass when it cannot.
"""

import logging

import geocoder

from .errors import PermissionDenied, ResourceUnavailable
from .models import Coordinate

logger = logging.getLogger(__name__)


class LocationProvider:
    """
    Base class for location sources
    """

    def current_location(self):
        raise NotImplementedError


class StaticLocationProvider(LocationProvider):
    """
    Returns a fixed coordinate; with no coordinate it behaves like a device
    where location access was denied
    """

    def __init__(self, coordinate=None):
        if coordinate is not None:
            coordinate = Coordinate(float(coordinate[0]), float(coordinate[1]))
        self.coordinate = coordinate

    def current_location(self):
        if self.coordinate is None:
            raise PermissionDenied("Location access denied")
        return self.coordinate


class IPLocationProvider(LocationProvider):
    """
    Approximate location from the public IP address
    """

    def __init__(self, lookup=geocoder.ip):
        self._lookup = lookup

    def current_location(self):
        try:
            g = self._lookup("me")
        except Exception as e:
            raise ResourceUnavailable(f"IP geolocation failed: {e}") from e

        if not g.latlng:
            raise ResourceUnavailable("IP geolocation returned no coordinates")

        lat, lon = g.latlng[:2]
        logger.info(f"Location obtained: {lat}, {lon}")
        return Coordinate(float(lat), float(lon))

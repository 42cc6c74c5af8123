"""Clients for external geo and transport services."""

from property_finder.services.geo_api import GeoClient
from property_finder.services.places import PlacesClient
from property_finder.services.rate_limiter import RateLimiter
from property_finder.services.transit import TransitClient
from property_finder.services.travel_times import TravelTimeEnricher

__all__ = ["GeoClient", "PlacesClient", "RateLimiter", "TransitClient", "TravelTimeEnricher"]

"""Delivery route optimization services."""

from .directions_client import DirectionsClient, DirectionsError, check_health
from .models import Leg, LegData, PairKey, RouteResult, RouteStop
from .optimizer import RouteOptimizer, optimize_route

__all__ = [
    "DirectionsClient",
    "DirectionsError",
    "check_health",
    "Leg",
    "LegData",
    "PairKey",
    "RouteResult",
    "RouteStop",
    "RouteOptimizer",
    "optimize_route",
]

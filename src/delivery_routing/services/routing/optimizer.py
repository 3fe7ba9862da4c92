"""Delivery route optimizer: nearest neighbor followed by bounded 2-opt."""

from __future__ import annotations

import logging
import time
from typing import Sequence

from ...config import settings
from ...models.domain import Location
from .directions_client import DirectionsClient
from .distance_matrix import DistanceMatrix
from .models import (
    SOURCE_HAVERSINE,
    STRATEGY_EMPTY,
    STRATEGY_ROUTED,
    STRATEGY_WEIGHT,
    Leg,
    RouteResult,
    RouteStop,
)
from .tour import nearest_neighbor_tour, tour_length, two_opt

logger = logging.getLogger(__name__)


def default_directions_client() -> DirectionsClient | None:
    try:
        return DirectionsClient()
    except ValueError as exc:
        logger.info(f"Directions provider not configured ({exc}), using straight-line distances")
        return None


class RouteOptimizer:
    """Orders the stops of one truck starting from its depot.

    ``optimize`` never raises because of the directions provider: failed
    lookups become straight-line legs, and without usable coordinates the
    stops are ordered by weight instead.
    """

    def __init__(
        self,
        client: DirectionsClient | None = None,
        *,
        max_parallel_requests: int | None = None,
        max_iterations: int | None = None,
    ) -> None:
        self.client = client
        self.max_parallel_requests = max_parallel_requests or settings.max_parallel_requests
        self.max_iterations = max_iterations if max_iterations is not None else settings.two_opt_max_iterations

    @classmethod
    def from_settings(cls) -> "RouteOptimizer":
        return cls(default_directions_client())

    def optimize(
        self,
        depot: Location,
        stops: Sequence[Location],
        timeout_seconds: float | None = None,
    ) -> RouteResult:
        if timeout_seconds is None:
            timeout_seconds = settings.optimize_timeout_seconds
        deadline = time.monotonic() + timeout_seconds if timeout_seconds is not None else None

        stops = list(stops)
        if not stops:
            return RouteResult(
                ordered_stops=[RouteStop(depot, 0, located=depot.has_coordinates)],
                total_duration_minutes=0.0,
                strategy=STRATEGY_EMPTY,
            )

        located = [stop for stop in stops if stop.has_coordinates]
        unlocated = [stop for stop in stops if not stop.has_coordinates]

        if not depot.has_coordinates or not located:
            logger.info(
                f"No usable geography for depot {depot.id!r} ({len(located)}/{len(stops)} stops located), "
                "ordering by weight"
            )
            return self._order_by_weight(depot, stops)

        locations = [depot, *located]
        # Depot and stop ids come from different tables and may collide, so
        # the matrix is keyed by position in `locations`.
        positions = {id(location): position for position, location in enumerate(locations)}
        with DistanceMatrix(
            self.client,
            self.max_parallel_requests,
            key_fn=lambda location: positions[id(location)],
        ) as matrix:
            matrix.prefetch(self._pairs(locations), deadline=deadline)

            def distance(a: int, b: int) -> float:
                return matrix.distance_km(locations[a], locations[b])

            initial = nearest_neighbor_tour(len(locations), distance)
            tour = two_opt(initial, distance, max_iterations=self.max_iterations, deadline=deadline)
            logger.info(
                f"Route for depot {depot.id!r}: {len(located)} stops, "
                f"nearest neighbor {tour_length(initial, distance):.2f} km, "
                f"after 2-opt {tour_length(tour, distance):.2f} km"
            )
            return self._assemble(locations, tour, unlocated, matrix)

    @staticmethod
    def _pairs(locations: Sequence[Location]) -> list[tuple[Location, Location]]:
        # Open tours never drive back to the depot, so stop -> depot is skipped.
        pairs = []
        for a, origin in enumerate(locations):
            for b, destination in enumerate(locations):
                if a != b and b != 0:
                    pairs.append((origin, destination))
        return pairs

    @staticmethod
    def _order_by_weight(depot: Location, stops: Sequence[Location]) -> RouteResult:
        ordered = sorted(stops, key=lambda stop: stop.total_weight)
        route_stops = [RouteStop(depot, 0, located=depot.has_coordinates)]
        route_stops.extend(
            RouteStop(stop, sequence, located=stop.has_coordinates)
            for sequence, stop in enumerate(ordered, start=1)
        )
        return RouteResult(ordered_stops=route_stops, strategy=STRATEGY_WEIGHT, approximate=True)

    @staticmethod
    def _assemble(
        locations: Sequence[Location],
        tour: Sequence[int],
        unlocated: Sequence[Location],
        matrix: DistanceMatrix,
    ) -> RouteResult:
        route_stops = [RouteStop(locations[position], sequence) for sequence, position in enumerate(tour)]
        route_stops.extend(
            RouteStop(stop, sequence, located=False)
            for sequence, stop in enumerate(unlocated, start=len(tour))
        )

        legs: list[Leg] = []
        for k in range(len(tour) - 1):
            origin, destination = locations[tour[k]], locations[tour[k + 1]]
            data = matrix.get(origin, destination)
            legs.append(
                Leg(
                    from_id=origin.id,
                    to_id=destination.id,
                    distance_km=data.distance_km,
                    duration_minutes=data.duration_minutes,
                    path=data.path,
                    source=data.source,
                )
            )

        durations = [leg.duration_minutes for leg in legs]
        return RouteResult(
            ordered_stops=route_stops,
            legs=legs,
            total_distance_km=sum(leg.distance_km for leg in legs),
            total_duration_minutes=sum(durations) if all(d is not None for d in durations) else None,
            strategy=STRATEGY_ROUTED,
            approximate=any(leg.source == SOURCE_HAVERSINE for leg in legs),
        )


def optimize_route(
    depot: Location,
    stops: Sequence[Location],
    timeout_seconds: float | None = None,
) -> RouteResult:
    """Optimize one route with the provider configured in settings."""
    return RouteOptimizer.from_settings().optimize(depot, stops, timeout_seconds=timeout_seconds)

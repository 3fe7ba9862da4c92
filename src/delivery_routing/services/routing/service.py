"""Truck route planning service."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Hashable, List, Mapping, Optional, Protocol, Sequence

from ...models.domain import Location
from ...schemas.routing import DepotRecord, StopRecord
from ..geospatial import haversine_km
from .models import SOURCE_HAVERSINE, STRATEGY_WEIGHT, RouteResult, RouteStop
from .optimizer import RouteOptimizer

logger = logging.getLogger(__name__)


class StopSource(Protocol):
    """Order/assignment store supplying a truck's depot and open stops."""

    def get_depot(self, truck_id: Hashable) -> Optional[Mapping[str, Any]]:
        ...

    def get_stops(self, truck_id: Hashable) -> Sequence[Mapping[str, Any]]:
        ...


@dataclass(slots=True)
class TruckRoutePlan:
    truck_id: Hashable
    route: RouteResult
    loading_sequence: List[RouteStop]
    total_weight_kg: float
    capacity_kg: Optional[float] = None
    load_percentage: Optional[float] = None
    metadata: dict = field(default_factory=dict)


LOCATION_GROUP_DECIMALS = 4

LOADING_REVERSE_DELIVERY = "reverse_delivery"
LOADING_DISTANCE_FROM_DEPOT = "distance_from_depot"
LOADING_WEIGHT = "weight"


def distance_from_depot_order(depot: Location, stops: Sequence[RouteStop]) -> list[RouteStop]:
    """Farthest customer location first, unlocated stops last.

    Stops whose coordinates agree to four decimals share a location and are
    loaded together, in their given order.
    """
    groups: dict[tuple[float, float], list[RouteStop]] = {}
    unlocated: list[RouteStop] = []
    for stop in stops:
        if not stop.located:
            unlocated.append(stop)
            continue
        lat, lon = stop.location.point
        key = (round(lat, LOCATION_GROUP_DECIMALS), round(lon, LOCATION_GROUP_DECIMALS))
        groups.setdefault(key, []).append(stop)

    depot_lat, depot_lon = depot.point
    ordered = sorted(
        groups.values(),
        key=lambda group: haversine_km(depot_lat, depot_lon, *group[0].location.point),
        reverse=True,
    )
    return [*(stop for group in ordered for stop in group), *unlocated]


def loading_mode(result: RouteResult) -> str:
    if result.strategy == STRATEGY_WEIGHT:
        return LOADING_WEIGHT
    if result.legs and result.depot.has_coordinates and all(leg.source == SOURCE_HAVERSINE for leg in result.legs):
        return LOADING_DISTANCE_FROM_DEPOT
    return LOADING_REVERSE_DELIVERY


def loading_sequence(result: RouteResult) -> list[RouteStop]:
    """Order in which stops are loaded onto the truck.

    The last delivery goes in first, so located stops are loaded in reverse
    delivery order; unlocated stops follow. Without any road data the
    straight-line tour is not trusted and stops are loaded farthest from the
    depot first. A weight-ordered result is already a loading order and is
    kept as is.
    """
    stops = result.ordered_stops[1:]
    mode = loading_mode(result)
    if mode == LOADING_WEIGHT:
        return list(stops)
    if mode == LOADING_DISTANCE_FROM_DEPOT:
        return distance_from_depot_order(result.depot, stops)
    located = [stop for stop in stops if stop.located]
    unlocated = [stop for stop in stops if not stop.located]
    return [*reversed(located), *unlocated]


def _to_locations(records: Sequence[Mapping[str, Any]]) -> list[Location]:
    return [StopRecord.model_validate(record).to_location() for record in records]


def plan_truck_route(
    truck_id: Hashable,
    source: StopSource,
    *,
    capacity_kg: float | None = None,
    optimizer: RouteOptimizer | None = None,
    timeout_seconds: float | None = None,
) -> TruckRoutePlan:
    depot_record = source.get_depot(truck_id)
    if not depot_record:
        raise ValueError(f"Depot not found for truck '{truck_id}'.")
    depot = DepotRecord.model_validate(depot_record).to_location()
    stops = _to_locations(source.get_stops(truck_id))

    optimizer = optimizer or RouteOptimizer.from_settings()
    result = optimizer.optimize(depot, stops, timeout_seconds=timeout_seconds)

    total_weight = sum(stop.total_weight for stop in stops)
    load_percentage = None
    if capacity_kg:
        load_percentage = round(total_weight / capacity_kg * 100.0, 1)
        if load_percentage > 100.0:
            logger.warning(f"Truck {truck_id!r} overloaded: {total_weight:.1f} kg of {capacity_kg:.1f} kg")

    metadata = {
        "strategy": result.strategy,
        "loading_order": loading_mode(result),
        "approximate": result.approximate,
        "stop_count": len(stops),
        "unlocated_count": len(result.unlocated),
    }
    if result.approximate and result.legs:
        metadata["notice"] = "Route data unavailable, showing approximate route."

    return TruckRoutePlan(
        truck_id=truck_id,
        route=result,
        loading_sequence=loading_sequence(result),
        total_weight_kg=total_weight,
        capacity_kg=capacity_kg,
        load_percentage=load_percentage,
        metadata=metadata,
    )

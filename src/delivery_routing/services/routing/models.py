"""Routing domain models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Hashable, List, NamedTuple, Optional

from ...models.domain import Location

SOURCE_DIRECTIONS = "directions"
SOURCE_HAVERSINE = "haversine"

STRATEGY_ROUTED = "nearest_neighbor_2opt"
STRATEGY_WEIGHT = "weight"
STRATEGY_EMPTY = "empty"


class PairKey(NamedTuple):
    """Directed (from, to) key of the distance matrix."""

    from_id: Hashable
    to_id: Hashable


@dataclass(slots=True, frozen=True)
class LegData:
    distance_km: float
    duration_minutes: Optional[float]
    path: tuple[tuple[float, float], ...]
    source: str = SOURCE_DIRECTIONS


@dataclass(slots=True, frozen=True)
class Leg:
    from_id: Hashable
    to_id: Hashable
    distance_km: float
    duration_minutes: Optional[float]
    path: tuple[tuple[float, float], ...]
    source: str


@dataclass(slots=True, frozen=True)
class RouteStop:
    location: Location
    sequence: int
    located: bool = True


@dataclass(slots=True)
class RouteResult:
    ordered_stops: List[RouteStop]
    legs: List[Leg] = field(default_factory=list)
    total_distance_km: float = 0.0
    total_duration_minutes: Optional[float] = None
    strategy: str = STRATEGY_ROUTED
    approximate: bool = False

    @property
    def depot(self) -> Location:
        return self.ordered_stops[0].location

    @property
    def unlocated(self) -> List[RouteStop]:
        return [stop for stop in self.ordered_stops if not stop.located]

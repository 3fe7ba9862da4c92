import threading
import time

import pytest

from src.delivery_routing.models.domain import Location
from src.delivery_routing.services.geospatial import haversine_km
from src.delivery_routing.services.routing.directions_client import DirectionsError
from src.delivery_routing.services.routing.models import LegData
from src.delivery_routing.services.routing.optimizer import RouteOptimizer, optimize_route

DEPOT = Location(id="WH1", latitude=0.0, longitude=0.0, display_name="Main warehouse")


def _stop(sid, lat, lon, weight=None, quantity=None) -> Location:
    return Location(
        id=sid,
        latitude=lat,
        longitude=lon,
        display_name=f"Customer {sid}",
        weight=weight,
        quantity=quantity,
    )


def _ids(result):
    return [stop.location.id for stop in result.ordered_stops]


class RoadDirections:
    """Road legs 30% longer than the straight line, driven at 60 km/h."""

    def __init__(self):
        self.calls = []

    def route_leg(self, origin, destination):
        self.calls.append((origin.id, destination.id))
        distance = 1.3 * haversine_km(*origin.point, *destination.point)
        return LegData(
            distance_km=distance,
            duration_minutes=distance,
            path=(origin.point, destination.point),
        )


class FailingDirections:
    def __init__(self):
        self.calls = 0

    def route_leg(self, origin, destination):
        self.calls += 1
        raise DirectionsError("provider down")


class BlockingDirections:
    def __init__(self):
        self.release = threading.Event()

    def route_leg(self, origin, destination):
        self.release.wait(timeout=5.0)
        raise DirectionsError("too late")


def test_empty_stops_returns_depot_only():
    result = RouteOptimizer().optimize(DEPOT, [])

    assert _ids(result) == ["WH1"]
    assert result.legs == []
    assert result.total_distance_km == 0
    assert result.strategy == "empty"


def test_tie_in_nearest_neighbor_goes_to_first_listed_stop():
    # Only bounded against the nearest-neighbor length (5 degrees of arc): no
    # single segment reversal of A, B, C reaches the 4-degree C, A, B route.
    # The west-to-east listing below covers that route.
    stops = [_stop("A", 0.0, 1.0), _stop("B", 0.0, 2.0), _stop("C", 0.0, -1.0)]

    result = RouteOptimizer().optimize(DEPOT, stops)

    assert _ids(result)[:2] == ["WH1", "A"]
    assert sorted(_ids(result)[1:]) == ["A", "B", "C"]
    nearest_neighbor_km = 5 * haversine_km(0.0, 0.0, 0.0, 1.0)
    assert result.total_distance_km <= nearest_neighbor_km + 1e-6


def test_stops_listed_west_to_east_give_the_left_to_right_route():
    stops = [_stop("C", 0.0, -1.0), _stop("A", 0.0, 1.0), _stop("B", 0.0, 2.0)]

    result = RouteOptimizer().optimize(DEPOT, stops)

    assert _ids(result) == ["WH1", "C", "A", "B"]
    assert result.total_distance_km == pytest.approx(4 * haversine_km(0.0, 0.0, 0.0, 1.0))


def test_legs_follow_ordered_stops_and_sum_to_total():
    stops = [_stop("S1", 0.1, 0.3), _stop("S2", 0.2, 0.1), _stop("S3", -0.1, 0.2), _stop("S4", 0.3, 0.4)]

    result = RouteOptimizer().optimize(DEPOT, stops)

    ids = _ids(result)
    assert [(leg.from_id, leg.to_id) for leg in result.legs] == list(zip(ids, ids[1:]))
    assert result.total_distance_km == pytest.approx(sum(leg.distance_km for leg in result.legs))
    for leg in result.legs:
        assert leg.path[0] != leg.path[-1]


def test_unlocated_stop_is_appended_and_flagged():
    stops = [
        _stop("A", 0.0, 1.0),
        _stop("X", None, None),
        _stop("B", 0.0, 2.0),
        _stop("C", 0.0, 3.0),
        _stop("Y", 95.0, 10.0),
    ]

    result = RouteOptimizer().optimize(DEPOT, stops)

    assert _ids(result) == ["WH1", "A", "B", "C", "X", "Y"]
    assert [stop.located for stop in result.ordered_stops] == [True, True, True, True, False, False]
    assert [stop.sequence for stop in result.ordered_stops] == [0, 1, 2, 3, 4, 5]
    assert len(result.legs) == 3
    assert [stop.location.id for stop in result.unlocated] == ["X", "Y"]


def test_no_located_stops_orders_by_weight():
    stops = [
        _stop("heavy", None, None, weight=50.0),
        _stop("light", None, None, weight=2.0, quantity=3),
        _stop("default", None, None),
        _stop("medium", None, None, weight=3.0, quantity=4),
    ]

    result = RouteOptimizer().optimize(DEPOT, stops)

    assert result.strategy == "weight"
    assert _ids(result) == ["WH1", "default", "light", "medium", "heavy"]
    assert result.legs == []
    assert not any(stop.located for stop in result.ordered_stops[1:])


def test_depot_without_coordinates_orders_by_weight():
    depot = Location(id="WH?", latitude=None, longitude=None)
    stops = [_stop("A", 0.0, 1.0, weight=9.0), _stop("B", 0.0, 2.0, weight=1.0)]

    result = RouteOptimizer().optimize(depot, stops)

    assert result.strategy == "weight"
    assert _ids(result) == ["WH?", "B", "A"]


def test_failing_provider_still_returns_full_route():
    client = FailingDirections()
    stops = [_stop("A", 0.0, 1.0), _stop("B", 0.0, 2.0), _stop("C", 0.0, 3.0)]

    result = RouteOptimizer(client).optimize(DEPOT, stops)

    assert client.calls > 0
    assert _ids(result) == ["WH1", "A", "B", "C"]
    assert result.approximate is True
    assert all(leg.source == "haversine" for leg in result.legs)
    assert all(leg.duration_minutes is None for leg in result.legs)
    assert result.total_duration_minutes is None
    assert result.total_distance_km == pytest.approx(3 * haversine_km(0.0, 0.0, 0.0, 1.0))


def test_each_pair_is_fetched_once_and_reused_for_legs():
    client = RoadDirections()
    stops = [_stop("A", 0.0, 1.0), _stop("B", 0.0, 2.0), _stop("C", 0.5, 1.5), _stop("D", -0.5, 0.5)]

    result = RouteOptimizer(client, max_parallel_requests=3).optimize(DEPOT, stops)

    n = len(stops)
    assert len(client.calls) == n + n * (n - 1)
    assert len(set(client.calls)) == len(client.calls)
    assert all(to_id != "WH1" for _, to_id in client.calls)
    assert result.approximate is False
    assert result.total_duration_minutes == pytest.approx(result.total_distance_km)


def test_same_input_gives_same_route():
    stops = [_stop(f"S{i}", (i * 7 % 5) / 10, (i * 3 % 7) / 10) for i in range(8)]

    first = RouteOptimizer().optimize(DEPOT, stops)
    second = RouteOptimizer().optimize(DEPOT, stops)

    assert _ids(first) == _ids(second)
    assert first.total_distance_km == second.total_distance_km


def test_input_is_not_modified():
    stops = [_stop("B", 0.0, 2.0), _stop("A", 0.0, 1.0)]
    original = list(stops)

    result = RouteOptimizer().optimize(DEPOT, stops)

    assert stops == original
    assert _ids(result) == ["WH1", "A", "B"]


def test_timeout_returns_best_route_so_far():
    client = BlockingDirections()
    stops = [_stop("A", 0.0, 1.0), _stop("B", 0.0, 2.0)]
    try:
        result = RouteOptimizer(client, max_parallel_requests=1).optimize(DEPOT, stops, timeout_seconds=0.05)
    finally:
        client.release.set()

    assert _ids(result) == ["WH1", "A", "B"]
    assert result.approximate is True


def test_optimize_route_without_api_key_uses_straight_lines(monkeypatch):
    from src.delivery_routing.config import settings

    monkeypatch.setattr(settings, "directions_api_key", None)
    result = optimize_route(DEPOT, [_stop("A", 0.0, 1.0)])

    assert _ids(result) == ["WH1", "A"]
    assert result.legs[0].source == "haversine"


def test_depot_id_shared_with_a_stop_does_not_mix_up_distances():
    depot = Location(id=1, latitude=0.0, longitude=0.0)
    stops = [_stop(1, 0.0, 5.0), _stop(2, 0.0, 6.0)]

    result = RouteOptimizer().optimize(depot, stops)

    assert [(leg.from_id, leg.to_id) for leg in result.legs] == [(1, 1), (1, 2)]
    assert result.legs[0].path == ((0.0, 0.0), (0.0, 5.0))
    assert result.legs[1].path == ((0.0, 5.0), (0.0, 6.0))
    assert result.total_distance_km == pytest.approx(6 * haversine_km(0.0, 0.0, 0.0, 1.0))


def test_depot_id_shared_with_a_stop_fetches_every_pair():
    client = RoadDirections()
    depot = Location(id=1, latitude=0.0, longitude=0.0)
    stops = [_stop(1, 0.0, 5.0), _stop(2, 0.0, 6.0)]

    result = RouteOptimizer(client).optimize(depot, stops)

    assert len(client.calls) == 4
    assert result.legs[1].distance_km == pytest.approx(1.3 * haversine_km(0.0, 5.0, 0.0, 6.0))


def test_stops_given_as_generator_keep_unlocated_stops():
    stops = [_stop("A", 0.0, 1.0), _stop("X", None, None), _stop("B", 0.0, 2.0)]

    result = RouteOptimizer().optimize(DEPOT, (stop for stop in stops))

    assert _ids(result) == ["WH1", "A", "B", "X"]
    assert result.ordered_stops[-1].located is False


def test_zero_timeout_returns_without_waiting_for_provider():
    client = BlockingDirections()
    stops = [_stop("A", 0.0, 1.0), _stop("B", 0.0, 2.0)]
    try:
        start = time.monotonic()
        result = RouteOptimizer(client, max_parallel_requests=1).optimize(DEPOT, stops, timeout_seconds=0)
        elapsed = time.monotonic() - start
    finally:
        client.release.set()

    assert elapsed < 2.0
    assert _ids(result) == ["WH1", "A", "B"]
    assert all(leg.source == "haversine" for leg in result.legs)

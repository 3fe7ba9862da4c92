"""Per-call memoized distance matrix with request coalescing."""

from __future__ import annotations

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Hashable, Iterable

from ...config import settings
from ...models.domain import Location
from ..geospatial import haversine_km
from .directions_client import DirectionsClient
from .models import SOURCE_HAVERSINE, LegData, PairKey

logger = logging.getLogger(__name__)


def haversine_leg(origin: Location, destination: Location) -> LegData:
    """Straight-line leg: great-circle distance, unknown duration."""
    o_lat, o_lon = origin.point
    d_lat, d_lon = destination.point
    return LegData(
        distance_km=haversine_km(o_lat, o_lon, d_lat, d_lon),
        duration_minutes=None,
        path=(origin.point, destination.point),
        source=SOURCE_HAVERSINE,
    )


def fetch_leg_data(client: DirectionsClient | None, origin: Location, destination: Location) -> LegData:
    """Road leg from the provider, or the haversine leg on any failure."""
    if client is None:
        return haversine_leg(origin, destination)
    try:
        return client.route_leg(origin, destination)
    except Exception as exc:
        logger.warning(
            f"Directions lookup {origin.id!r} -> {destination.id!r} failed, using straight line: {exc}"
        )
        return haversine_leg(origin, destination)


class DistanceMatrix:
    """Mapping of directed pairs to leg data for a single optimization call.

    Pairs are keyed by ``key_fn`` of each end (the location id by default).
    Lookups are issued through :meth:`request`, which returns the one future
    owned by a pair; asking again for the same pair returns that future
    instead of a new fetch. Only the coordinating thread touches the maps.
    """

    def __init__(
        self,
        client: DirectionsClient | None = None,
        max_parallel_requests: int | None = None,
        key_fn: Callable[[Location], Hashable] | None = None,
    ) -> None:
        self.client = client
        self.key_fn = key_fn or (lambda location: location.id)
        self.max_parallel_requests = max_parallel_requests or settings.max_parallel_requests
        self._entries: dict[PairKey, LegData] = {}
        self._inflight: dict[PairKey, Future] = {}
        self._locations: dict[PairKey, tuple[Location, Location]] = {}
        self._executor: ThreadPoolExecutor | None = None
        self.fetch_count = 0

    def __enter__(self) -> "DistanceMatrix":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def __contains__(self, key: PairKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def close(self) -> None:
        if self._executor is not None:
            # Running lookups are bounded by the client timeout; queued ones are dropped.
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    def _submit(self, origin: Location, destination: Location) -> Future:
        self.fetch_count += 1
        if self.client is None:
            future: Future = Future()
            future.set_result(haversine_leg(origin, destination))
            return future
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_parallel_requests,
                thread_name_prefix="directions",
            )
        return self._executor.submit(fetch_leg_data, self.client, origin, destination)

    def pair_key(self, origin: Location, destination: Location) -> PairKey:
        return PairKey(self.key_fn(origin), self.key_fn(destination))

    def request(self, origin: Location, destination: Location) -> Future:
        key = self.pair_key(origin, destination)
        future = self._inflight.get(key)
        if future is None:
            future = self._submit(origin, destination)
            self._inflight[key] = future
            self._locations[key] = (origin, destination)
        return future

    def prefetch(self, pairs: Iterable[tuple[Location, Location]], deadline: float | None = None) -> None:
        """Fetch all pairs concurrently and store them.

        Pairs still pending at ``deadline`` (a ``time.monotonic()`` value) get
        the haversine leg.
        """
        pending = {self.request(origin, destination) for origin, destination in pairs}
        start_time = time.monotonic()
        while pending:
            timeout = None if deadline is None else max(0.0, deadline - time.monotonic())
            done, pending = wait(pending, timeout=timeout, return_when=FIRST_COMPLETED)
            if not done:
                break
        self._collect()
        if pending:
            logger.warning(f"{len(pending)} directions lookups missed the deadline, using straight lines")
            for future in pending:
                future.cancel()
            for key, future in list(self._inflight.items()):
                if key not in self._entries:
                    origin, destination = self._locations[key]
                    self._entries[key] = haversine_leg(origin, destination)
        logger.debug(f"Distance matrix: {len(self._entries)} legs in {time.monotonic() - start_time:.2f}s")

    def _collect(self) -> None:
        for key, future in self._inflight.items():
            if key not in self._entries and future.done() and not future.cancelled():
                self._entries[key] = future.result()

    def get(self, origin: Location, destination: Location) -> LegData:
        """Memoized leg; a miss is fetched and awaited on the spot."""
        key = self.pair_key(origin, destination)
        entry = self._entries.get(key)
        if entry is None:
            entry = self.request(origin, destination).result()
            self._entries[key] = entry
        return entry

    def distance_km(self, origin: Location, destination: Location) -> float:
        return self.get(origin, destination).distance_km

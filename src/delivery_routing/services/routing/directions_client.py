"""HTTP client for the road directions provider (openrouteservice compatible)."""

from __future__ import annotations

import logging
import time
from typing import List

import httpx
from pydantic import BaseModel, Field, ValidationError

from ...config import settings
from ...models.domain import Location
from .models import SOURCE_DIRECTIONS, LegData

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


class DirectionsError(RuntimeError):
    """Raised when the provider cannot produce a usable leg."""


class _Summary(BaseModel):
    # The provider omits zero values from the summary.
    distance: float = Field(default=0.0, ge=0.0)
    duration: float = Field(default=0.0, ge=0.0)


class _Properties(BaseModel):
    summary: _Summary


class _Geometry(BaseModel):
    coordinates: List[List[float]] = Field(min_length=1)


class _Feature(BaseModel):
    geometry: _Geometry
    properties: _Properties


class _RouteDocument(BaseModel):
    features: List[_Feature] = Field(min_length=1)


def parse_route_document(payload: dict, origin: Location, destination: Location) -> LegData:
    """Turn a GeoJSON directions response into a leg.

    Provider coordinates come as ``[lon, lat]`` and are stored as ``(lat, lon)``.
    The path is pinned to the requested endpoints so it always starts at
    ``origin`` and ends at ``destination``.
    """
    try:
        document = _RouteDocument.model_validate(payload)
    except ValidationError as exc:
        raise DirectionsError(f"Malformed directions response: {exc.error_count()} validation error(s).") from exc

    feature = document.features[0]
    path: list[tuple[float, float]] = []
    for pair in feature.geometry.coordinates:
        if len(pair) < 2:
            raise DirectionsError("Malformed directions response: coordinate with fewer than two values.")
        path.append((pair[1], pair[0]))

    if path[0] != origin.point:
        path.insert(0, origin.point)
    if path[-1] != destination.point:
        path.append(destination.point)

    summary = feature.properties.summary
    return LegData(
        distance_km=summary.distance / 1000.0,
        duration_minutes=summary.duration / 60.0,
        path=tuple(path),
        source=SOURCE_DIRECTIONS,
    )


class DirectionsClient:
    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.directions_api_key
        if not self.api_key:
            raise ValueError("Directions API key is not configured.")
        self.base_url = (base_url or settings.directions_base_url).rstrip("/")
        self.profile = profile or settings.directions_profile
        self.timeout = timeout if timeout is not None else settings.directions_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.directions_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.directions_backoff_seconds
        self._transport = transport

    @property
    def url(self) -> str:
        return f"{self.base_url}/v2/directions/{self.profile}/geojson"

    def _get_client(self) -> httpx.Client:
        """A fresh client per lookup; lookups run on worker threads."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            headers={
                "Authorization": self.api_key,
                "Accept": "application/json, application/geo+json",
            },
            transport=self._transport,
        )

    def _post(self, body: dict) -> dict:
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.post(self.url, json=body)
                    response.raise_for_status()
                    return response.json()
                except httpx.HTTPStatusError as exc:
                    status_code = exc.response.status_code
                    attempt += 1
                    if status_code not in RETRYABLE_STATUS_CODES or attempt > self.max_retries:
                        raise DirectionsError(f"Directions provider returned HTTP {status_code}.") from exc
                    logger.debug(f"Directions HTTP {status_code}, retrying (attempt {attempt}/{self.max_retries})")
                    time.sleep(self.backoff_seconds * attempt)
                except (httpx.TimeoutException, httpx.NetworkError) as exc:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise DirectionsError(f"Directions provider at {self.base_url} unreachable: {exc}") from exc
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Directions network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {exc}")
                    time.sleep(wait_time)
                except httpx.HTTPError as exc:
                    raise DirectionsError(f"Directions request failed: {exc}") from exc
                except ValueError as exc:
                    # Body was not JSON
                    raise DirectionsError("Directions provider returned a non-JSON body.") from exc
        finally:
            client.close()

    def route_leg(self, origin: Location, destination: Location) -> LegData:
        """Road distance, duration and geometry from ``origin`` to ``destination``."""
        o_lat, o_lon = origin.point
        d_lat, d_lon = destination.point
        body = {"coordinates": [[o_lon, o_lat], [d_lon, d_lat]]}
        payload = self._post(body)
        if not isinstance(payload, dict):
            raise DirectionsError("Malformed directions response: expected a JSON object.")
        return parse_route_document(payload, origin, destination)


def check_health(client: DirectionsClient | None = None) -> bool:
    """Check that the provider answers a minimal two-point request.

    Never raises; a missing API key counts as unhealthy.
    """
    try:
        client = client or DirectionsClient(max_retries=0)
        probe_a = Location(id="probe-a", latitude=52.517037, longitude=13.388860)
        probe_b = Location(id="probe-b", latitude=52.496891, longitude=13.385983)
        client.route_leg(probe_a, probe_b)
        return True
    except (ValueError, DirectionsError) as exc:
        logger.info(f"Directions health check failed: {exc}")
        return False

"""Serializers for route results consumed by the presentation layer."""

from __future__ import annotations

import csv
import io
from typing import Any

from ..routing.models import RouteResult, RouteStop


def _stop_to_json(stop: RouteStop) -> dict:
    location = stop.location
    return {
        "id": location.id,
        "sequence": stop.sequence,
        "located": stop.located,
        "display_name": location.display_name,
        "latitude": location.latitude if stop.located else None,
        "longitude": location.longitude if stop.located else None,
        "weight": location.total_weight,
    }


def route_result_to_json(result: RouteResult) -> dict:
    return {
        "strategy": result.strategy,
        "approximate": result.approximate,
        "total_distance_km": result.total_distance_km,
        "total_duration_minutes": result.total_duration_minutes,
        "ordered_stops": [_stop_to_json(stop) for stop in result.ordered_stops],
        "legs": [
            {
                "from": leg.from_id,
                "to": leg.to_id,
                "distance_km": leg.distance_km,
                "duration_minutes": leg.duration_minutes,
                "source": leg.source,
                "path": [list(point) for point in leg.path],
            }
            for leg in result.legs
        ],
    }


def route_result_to_csv(result: RouteResult) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "sequence",
        "stop_id",
        "display_name",
        "located",
        "latitude",
        "longitude",
        "distance_from_prev_km",
        "duration_from_prev_min",
        "source",
    ]
    legs_by_destination = {index + 1: leg for index, leg in enumerate(result.legs)}
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for stop in result.ordered_stops:
        leg = legs_by_destination.get(stop.sequence) if stop.located else None
        writer.writerow(
            {
                "sequence": stop.sequence,
                "stop_id": stop.location.id,
                "display_name": stop.location.display_name,
                "located": stop.located,
                "latitude": stop.location.latitude if stop.located else "",
                "longitude": stop.location.longitude if stop.located else "",
                "distance_from_prev_km": round(leg.distance_km, 3) if leg else "",
                "duration_from_prev_min": (
                    round(leg.duration_minutes, 1) if leg and leg.duration_minutes is not None else ""
                ),
                "source": leg.source if leg else "",
            }
        )
    return buffer.getvalue()


def route_result_to_geojson(result: RouteResult) -> dict:
    """FeatureCollection with one LineString per leg and a numbered Point per located stop.

    GeoJSON positions are ``[lon, lat]``.
    """
    features: list[dict[str, Any]] = []
    for index, leg in enumerate(result.legs, start=1):
        features.append(
            {
                "type": "Feature",
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[lon, lat] for lat, lon in leg.path],
                },
                "properties": {
                    "kind": "leg",
                    "leg": index,
                    "from": leg.from_id,
                    "to": leg.to_id,
                    "distance_km": leg.distance_km,
                    "duration_minutes": leg.duration_minutes,
                    "source": leg.source,
                },
            }
        )
    for stop in result.ordered_stops:
        if not stop.located:
            continue
        location = stop.location
        features.append(
            {
                "type": "Feature",
                "geometry": {"type": "Point", "coordinates": [location.longitude, location.latitude]},
                "properties": {
                    "kind": "depot" if stop.sequence == 0 else "stop",
                    "id": location.id,
                    "sequence": stop.sequence,
                    "name": location.display_name,
                },
            }
        )
    return {
        "type": "FeatureCollection",
        "features": features,
        "properties": {
            "total_distance_km": result.total_distance_km,
            "approximate": result.approximate,
        },
    }

"""Route result serializers."""

from .routing_formatter import route_result_to_csv, route_result_to_geojson, route_result_to_json

__all__ = ["route_result_to_json", "route_result_to_csv", "route_result_to_geojson"]

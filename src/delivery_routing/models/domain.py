"""Domain models for depot and stop locations."""

from dataclasses import dataclass
from typing import Hashable, Optional

from ..services.geospatial import is_valid_coordinate


@dataclass(slots=True, frozen=True)
class Location:
    """A depot (warehouse) or delivery stop with optional load information."""

    id: Hashable
    latitude: Optional[float]
    longitude: Optional[float]
    display_name: str = ""
    weight: Optional[float] = None
    quantity: Optional[int] = None

    @property
    def has_coordinates(self) -> bool:
        return is_valid_coordinate(self.latitude, self.longitude)

    @property
    def point(self) -> tuple[float, float]:
        """(lat, lon) of a located stop."""
        if not self.has_coordinates:
            raise ValueError(f"Location {self.id!r} has no valid coordinates.")
        return (float(self.latitude), float(self.longitude))

    @property
    def total_weight(self) -> float:
        # Missing weight or quantity counts as one unit, as the loading dock does.
        weight = self.weight if self.weight else 1.0
        quantity = self.quantity if self.quantity else 1
        return float(weight) * quantity

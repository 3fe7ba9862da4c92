"""Records exchanged with the order/assignment store."""

from __future__ import annotations

import math
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.domain import Location
from ..services.geospatial import is_valid_coordinate


def _loose_float(value: Any) -> Optional[float]:
    """Coerce store values to float, mapping blanks and garbage to None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return None
    return parsed if math.isfinite(parsed) else None


class DepotRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Union[int, str]
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    name: str = ""

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _parse_coordinate(cls, value: Any) -> Optional[float]:
        return _loose_float(value)

    @field_validator("name", mode="before")
    @classmethod
    def _parse_name(cls, value: Any) -> str:
        return "" if value is None else str(value)

    def to_location(self) -> Location:
        latitude, longitude = self.latitude, self.longitude
        if not is_valid_coordinate(latitude, longitude):
            latitude = longitude = None
        return Location(id=self.id, latitude=latitude, longitude=longitude, display_name=self.name)


class StopRecord(DepotRecord):
    weight: Optional[float] = Field(default=None, ge=0.0)
    quantity: Optional[int] = Field(default=None, ge=0)

    @field_validator("weight", mode="before")
    @classmethod
    def _parse_weight(cls, value: Any) -> Optional[float]:
        parsed = _loose_float(value)
        return parsed if parsed is None or parsed >= 0 else None

    @field_validator("quantity", mode="before")
    @classmethod
    def _parse_quantity(cls, value: Any) -> Optional[int]:
        parsed = _loose_float(value)
        return int(parsed) if parsed is not None and parsed >= 0 else None

    def to_location(self) -> Location:
        base = super().to_location()
        return Location(
            id=base.id,
            latitude=base.latitude,
            longitude=base.longitude,
            display_name=base.display_name,
            weight=self.weight,
            quantity=self.quantity,
        )

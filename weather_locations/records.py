"""
Location records.

These are the in-memory shapes that flow between the workbook normalizer,
the merge engine and the storage layer:

- DailyObservation: one day of weather values for one location
- LocationRecord: a location plus its 5 fixed day-slots
- StoredLocation: a LocationRecord that already has a database id

Numeric weather values are kept as decimal strings because that is how
they are persisted; coordinates are strings too, with float accessors.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, NamedTuple, Optional, Tuple
import math


DAY_SLOTS = 5

ADMIN_FIELDS: Tuple[str, ...] = ("state", "district", "block", "village")

# Persisted key for each weather attribute of DailyObservation.
WEATHER_KEYS = {
    "rain": "rain",
    "tmax": "Tmax",
    "tmin": "Tmin",
    "rh": "RH",
    "wind_speed": "Wind_Speed",
}


class InvalidCoordinateError(ValueError):
    """A latitude/longitude cell that cannot be used; the row gets skipped."""
    pass


def parse_coordinate(value: Any, limit: float) -> float:
    """
    Parse a latitude/longitude cell and check it lies within [-limit, limit].
    """
    if value is None or isinstance(value, bool):
        raise InvalidCoordinateError("Coordinate is missing.")

    text = str(value).strip()
    if not text:
        raise InvalidCoordinateError("Coordinate is missing.")

    try:
        if "_" in text:
            raise ValueError(text)
        number = float(text)
    except ValueError:
        raise InvalidCoordinateError(f"Coordinate is not numeric: {text!r}") from None

    if not math.isfinite(number) or not (-limit <= number <= limit):
        raise InvalidCoordinateError(f"Coordinate out of range: {text!r}")
    return number


@dataclass(frozen=True)
class DailyObservation:
    """One populated day-slot."""
    day: int
    rain: str = "0"
    tmax: str = "0"
    tmin: str = "0"
    rh: str = "0"
    wind_speed: str = "0"

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"day": self.day}
        for attr, key in WEATHER_KEYS.items():
            doc[key] = getattr(self, attr)
        return doc

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "DailyObservation":
        values = {attr: str(doc.get(key, "0")) for attr, key in WEATHER_KEYS.items()}
        return cls(day=int(doc["day"]), **values)


Slots = Tuple[Optional[DailyObservation], ...]


def empty_slots() -> Slots:
    return (None,) * DAY_SLOTS


def slots_from_documents(docs: Iterable[Optional[Dict[str, Any]]]) -> Slots:
    """
    Rebuild a 5-slot tuple from the persisted dailyData list.
    Short lists are padded, empty entries stay None.
    """
    out: List[Optional[DailyObservation]] = list(empty_slots())
    for i, doc in enumerate(docs):
        if i >= DAY_SLOTS:
            break
        out[i] = DailyObservation.from_document(doc) if doc else None
    return tuple(out)


@dataclass(frozen=True)
class LocationRecord:
    state: str
    district: str
    block: str
    village: str
    latitude: str
    longitude: str
    daily: Slots = field(default_factory=empty_slots)

    @property
    def lat(self) -> float:
        return float(self.latitude)

    @property
    def lng(self) -> float:
        return float(self.longitude)

    @property
    def has_data(self) -> bool:
        return any(slot is not None for slot in self.daily)

    def admin_names(self, fields: Iterable[str] = ADMIN_FIELDS) -> Tuple[str, ...]:
        return tuple(getattr(self, f) for f in fields)

    def to_document(self) -> Dict[str, Any]:
        """Persisted/JSON shape (dailyData keeps empty slots as None)."""
        return {
            "state": self.state,
            "district": self.district,
            "block": self.block,
            "village": self.village,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "dailyData": [slot.to_document() if slot else None for slot in self.daily],
        }


@dataclass(frozen=True)
class StoredLocation(LocationRecord):
    """A LocationRecord that the storage layer has assigned an id to."""
    id: int = field(kw_only=True)

    def to_document(self) -> Dict[str, Any]:
        return {"id": self.id, **super().to_document()}

    def with_changes(self, **changes: Any) -> "StoredLocation":
        return replace(self, **changes)


class LocationKey(NamedTuple):
    """Grouping key for rows of one workbook pass."""
    state: str
    district: str
    block: str
    village: str
    lat: str
    lng: str

    @classmethod
    def build(cls, state: str, district: str, block: str, village: str, lat: float, lng: float) -> "LocationKey":
        # -0.0 and 0.0 must collapse to the same key.
        return cls(state, district, block, village, f"{round(lat, 6) + 0.0:.6f}", f"{round(lng, 6) + 0.0:.6f}")

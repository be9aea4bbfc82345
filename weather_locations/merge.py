"""
Location merge engine.

Decides, for each incoming LocationRecord, whether it is a location we
already store (update its day-slots) or a new one (insert it).

Two records denote the same place when both coordinates are within the
tolerance AND every tracked administrative name matches exactly. Villages
in the same block can share near-identical coordinates, so coordinates
alone are not enough.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple
import math

from .records import ADMIN_FIELDS, DAY_SLOTS, LocationRecord, Slots, StoredLocation, empty_slots


DEFAULT_TOLERANCE = 1e-4


def is_same_location(
    a: LocationRecord,
    b: LocationRecord,
    admin_fields: Sequence[str] = ADMIN_FIELDS,
    tolerance: float = DEFAULT_TOLERANCE,
) -> bool:
    """Composite identity test (symmetric in a and b)."""
    if abs(a.lat - b.lat) >= tolerance or abs(a.lng - b.lng) >= tolerance:
        return False
    return a.admin_names(admin_fields) == b.admin_names(admin_fields)


def _padded(slots: Slots) -> Slots:
    return (tuple(slots) + empty_slots())[:DAY_SLOTS]


def merge_daily(existing: Slots, incoming: Slots) -> Slots:
    """
    Overlay incoming day-slots on existing ones.

    A populated incoming slot replaces the stored one for that day; empty
    incoming slots leave the stored value alone.
    """
    return tuple(
        new if new is not None else old
        for old, new in zip(_padded(existing), _padded(incoming))
    )


@dataclass(frozen=True)
class LocationUpdate:
    """New administrative names and day-slots for one stored location."""
    target_id: int
    admin: Dict[str, str]
    daily: Slots


@dataclass
class MergePlan:
    to_insert: List[LocationRecord] = field(default_factory=list)
    to_update: List[LocationUpdate] = field(default_factory=list)

    @property
    def inserted_count(self) -> int:
        return len(self.to_insert)

    @property
    def updated_count(self) -> int:
        return len(self.to_update)

    @property
    def total_processed(self) -> int:
        return self.inserted_count + self.updated_count


class LocationIndex:
    """
    Grid index over stored locations.

    Cells are twice the tolerance wide, so any match lies in the 3x3 block
    of cells around a point. lookup() returns the same location a linear
    scan of the snapshot would: the first match in snapshot order.
    """

    def __init__(
        self,
        stored: Sequence[StoredLocation],
        admin_fields: Sequence[str] = ADMIN_FIELDS,
        tolerance: float = DEFAULT_TOLERANCE,
    ):
        if not tolerance > 0:
            raise ValueError("tolerance must be positive")
        self.admin_fields = tuple(admin_fields)
        self.tolerance = tolerance
        self.cell = 2 * tolerance
        self.locations: List[StoredLocation] = list(stored)
        self.buckets: Dict[Tuple[int, int], List[int]] = defaultdict(list)
        for pos, loc in enumerate(self.locations):
            self.buckets[self._cell_of(loc)].append(pos)

    def _cell_of(self, record: LocationRecord) -> Tuple[int, int]:
        lat, lng = _coordinates(record)
        return math.floor(lat / self.cell), math.floor(lng / self.cell)

    def lookup(self, record: LocationRecord) -> Optional[int]:
        """Snapshot position of the first stored match, or None."""
        ci, cj = self._cell_of(record)
        candidates = sorted(
            pos
            for di in (-1, 0, 1)
            for dj in (-1, 0, 1)
            for pos in self.buckets.get((ci + di, cj + dj), ())
        )
        for pos in candidates:
            if is_same_location(self.locations[pos], record, self.admin_fields, self.tolerance):
                return pos
        return None


def _coordinates(record: LocationRecord) -> Tuple[float, float]:
    try:
        return record.lat, record.lng
    except (TypeError, ValueError) as exc:
        raise ValueError(
            f"Location record without usable coordinates: "
            f"latitude={record.latitude!r}, longitude={record.longitude!r}"
        ) from exc


def merge_batch(
    incoming: Sequence[LocationRecord],
    stored: Sequence[StoredLocation],
    admin_fields: Sequence[str] = ADMIN_FIELDS,
    tolerance: float = DEFAULT_TOLERANCE,
) -> MergePlan:
    """
    Split an incoming batch into inserts and updates against a stored snapshot.

    Incoming records are processed in order. When several of them match the
    same stored location, each one is merged on top of the previous result,
    so applying the updates in order leaves the last one in place.
    Neither input is modified.
    """
    index = LocationIndex(stored, admin_fields, tolerance)
    plan = MergePlan()

    for record in incoming:
        pos = index.lookup(record)
        if pos is None:
            plan.to_insert.append(record)
            continue

        target = index.locations[pos]
        admin = {f: getattr(record, f) for f in ADMIN_FIELDS}
        daily = merge_daily(target.daily, record.daily)
        # later matches in this batch see the merged state
        index.locations[pos] = target.with_changes(daily=daily, **admin)
        plan.to_update.append(LocationUpdate(target_id=target.id, admin=admin, daily=daily))

    return plan

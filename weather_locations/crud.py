"""
CRUD functions.

The storage side of an upload: list the stored snapshot, insert new
locations, update merged ones, wipe the collection. ingest_workbook() wires
the normalizer and the merge engine to these.

Note: the "does this location exist" decision is made against a snapshot
read at the start of the request. Two uploads running at the same time can
both insert the same new location; serialize uploads if that matters.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence
import json
import logging

from sqlalchemy.orm import Session

from . import models
from .merge import LocationUpdate, MergePlan, merge_batch
from .normalizer import normalize_workbook
from .records import LocationRecord, Slots, StoredLocation, slots_from_documents
from .settings import Settings

logger = logging.getLogger(__name__)


def _dump_daily(daily: Slots) -> str:
    return json.dumps([slot.to_document() if slot else None for slot in daily])


def to_stored(model: models.Location) -> StoredLocation:
    """ORM row -> StoredLocation."""
    return StoredLocation(
        id=model.id,
        state=model.state or "",
        district=model.district or "",
        block=model.block or "",
        village=model.village or "",
        latitude=model.latitude,
        longitude=model.longitude,
        daily=slots_from_documents(json.loads(model.daily_data_json or "[]")),
    )


def list_locations(db: Session) -> List[StoredLocation]:
    """Full stored snapshot in insertion order."""
    rows = db.query(models.Location).order_by(models.Location.id).all()
    return [to_stored(r) for r in rows]


def get_location(db: Session, location_id: int) -> Optional[StoredLocation]:
    row = db.query(models.Location).filter(models.Location.id == location_id).first()
    return to_stored(row) if row else None


def count_locations(db: Session) -> int:
    return db.query(models.Location).count()


def insert_locations(db: Session, records: Sequence[LocationRecord], commit: bool = True) -> int:
    """Insert new locations; returns how many were added."""
    now = datetime.utcnow()
    db.add_all(
        models.Location(
            state=r.state,
            district=r.district,
            block=r.block,
            village=r.village,
            latitude=r.latitude,
            longitude=r.longitude,
            daily_data_json=_dump_daily(r.daily),
            created_at=now,
            updated_at=now,
        )
        for r in records
    )
    if commit:
        db.commit()
    return len(records)


def update_location_fields(db: Session, update: LocationUpdate, commit: bool = True) -> bool:
    """
    Overwrite names and day-slots of one stored location.
    Returns False if the target no longer exists.
    """
    row = db.query(models.Location).filter(models.Location.id == update.target_id).first()
    if row is None:
        logger.warning("Location %s disappeared before it could be updated", update.target_id)
        return False

    for name, value in update.admin.items():
        setattr(row, name, value)
    row.daily_data_json = _dump_daily(update.daily)
    row.updated_at = datetime.utcnow()

    if commit:
        db.commit()
    return True


def delete_all_locations(db: Session) -> int:
    """DELETE every location; returns the number removed."""
    deleted = db.query(models.Location).delete()
    db.commit()
    return deleted


def location_options(
    db: Session,
    state: Optional[str] = None,
    district: Optional[str] = None,
    block: Optional[str] = None,
) -> Dict[str, List[str]]:
    """
    Distinct administrative names, each level narrowed by the levels above it
    that were given. Empty names are left out.
    """
    Location = models.Location

    def distinct(column, **filters) -> List[str]:
        q = db.query(column).distinct()
        for name, value in filters.items():
            if value is not None:
                q = q.filter(getattr(Location, name) == value)
        return sorted(v for (v,) in q.all() if v)

    return {
        "states": distinct(Location.state),
        "districts": distinct(Location.district, state=state),
        "blocks": distinct(Location.block, state=state, district=district),
        "villages": distinct(Location.village, state=state, district=district, block=block),
    }


@dataclass(frozen=True)
class IngestSummary:
    plan: MergePlan
    total_count: int

    @property
    def message(self) -> str:
        return (
            f"Added {self.plan.inserted_count} new locations. "
            f"Updated {self.plan.updated_count} existing locations."
        )


def ingest_workbook(db: Session, data: bytes, file_name: str, settings: Settings) -> IngestSummary:
    """
    Upload pipeline:
    - normalize the workbook into location records
    - read the stored snapshot
    - merge (inserts vs. updates)
    - write everything in one commit
    """
    records = normalize_workbook(data, file_name, settings.day_sheets)
    stored = list_locations(db)

    plan = merge_batch(
        records,
        stored,
        admin_fields=settings.identity_fields,
        tolerance=settings.coordinate_tolerance,
    )

    try:
        insert_locations(db, plan.to_insert, commit=False)
        for update in plan.to_update:
            update_location_fields(db, update, commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    summary = IngestSummary(plan=plan, total_count=count_locations(db))
    logger.info(
        "Ingested %s: inserted=%d updated=%d total=%d",
        file_name, plan.inserted_count, plan.updated_count, summary.total_count,
    )
    return summary

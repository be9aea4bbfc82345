"""
FastAPI entrypoint.

This file focuses on:
- routing
- request/response handling
- translating ingest errors into HTTP status codes
"""

from __future__ import annotations

from fastapi import FastAPI, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import PlainTextResponse

from sqlalchemy.orm import Session
import logging

from .settings import Settings, settings
from .db import Base, engine, get_db
from .schemas import DeleteResult, LocationList, LocationOptions, LocationOut, UploadResult
from .normalizer import IngestError, UnsupportedFormatError
from .crud import delete_all_locations, get_location, ingest_workbook, list_locations, location_options
from .exporters import export_json, export_csv

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create tables automatically (no migrations).
Base.metadata.create_all(bind=engine)

app = FastAPI(title=settings.app_name)


def get_settings() -> Settings:
    """Dependency so tests can swap configuration."""
    return settings


# -------------------------
# Location data APIs
# -------------------------

@app.get("/api/weather-data", response_model=LocationList)
def api_list_locations(db: Session = Depends(get_db)):
    """All stored locations with their day-slots."""
    return {"data": [loc.to_document() for loc in list_locations(db)]}


@app.post("/api/weather-data", response_model=UploadResult)
def api_upload_workbook(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    cfg: Settings = Depends(get_settings),
):
    """
    Upload a "Day 1".."Day 5" workbook:
    - normalize rows into locations
    - insert new locations, merge day-slots into existing ones

    Plain def: decoding and DB writes are blocking, so FastAPI runs this in
    its threadpool.
    """
    data = file.file.read()
    if len(data) > cfg.max_upload_mb * 1024 * 1024:
        raise HTTPException(status_code=413, detail=f"File too large (max {cfg.max_upload_mb:g} MB).")

    try:
        summary = ingest_workbook(db, data, file.filename or "", cfg)
    except UnsupportedFormatError as e:
        raise HTTPException(status_code=415, detail=str(e))
    except IngestError as e:
        logger.warning("Upload of %s rejected: %s", file.filename, e)
        raise HTTPException(status_code=400, detail=str(e))

    plan = summary.plan
    return UploadResult(
        message=summary.message,
        insertedCount=plan.inserted_count,
        updatedCount=plan.updated_count,
        totalProcessed=plan.total_processed,
        totalCount=summary.total_count,
    )


@app.delete("/api/weather-data", response_model=DeleteResult)
def api_delete_all(db: Session = Depends(get_db), cfg: Settings = Depends(get_settings)):
    """Clear the whole collection (admin/testing)."""
    if not cfg.allow_delete_all:
        raise HTTPException(status_code=403, detail="Deleting all locations is disabled.")
    deleted = delete_all_locations(db)
    logger.info("Deleted %d locations", deleted)
    return DeleteResult(message=f"Deleted {deleted} locations.", deletedCount=deleted)


@app.get("/api/locations/options", response_model=LocationOptions)
def api_location_options(
    state: str | None = None,
    district: str | None = None,
    block: str | None = None,
    db: Session = Depends(get_db),
):
    """Distinct names for the state/district/block/village pickers."""
    return location_options(db, state=state, district=district, block=block)


# -------------------------
# Export endpoint
# -------------------------

@app.get("/api/weather-data/export")
def api_export_locations(fmt: str = Query("json", pattern="^(json|csv)$"), db: Session = Depends(get_db)):
    """Export locations to JSON/CSV."""
    locations = list_locations(db)
    if fmt == "json":
        return PlainTextResponse(export_json(locations), media_type="application/json")
    if fmt == "csv":
        return PlainTextResponse(export_csv(locations), media_type="text/csv")
    raise HTTPException(status_code=400, detail="Unsupported format")


@app.get("/api/weather-data/{location_id}", response_model=LocationOut)
def api_get_location(location_id: int, db: Session = Depends(get_db)):
    """Fetch a single location."""
    loc = get_location(db, location_id)
    if not loc:
        raise HTTPException(status_code=404, detail="Location not found")
    return loc.to_document()

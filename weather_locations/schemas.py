"""
Pydantic schemas.

Define the contract of the REST endpoints. Field names follow the stored
document shape (dailyData, Tmax, Wind_Speed, ...) so clients of the old
collection keep working.
"""

from pydantic import BaseModel
from typing import List, Optional


class DailyObservationOut(BaseModel):
    """One filled day-slot; values are decimal strings."""
    day: int
    rain: str = "0"
    Tmax: str = "0"
    Tmin: str = "0"
    RH: str = "0"
    Wind_Speed: str = "0"


class LocationOut(BaseModel):
    id: int
    state: str = ""
    district: str = ""
    block: str = ""
    village: str = ""
    latitude: str
    longitude: str
    dailyData: List[Optional[DailyObservationOut]]


class LocationList(BaseModel):
    data: List[LocationOut]


class UploadResult(BaseModel):
    """
    Summary of one workbook upload.
    totalProcessed is always insertedCount + updatedCount.
    """
    success: bool = True
    message: str
    insertedCount: int
    updatedCount: int
    totalProcessed: int
    totalCount: int


class DeleteResult(BaseModel):
    success: bool = True
    message: str
    deletedCount: int


class LocationOptions(BaseModel):
    """Distinct names for cascading state -> district -> block -> village pickers."""
    states: List[str]
    districts: List[str]
    blocks: List[str]
    villages: List[str]

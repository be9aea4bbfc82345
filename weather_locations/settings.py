from typing import List

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .records import ADMIN_FIELDS, DAY_SLOTS


class Settings(BaseSettings):
    """
    Centralized configuration.

    Loaded from:
    - environment variables
    - .env file (if present)

    List values are given as JSON in the environment, e.g.
    IDENTITY_FIELDS='["district","block","village"]'.
    """
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Location Weather Data"

    # SQLite by default (simple local persistence); any SQLAlchemy URL works.
    database_url: str = "sqlite:///weather_locations.sqlite3"

    log_level: str = "INFO"

    # Sheet names in day order: the first one fills day-slot 1.
    day_sheets: List[str] = ["Day 1", "Day 2", "Day 3", "Day 4", "Day 5"]

    # Administrative names that must match (on top of coordinates) for two
    # records to be the same location.
    identity_fields: List[str] = ["state", "district", "block", "village"]
    coordinate_tolerance: float = 1e-4

    max_upload_mb: float = 10.0

    # DELETE /api/weather-data wipes the whole collection.
    allow_delete_all: bool = True

    @field_validator("identity_fields")
    @classmethod
    def known_identity_fields(cls, value: List[str]) -> List[str]:
        unknown = [f for f in value if f not in ADMIN_FIELDS]
        if unknown:
            raise ValueError(f"unknown identity field(s) {unknown}; allowed: {list(ADMIN_FIELDS)}")
        return value

    @field_validator("day_sheets")
    @classmethod
    def at_most_five_days(cls, value: List[str]) -> List[str]:
        if len(value) > DAY_SLOTS:
            raise ValueError(f"at most {DAY_SLOTS} day sheets are supported")
        return value


settings = Settings()

import io
import os

# Keep the app's import-time create_all away from the working directory.
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
import xlwt
from fastapi.testclient import TestClient
from openpyxl import Workbook
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from weather_locations.db import Base, get_db
from weather_locations.main import app


HEADER = ["District", "Block", "Village", "Latitude", "Longitude", "rain", "Tmax", "Tmin", "RH", "Wind_Speed"]


def make_workbook(sheets):
    """{sheet name: [row, ...]} -> .xlsx bytes (first row is the header)."""
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(name)
        for row in rows:
            ws.append(row)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def make_legacy_workbook(sheets):
    """Same as make_workbook, but a BIFF .xls payload (blank cells for None)."""
    wb = xlwt.Workbook()
    for name, rows in sheets.items():
        ws = wb.add_sheet(name)
        for r, row in enumerate(rows):
            for c, value in enumerate(row):
                if value is not None:
                    ws.write(r, c, value)
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture
def chennai_workbook():
    """Mylapore observed on Day 1..3 with rain 10, 0, 5."""
    return make_workbook({
        f"Day {day}": [
            HEADER,
            ["Chennai", "Mylapore", "Mylapore", "13.0337", "80.2679", rain, "33", "26", "70", "4"],
        ]
        for day, rain in ((1, "10"), (2, "0"), (3, "5"))
    })


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()

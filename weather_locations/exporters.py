"""
Export helpers.

- JSON: the stored documents, pretty printed
- CSV: one row per location per filled day-slot
"""

from __future__ import annotations
import csv
import io
import json
from typing import List, Dict, Any

from .records import StoredLocation, WEATHER_KEYS


CSV_COLUMNS = [
    "id", "state", "district", "block", "village", "latitude", "longitude", "day",
    *WEATHER_KEYS.values(),
]


def export_json(locations: List[StoredLocation]) -> str:
    """Export stored locations as pretty JSON."""
    return json.dumps([loc.to_document() for loc in locations], indent=2)


def flatten(locations: List[StoredLocation]) -> List[Dict[str, Any]]:
    """Location documents -> flat rows, skipping empty day-slots."""
    rows: List[Dict[str, Any]] = []
    for loc in locations:
        doc = loc.to_document()
        base = {k: doc[k] for k in CSV_COLUMNS[:7]}
        for day in doc["dailyData"]:
            if day:
                rows.append({**base, **day})
    return rows


def export_csv(locations: List[StoredLocation]) -> str:
    """Export stored locations as CSV."""
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=CSV_COLUMNS)
    writer.writeheader()
    writer.writerows(flatten(locations))
    return output.getvalue()

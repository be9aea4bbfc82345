"""Location weather ingestion: workbook normalizer, merge engine and HTTP API."""

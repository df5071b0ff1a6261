"""
Manifest management for tracking started export tasks.
"""
import os
import csv
from datetime import datetime, timezone
from typing import Optional

from .config import MANIFEST_CSV

MANIFEST_HEADER = ["kind", "description", "destination", "task_id", "timestamp"]


def manifest_init(path: str = MANIFEST_CSV):
    """Initialize manifest CSV file with headers."""
    if not os.path.exists(path):
        with open(path, "w", newline="") as f:
            w = csv.writer(f)
            w.writerow(MANIFEST_HEADER)


def manifest_append(kind: str, description: str, destination: str, task_id: Optional[str],
                    path: str = MANIFEST_CSV):
    """Append entry to manifest CSV."""
    manifest_init(path)
    with open(path, "a", newline="") as f:
        w = csv.writer(f)
        w.writerow([kind, description, destination, task_id or "",
                    datetime.now(timezone.utc).isoformat()])


def manifest_read(path: str = MANIFEST_CSV):
    """All manifest rows as dicts (empty list if the manifest does not exist)."""
    if not os.path.exists(path):
        return []
    with open(path, newline="") as f:
        return list(csv.DictReader(f))

"""
Utility functions for saving run reports.

This module provides functions to:
- Generate timestamped report filenames
- Save JSON reports, converting dataclasses, dates and sets on the way
"""
import dataclasses
import json
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

from utils.logging_utils import get_logger

logger = get_logger(__name__)


# ============================================================================
# Timestamp Utilities
# ============================================================================

def get_timestamp_suffix() -> str:
    """
    Generate a timestamp suffix for report filenames.

    Returns:
        String in format: YYYY-MM-DD-HH-MM-SS
    """
    return datetime.now().strftime("%Y-%m-%d-%H-%M-%S")


def add_timestamp_to_path(path: str, timestamp: Optional[str] = None) -> str:
    """
    Add a timestamp to a file path before the extension.

    Args:
        path: Original file path (e.g., 'reports/retag.json')
        timestamp: Optional timestamp string (defaults to current time)

    Returns:
        Path with timestamp inserted (e.g., 'reports/retag-2026-01-15-14-30-00.json')
    """
    if timestamp is None:
        timestamp = get_timestamp_suffix()

    p = Path(path)
    return str(p.parent / f"{p.stem}-{timestamp}{p.suffix}")


# ============================================================================
# Report Saving Functions
# ============================================================================

def _to_serializable(data: Any) -> Any:
    """Recursively convert values json cannot encode on its own"""
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return _to_serializable(dataclasses.asdict(data))
    elif isinstance(data, (datetime, date)):
        return data.isoformat()
    elif isinstance(data, (set, frozenset)):
        # Sorted for deterministic output
        try:
            return [_to_serializable(item) for item in sorted(data)]
        except TypeError:
            return [_to_serializable(item) for item in data]
    elif isinstance(data, dict):
        return {k: _to_serializable(v) for k, v in data.items()}
    elif isinstance(data, (list, tuple)):
        return [_to_serializable(item) for item in data]
    return data


def save_json(path: str, data: Any, timestamp: bool = False) -> str:
    """
    Write JSON data to a file with indentation.

    Args:
        path: Path to save the JSON file
        data: Data to save
        timestamp: If True, add timestamp to filename (default: False)

    Returns:
        Path to the saved file
    """
    p = Path(path)
    if timestamp:
        p = Path(add_timestamp_to_path(str(p)))

    p.parent.mkdir(parents=True, exist_ok=True)

    with open(p, 'w') as f:
        json.dump(_to_serializable(data), f, indent=2)
    logger.info(f"Saved JSON to {p}")
    return str(p)

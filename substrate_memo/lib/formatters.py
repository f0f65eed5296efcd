"""
Output formatters for wallet history reports.

This module handles CSV file generation with proper formatting and
timestamp-based filenames.
"""

import csv
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional, TextIO

from .models import CSV_COLUMNS, HistoryRow


def generate_timestamp() -> str:
    """
    Generate a timestamp string for filenames.

    Returns:
        Timestamp in YYYYMMDD_HHMMSS format
    """
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def generate_filename(base_path: str, timestamp: Optional[str] = None) -> str:
    """
    Generate a timestamped filename for the history CSV file.

    Examples:
        generate_filename("history.csv", "20241214_153022")
        -> "history_20241214_153022.csv"
    """
    if timestamp is None:
        timestamp = generate_timestamp()

    path = Path(base_path)
    suffix = path.suffix or ".csv"
    return str(path.parent / f"{path.stem}_{timestamp}{suffix}")


def write_csv_to_stream(rows: List[HistoryRow], stream: TextIO) -> None:
    """
    Write history rows to a CSV stream.

    Args:
        rows: List of HistoryRow objects to write
        stream: File-like object to write to
    """
    writer = csv.writer(stream)
    writer.writerow(CSV_COLUMNS)

    for row in rows:
        writer.writerow(row.to_csv_row())


def write_csv(rows: List[HistoryRow], output_path: Optional[str] = None) -> Optional[str]:
    """
    Write history rows to a CSV file or stdout.

    Args:
        rows: History rows
        output_path: Base output path. If None, writes to stdout.

    Returns:
        Path of the written file, or None when writing to stdout
    """
    if output_path is None:
        write_csv_to_stream(rows, sys.stdout)
        return None

    output_file = generate_filename(output_path)
    with open(output_file, "w", newline="", encoding="utf-8") as f:
        write_csv_to_stream(rows, f)

    return output_file

"""Local CSV export of extracted records."""

import csv
import fcntl
import os
from pathlib import Path

from kassabon.integrations.gsheets import RECORD_HEADERS, record_to_sheet_row
from kassabon.models import ExtractedRecord

# Same columns as the records sheet
CSV_HEADER = RECORD_HEADERS


class LocalExporter:
    """Exporter for writing extracted records to local CSV files.

    Rows are built with the same mapping as the Google Sheets integration,
    so a CSV export and the records sheet line up column for column.
    """

    def export(self, records: list[tuple[str, ExtractedRecord]], path: Path) -> None:
        """Export records to a local CSV file.

        If the file doesn't exist, it will be created with headers.
        If the file exists, data will be appended to it.

        Args:
            records: ``(source, record)`` pairs, source being e.g. the file name
            path: Path to the CSV file to write/append to

        Raises:
            PermissionError: If the file cannot be written due to permissions
            OSError: If there are filesystem-related errors
        """
        if not records:
            return

        path.parent.mkdir(parents=True, exist_ok=True)

        # BOM is written by hand on creation only, so appends never repeat it
        with open(path, mode="a", encoding="utf-8", newline="") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                # Size is checked after the lock is held
                is_new_file = os.fstat(f.fileno()).st_size == 0

                if is_new_file:
                    f.write("\ufeff")  # UTF-8 BOM for Excel

                writer = csv.writer(f)
                if is_new_file:
                    writer.writerow(CSV_HEADER)

                for source, record in records:
                    writer.writerow(record_to_sheet_row(record, source))
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

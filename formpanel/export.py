"""CSV export of registration records."""
from __future__ import annotations

import csv
import io
from typing import Iterable, Iterator

from .models import EXPORT_FIELDS, UserRecord

EXPORT_FILENAME = "users.csv"


def iter_csv(records: Iterable[UserRecord]) -> Iterator[str]:
    """Yield the header line and then one CSV line per record."""

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")

    def _flush() -> str:
        value = buffer.getvalue()
        buffer.seek(0)
        buffer.truncate(0)
        return value

    writer.writerow(EXPORT_FIELDS)
    yield _flush()
    for record in records:
        writer.writerow(record.export_row())
        yield _flush()


__all__ = ["EXPORT_FILENAME", "iter_csv"]

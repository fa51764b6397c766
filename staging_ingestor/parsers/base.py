"""Base row parser shared by all row-oriented file formats."""

from __future__ import annotations

import io
import math
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable, Iterator, Sequence
from typing import Any, BinaryIO

from ..exceptions import MissingHeadersError, ParseError, StagingIngestorError
from ..utils.dates import normalize_date
from ..utils.logging import setup_logger

logger = setup_logger(__name__, context={"job_type": "RowParser"})

DEFAULT_BATCH_SIZE = 10_000
MAX_RECORDED_WARNINGS = 100

Row = dict[str, Any]
Batch = list[Row]


class CountingReader(io.RawIOBase):
    """Binary stream wrapper that tracks how many bytes were consumed."""

    def __init__(self, stream: BinaryIO, total_size: int | None = None):
        self._stream = stream
        self.total_size = total_size
        self.bytes_read = 0

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        chunk = self._stream.read(len(buffer))
        size = len(chunk)
        buffer[:size] = chunk
        self.bytes_read += size
        return size

    @property
    def fraction(self) -> float | None:
        """Share of the stream consumed, when the total size is known."""

        if not self.total_size:
            return None
        return min(self.bytes_read / self.total_size, 1.0)

    def close(self) -> None:
        try:
            self._stream.close()
        finally:
            super().close()


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


class BaseRowParser(ABC):
    """
    Streams a file into normalized row dictionaries.

    Headers are lower-cased and trimmed. Cells of declared date columns are
    normalized to ``yyyy-mm-dd`` (or ``None`` with a recorded warning); all
    other cells are stringified and trimmed. Every row receives a 1-based
    ``row_num`` in read order.
    """

    def __init__(
        self,
        date_columns: Iterable[str] = (),
        expected_headers: Iterable[str] = (),
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.date_columns = {column.strip().lower() for column in date_columns}
        self.expected_headers = [header.strip().lower() for header in expected_headers]
        self.batch_size = batch_size
        self.rows_read = 0
        self.warning_count = 0
        self.warnings: list[str] = []

    @abstractmethod
    def _open(self, stream: BinaryIO) -> tuple[Sequence[Any], Iterator[Sequence[Any]]]:
        """
        Open the stream and return raw headers and a lazy iterator of raw rows.

        Raises:
            ParseError: If the stream cannot be opened as this format
        """

    @abstractmethod
    def _translate_error(self, exc: Exception) -> ParseError | None:
        """Map a format library exception to :class:`ParseError` (``None`` to propagate)."""

    def _normalize_header(self, header: Any) -> str | None:
        if header is None:
            return None
        normalized = str(header).strip().lower()
        return normalized or None

    def _validate_headers(self, headers: Sequence[str | None]) -> None:
        present = [header for header in headers if header]
        if not present:
            raise ParseError("No headers found")

        missing = [header for header in self.expected_headers if header not in present]
        if missing:
            raise MissingHeadersError(missing)

    def _record_warning(self, message: str, row_num: int) -> None:
        self.warning_count += 1
        if len(self.warnings) < MAX_RECORDED_WARNINGS:
            self.warnings.append(f"row {row_num}: {message}")
        logger.warning("Row %s: %s", row_num, message)

    def _process_row(self, headers: Sequence[str | None], values: Sequence[Any], row_num: int) -> Row:
        row: Row = {}
        for header, value in zip(headers, values):
            if not header:
                continue

            if _is_missing(value):
                row[header] = None
                continue

            if header in self.date_columns:
                normalized = normalize_date(value)
                if normalized is None and str(value).strip():
                    self._record_warning(f"unparseable date in '{header}': {value!r}", row_num)
                row[header] = normalized
                continue

            row[header] = str(value).strip()

        row["row_num"] = row_num
        return row

    def iter_batches(self, stream: BinaryIO) -> Iterator[Batch]:
        """
        Lazily yield batches of normalized rows from ``stream``.

        Each call restarts numbering; ``rows_read`` holds the running total.

        Raises:
            MissingHeadersError: If expected headers are absent
            ParseError: On malformed input or stream failures
        """

        self.rows_read = 0
        self.warning_count = 0
        self.warnings = []

        try:
            raw_headers, raw_rows = self._open(stream)
            headers = [self._normalize_header(header) for header in raw_headers]
            self._validate_headers(headers)

            batch: Batch = []
            for values in raw_rows:
                self.rows_read += 1
                batch.append(self._process_row(headers, values, self.rows_read))
                if len(batch) >= self.batch_size:
                    yield batch
                    batch = []

            if batch:
                yield batch
        except StagingIngestorError:
            raise
        except Exception as exc:
            translated = self._translate_error(exc)
            if translated is None:
                raise
            raise translated from exc

    def parse(self, stream: BinaryIO, sink: Callable[[Batch], Any]) -> int:
        """Deliver every batch to ``sink`` and return the number of rows read."""

        for batch in self.iter_batches(stream):
            sink(batch)
        return self.rows_read

"""Row parser for Excel workbooks using openpyxl read-only streaming."""

from __future__ import annotations

import shutil
import tempfile
import zipfile
from collections.abc import Iterator, Sequence
from typing import Any, BinaryIO

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from ..exceptions import ParseError, StorageError
from .base import BaseRowParser

SPOOL_MAX_MEMORY_BYTES = 8 * 1024 * 1024


class ExcelRowParser(BaseRowParser):
    """Parser for the first worksheet of an ``.xlsx`` workbook.

    The workbook is spooled to a temporary file because the zip container
    needs random access; rows are then streamed without loading the sheet.
    """

    def _open(self, stream: BinaryIO) -> tuple[Sequence[Any], Iterator[Sequence[Any]]]:
        spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY_BYTES)
        try:
            shutil.copyfileobj(stream, spool)
            spool.seek(0)
            workbook = load_workbook(spool, read_only=True, data_only=True)
        except Exception:
            spool.close()
            raise

        if not workbook.worksheets:
            workbook.close()
            spool.close()
            return [], iter(())

        rows = workbook.worksheets[0].iter_rows(values_only=True)
        headers = next(rows, None) or ()

        def _rows() -> Iterator[Sequence[Any]]:
            try:
                for values in rows:
                    if all(value is None for value in values):
                        continue
                    yield values
            finally:
                workbook.close()
                spool.close()

        return list(headers), _rows()

    def _translate_error(self, exc: Exception) -> ParseError | None:
        if isinstance(exc, StorageError):
            return None
        if isinstance(exc, (InvalidFileException, zipfile.BadZipFile, KeyError)):
            return ParseError(f"Malformed Excel workbook: {exc}")
        if isinstance(exc, OSError):
            return ParseError(f"Failed reading Excel stream: {exc}", retryable=True)
        return None

"""Row parser for delimited text files using pandas chunked reading."""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from typing import Any, BinaryIO

import pandas as pd

from ..exceptions import ParseError, StorageError
from .base import BaseRowParser


class CsvRowParser(BaseRowParser):
    """Parser for CSV files; memory stays bounded by ``batch_size`` rows."""

    def __init__(self, *args: Any, delimiter: str = ",", encoding: str = "utf-8-sig", **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.delimiter = delimiter
        self.encoding = encoding

    def _open(self, stream: BinaryIO) -> tuple[Sequence[Any], Iterator[Sequence[Any]]]:
        try:
            reader = pd.read_csv(
                stream,
                sep=self.delimiter,
                encoding=self.encoding,
                dtype=str,
                keep_default_na=False,
                skip_blank_lines=True,
                chunksize=self.batch_size,
            )
        except pd.errors.EmptyDataError as exc:
            raise ParseError("No headers found") from exc

        try:
            first_chunk = next(reader)
        except StopIteration:
            reader.close()
            return [], iter(())

        def _rows() -> Iterator[Sequence[Any]]:
            try:
                yield from first_chunk.itertuples(index=False, name=None)
                for chunk in reader:
                    yield from chunk.itertuples(index=False, name=None)
            finally:
                reader.close()

        return list(first_chunk.columns), _rows()

    def _normalize_header(self, header: Any) -> str | None:
        normalized = super()._normalize_header(header)
        # pandas names blank header cells "Unnamed: <index>".
        if normalized is not None and normalized.startswith("unnamed:"):
            return None
        return normalized

    def _translate_error(self, exc: Exception) -> ParseError | None:
        if isinstance(exc, StorageError):
            return None
        if isinstance(exc, pd.errors.ParserError):
            return ParseError(f"Malformed CSV input: {exc}")
        if isinstance(exc, UnicodeDecodeError):
            return ParseError(f"CSV is not valid {self.encoding}: {exc}")
        if isinstance(exc, OSError):
            return ParseError(f"Failed reading CSV stream: {exc}", retryable=True)
        return None

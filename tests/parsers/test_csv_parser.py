"""Tests for the streaming CSV row parser."""

from __future__ import annotations

import io

import pytest

from staging_ingestor.exceptions import MissingHeadersError, ParseError
from staging_ingestor.parsers import CountingReader, CsvRowParser


def _stream(text: str, encoding: str = "utf-8") -> io.BytesIO:
    return io.BytesIO(text.encode(encoding))


def test_rows_are_normalized_and_numbered() -> None:
    """Headers are lower-cased and trimmed; cells trimmed; dates normalized."""

    parser = CsvRowParser(date_columns=["Reg_Date"])
    data = " BrCode ,Scheme_Code,Reg_Date\nB001, S1 ,25/12/2024\nB002,S2,2024-12-25\n"

    batches = list(parser.iter_batches(_stream(data)))

    assert batches == [
        [
            {"brcode": "B001", "scheme_code": "S1", "reg_date": "2024-12-25", "row_num": 1},
            {"brcode": "B002", "scheme_code": "S2", "reg_date": "2024-12-25", "row_num": 2},
        ]
    ]
    assert parser.rows_read == 2
    assert parser.warning_count == 0


def test_batches_respect_batch_size_and_keep_contiguous_numbering() -> None:
    parser = CsvRowParser(batch_size=2)
    data = "id,value\n" + "".join(f"{index},v{index}\n" for index in range(1, 6))

    batches = list(parser.iter_batches(_stream(data)))

    assert [len(batch) for batch in batches] == [2, 2, 1]
    assert [row["row_num"] for batch in batches for row in batch] == [1, 2, 3, 4, 5]
    assert parser.rows_read == 5


def test_missing_expected_headers_raise_before_any_batch() -> None:
    parser = CsvRowParser(expected_headers=["brcode", "scheme_code", "min_amount"])

    with pytest.raises(MissingHeadersError) as excinfo:
        list(parser.iter_batches(_stream("brcode\nB001\n")))

    assert excinfo.value.missing == ["scheme_code", "min_amount"]
    assert "Missing headers: scheme_code, min_amount" in str(excinfo.value)


def test_unparseable_date_becomes_none_with_warning() -> None:
    parser = CsvRowParser(date_columns=["reg_date"])

    rows = [row for batch in parser.iter_batches(_stream("reg_date\nnot-a-date\n")) for row in batch]

    assert rows == [{"reg_date": None, "row_num": 1}]
    assert parser.warning_count == 1
    assert "not-a-date" in parser.warnings[0]


def test_empty_stream_raises_parse_error() -> None:
    with pytest.raises(ParseError, match="No headers found"):
        list(CsvRowParser().iter_batches(_stream("")))


def test_malformed_row_raises_parse_error() -> None:
    data = "a,b\n1,2\n3,4,5,6\n"

    with pytest.raises(ParseError, match="Malformed CSV input") as excinfo:
        list(CsvRowParser().iter_batches(_stream(data)))

    assert excinfo.value.retryable is False


def test_byte_order_mark_is_stripped_from_first_header() -> None:
    parser = CsvRowParser(expected_headers=["id"])

    batches = list(parser.iter_batches(_stream("id,name\n7,seven\n", encoding="utf-8-sig")))

    assert batches[0][0]["id"] == "7"


def test_blank_header_columns_are_dropped() -> None:
    rows = list(CsvRowParser().iter_batches(_stream("id,,name\n1,ignored,one\n")))[0]

    assert rows == [{"id": "1", "name": "one", "row_num": 1}]


def test_parse_delivers_batches_to_sink() -> None:
    parser = CsvRowParser(batch_size=1)
    received: list[list[dict]] = []

    total = parser.parse(_stream("id\n1\n2\n"), received.append)

    assert total == 2
    assert [batch[0]["id"] for batch in received] == ["1", "2"]


def test_counting_reader_reports_consumed_fraction() -> None:
    payload = b"id\n1\n2\n3\n"
    reader = CountingReader(io.BytesIO(payload), len(payload))

    list(CsvRowParser().iter_batches(io.BufferedReader(reader)))

    assert reader.bytes_read == len(payload)
    assert reader.fraction == 1.0
    assert CountingReader(io.BytesIO(b""), None).fraction is None


def test_batch_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        CsvRowParser(batch_size=0)

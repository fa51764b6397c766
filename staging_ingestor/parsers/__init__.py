"""Parser registry for row-oriented file types."""

from .base import BaseRowParser, CountingReader
from .csv_parser import CsvRowParser
from .excel_parser import ExcelRowParser

# Parser registry - register new row formats here
_PARSER_REGISTRY: dict[str, type[BaseRowParser]] = {}


def register_parser(file_type: str, parser_class: type[BaseRowParser]) -> None:
    """
    Register a row parser class.

    Args:
        file_type: File type identifier (as derived from the upload's extension)
        parser_class: Parser class to register
    """
    _PARSER_REGISTRY[file_type] = parser_class


def find_parser(file_type: str | None) -> type[BaseRowParser] | None:
    """
    Get the parser class for a file type.

    Args:
        file_type: File type identifier

    Returns:
        Parser class, or None when the type has no row parser
    """
    if file_type is None:
        return None
    return _PARSER_REGISTRY.get(file_type)


def list_parsers() -> list[str]:
    """Return list of file types with a registered row parser."""
    return list(_PARSER_REGISTRY.keys())


register_parser("csv", CsvRowParser)
register_parser("excel", ExcelRowParser)

__all__ = [
    "BaseRowParser",
    "CountingReader",
    "CsvRowParser",
    "ExcelRowParser",
    "find_parser",
    "list_parsers",
    "register_parser",
]

"""
Parsing of user import files.

Turns the raw lines of a comma-delimited import file into validated
CandidateRecord objects. Format problems are fatal to the whole batch.
"""

import logging
from typing import Iterable, List

from ldap_provision.models import CandidateRecord

logger = logging.getLogger(__name__)

EXPECTED_HEADER = "id,full_name,phone_number,email,department,job_description"
FIELD_COUNT = 6


class ParseError(Exception):
    """Base exception for import file format errors."""

    def __init__(self, message: str, line_number: int = 0):
        self.line_number = line_number
        super().__init__(message)


class HeaderMismatch(ParseError):
    """Raised when the first line is not the expected header."""
    pass


class MalformedLine(ParseError):
    """Raised when a data line is not properly comma-delimited."""
    pass


class RecordParser:
    """Validates an import batch and builds candidate records from it."""

    def __init__(self, header: str = EXPECTED_HEADER, delimiter: str = ','):
        self.header = header
        self.delimiter = delimiter
        self.field_count = len(header.split(delimiter))

    def parse(self, raw_lines: Iterable[str]) -> List[CandidateRecord]:
        """
        Parse an import batch.

        Args:
            raw_lines: Lines of the import file, header first. Trailing line
                terminators are ignored.

        Returns:
            Candidate records in file order. Empty when the batch holds only
            the header.

        Raises:
            HeaderMismatch: If the first line is not the exact expected header
            MalformedLine: If any data line does not have exactly the expected
                number of fields, or has an empty id
        """
        lines = iter(raw_lines)

        header = next(lines, None)
        if header is None or self._strip_eol(header) != self.header:
            logger.error("Import file header is incorrect")
            raise HeaderMismatch(f"Expected header '{self.header}'", line_number=1)

        records = []
        for line_number, raw_line in enumerate(lines, start=2):
            records.append(self._parse_line(self._strip_eol(raw_line), line_number))

        logger.info(f"Parsed {len(records)} candidate records")
        return records

    def _parse_line(self, line: str, line_number: int) -> CandidateRecord:
        fields = line.split(self.delimiter)
        if len(fields) != self.field_count:
            logger.error(f"Line {line_number} has {len(fields)} fields, expected {self.field_count}")
            raise MalformedLine(
                f"Line {line_number} is not properly comma-delimited: "
                f"found {len(fields)} fields, expected {self.field_count}",
                line_number=line_number
            )

        if not fields[0]:
            raise MalformedLine(f"Line {line_number} has an empty id", line_number=line_number)

        return CandidateRecord(*fields)

    @staticmethod
    def _strip_eol(line: str) -> str:
        return line.rstrip('\r\n')


def parse_lines(raw_lines: Iterable[str]) -> List[CandidateRecord]:
    """
    Convenience function to parse an import batch with the default format.

    Args:
        raw_lines: Lines of the import file

    Returns:
        Parsed candidate records
    """
    return RecordParser().parse(raw_lines)

"""
Data types shared by the parser, the reconciliation engine and the reporter.
"""

import enum
from dataclasses import dataclass, field
from typing import NamedTuple, Optional


class FailureKind(enum.Enum):
    """Why a single record could not be applied to the directory."""
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    DIRECTORY_REJECTED = "directory_rejected"


_FIXED_REASONS = {
    FailureKind.ALREADY_EXISTS: "User already exists",
    FailureKind.NOT_FOUND: "User does not exist",
}


@dataclass(frozen=True)
class RecordFailure:
    """
    Structured failure tag for one record.

    Two failures are equal when they have the same kind and the same
    directory-supplied detail; the numeric result code is kept for logging only.
    """
    kind: FailureKind
    detail: str = ""
    code: Optional[int] = field(default=None, compare=False)

    @classmethod
    def already_exists(cls) -> "RecordFailure":
        return cls(FailureKind.ALREADY_EXISTS)

    @classmethod
    def not_found(cls) -> "RecordFailure":
        return cls(FailureKind.NOT_FOUND)

    @classmethod
    def rejected(cls, reason: str, code: Optional[int] = None) -> "RecordFailure":
        return cls(FailureKind.DIRECTORY_REJECTED, reason, code)

    @property
    def reason(self) -> str:
        """Human-readable reason shown in reports."""
        return _FIXED_REASONS.get(self.kind, self.detail)


class ParsedName(NamedTuple):
    given_name: str
    surname: str


@dataclass(frozen=True)
class CandidateRecord:
    """One validated data row of an import file."""
    id: str
    full_name: str
    phone_number: str
    email: str
    department: str
    job_description: str

    def parsed_name(self) -> ParsedName:
        """Split the full name into the first token and the rest of the line."""
        parts = self.full_name.split(None, 1)
        if not parts:
            return ParsedName("", "")
        surname = parts[1].strip() if len(parts) > 1 else ""
        return ParsedName(parts[0], surname)


@dataclass(frozen=True)
class Outcome:
    """Terminal result of processing one record."""
    id: str
    failure: Optional[RecordFailure] = None

    @classmethod
    def success(cls, record_id: str) -> "Outcome":
        return cls(record_id)

    @classmethod
    def failed(cls, record_id: str, failure: RecordFailure) -> "Outcome":
        return cls(record_id, failure)

    @property
    def succeeded(self) -> bool:
        return self.failure is None

    @property
    def reason(self) -> Optional[str]:
        return self.failure.reason if self.failure else None

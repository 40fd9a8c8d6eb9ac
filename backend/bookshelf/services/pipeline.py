"""
Types shared by the bulk import phases.

Each phase returns either ``Continue`` (data plus any non-fatal row errors)
or ``Abort`` (a single error that stops the pipeline). The orchestrator
decides what an ``Abort`` means for the job.
"""

from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class ImportRowError:
    """One validation problem, tied to a row of the import file (0 = whole job)."""

    row_number: int
    field: str
    message: str
    original_value: str | None = None

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "field": self.field,
            "message": self.message,
            "original_value": self.original_value,
        }


@dataclass(frozen=True)
class Continue(Generic[T]):
    data: T
    errors: tuple[ImportRowError, ...] = ()


@dataclass(frozen=True)
class Abort:
    error: ImportRowError


PhaseResult = Union[Continue[T], Abort]

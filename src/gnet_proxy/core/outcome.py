"""Parse outcomes shared by the protocol handlers."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class ParseOutcome(Enum):
    """Result kind of a protocol parse step."""

    OK = "ok"
    BAD_REQUEST = "bad_request"
    MISSING_HOST = "missing_host"
    UNSUPPORTED_COMMAND = "unsupported_command"
    UNSUPPORTED_ADDRESS_TYPE = "unsupported_address_type"


@dataclass(frozen=True)
class ParseResult(Generic[T]):
    """Outcome of a parse step with its value or a short reason."""

    outcome: ParseOutcome
    value: T | None = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is ParseOutcome.OK

    @classmethod
    def success(cls, value: Any) -> "ParseResult[Any]":
        return cls(ParseOutcome.OK, value)

    @classmethod
    def failure(cls, outcome: ParseOutcome, detail: str = "") -> "ParseResult[Any]":
        return cls(outcome, None, detail)

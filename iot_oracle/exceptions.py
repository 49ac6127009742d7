"""Exception hierarchy for the IoT Oracle service.

Every application error derives from OracleError. Ledger errors carry a
plain-language message naming the affected project or item, which is what
ends up in the user-facing notification.
"""

from typing import Any


class OracleError(Exception):
    """Base exception for all IoT Oracle errors."""


class DecodeError(OracleError):
    """An action block matched its markers but the JSON could not be parsed.

    Never propagates past the extractor; kept for logging and reporting.
    """

    def __init__(self, kind: str, reason: str, raw: str = ""):
        super().__init__(f"Could not decode {kind} block: {reason}")
        self.kind = kind
        self.reason = reason
        self.raw = raw


class ActionValidationError(OracleError):
    """A decoded payload does not fit its action kind's schema."""

    def __init__(self, kind: str, errors: list[dict[str, Any]]):
        fields = ", ".join(
            ".".join(str(part) for part in err.get("loc", ())) or "payload"
            for err in errors
        )
        super().__init__(f"Invalid {kind} action ({fields})")
        self.kind = kind
        self.errors = errors


class LedgerError(OracleError):
    """Base class for rejected ledger operations."""


class ReferenceNotFoundError(LedgerError):
    """An operation names a project or inventory item that does not exist."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"Could not find {entity} '{entity_id}'")
        self.entity = entity
        self.entity_id = entity_id


class QuantityViolationError(LedgerError):
    """A requested quantity exceeds what is held or available."""


class ItemInUseError(LedgerError):
    """An inventory item still has allocations and cannot be removed."""


class InvariantViolationError(LedgerError):
    """Allocation bookkeeping on an item no longer adds up."""


class PersistenceError(OracleError):
    """A remote write failed after the in-memory state was updated."""

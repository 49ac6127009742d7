"""Inventory allocation bookkeeping."""

from iot_oracle.ledger.allocation import AllocationLedger, AllocationRequest
from iot_oracle.ledger.composer import CompositionResult, ProjectComposer

__all__ = ["AllocationLedger", "AllocationRequest", "CompositionResult", "ProjectComposer"]

"""
Estimate (job) lifecycle rules.

An estimate record is the aggregate root of a job. Its status moves forward
through an ordered lifecycle:

    DRAFT -> WORK_ORDER -> INVOICED -> PAID

    DRAFT:       Quote being built. Editable, no inventory effect.
    WORK_ORDER:  Sold. Stock deducted, equipment assigned, field log created.
    INVOICED:    Invoice number assigned (once). Still editable for actuals.
    PAID:        Financially closed by the remote store. Immutable.

    ARCHIVED is a terminal side-state reachable from anything but PAID.

Records are plain dicts (the remote store's wire format); this module holds
the status enums and the small pure functions that operate on collections of
records.
"""

from __future__ import annotations

import random
from enum import Enum
from typing import Dict, Any, List, Optional


class EstimateStatus(Enum):
    """Lifecycle status of an estimate record."""

    DRAFT = "Draft"
    WORK_ORDER = "Work Order"
    INVOICED = "Invoiced"
    PAID = "Paid"
    ARCHIVED = "Archived"

    @property
    def rank(self) -> int:
        """Position in the forward lifecycle (ARCHIVED sits outside it)."""
        return _LIFECYCLE_ORDER.index(self) if self in _LIFECYCLE_ORDER else -1

    @property
    def is_closed(self) -> bool:
        """Closed records can no longer be edited."""
        return self in (EstimateStatus.PAID, EstimateStatus.ARCHIVED)


_LIFECYCLE_ORDER = [
    EstimateStatus.DRAFT,
    EstimateStatus.WORK_ORDER,
    EstimateStatus.INVOICED,
    EstimateStatus.PAID,
]


class ExecutionStatus(Enum):
    """Field-reported progress on a work order."""

    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


class DocumentKind(Enum):
    """Documents the external renderer can produce for a record."""

    WORK_ORDER = "WORK_ORDER"
    RECEIPT = "RECEIPT"


INVOICE_PREFIX = "INV-"


def can_transition(from_status: Optional[EstimateStatus], to_status: EstimateStatus) -> bool:
    """
    Check if a status change is allowed.

    Valid:
        - anything on a new record (from_status None) except PAID
        - same status (edit in place) for open records
        - forward moves through the lifecycle, except into PAID which is
          only allowed from INVOICED
        - any open status -> ARCHIVED

    Invalid:
        - backward moves
        - any change once PAID or ARCHIVED
    """
    if from_status is None:
        return to_status is not EstimateStatus.PAID

    if from_status.is_closed:
        return False

    if to_status is EstimateStatus.ARCHIVED:
        return True

    if to_status is EstimateStatus.PAID:
        return from_status is EstimateStatus.INVOICED

    return to_status.rank >= from_status.rank


def parse_status(value: Optional[str]) -> Optional[EstimateStatus]:
    """Status of a stored record, None if missing or unknown."""
    if not value:
        return None
    try:
        return EstimateStatus(value)
    except ValueError:
        return None


def new_invoice_number(rng: Optional[random.Random] = None) -> str:
    """
    Mint a human-facing invoice number.

    Uniqueness is best effort: invoice numbers are references printed on
    documents, not keys.
    """
    rng = rng or random
    return f"{INVOICE_PREFIX}{rng.randint(0, 99999)}"


def find_estimate(estimates: List[Dict[str, Any]], estimate_id: str) -> Optional[Dict[str, Any]]:
    for record in estimates:
        if record.get("id") == estimate_id:
            return record
    return None


def upsert_estimate(estimates: List[Dict[str, Any]], record: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Replace the record with the same id, or prepend it. Returns a new list."""
    updated = list(estimates)
    for index, existing in enumerate(updated):
        if existing.get("id") == record["id"]:
            updated[index] = record
            return updated
    updated.insert(0, record)
    return updated


def remove_estimate(estimates: List[Dict[str, Any]], estimate_id: str) -> List[Dict[str, Any]]:
    return [record for record in estimates if record.get("id") != estimate_id]

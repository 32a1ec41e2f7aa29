"""
Application data defaults and helpers.

ApplicationData is the full mutable business state of one company: company
profile, yield/cost configuration, warehouse stock, equipment roster, customer
roster, the estimate/job collection, and the transient "current form" fields
used while building an estimate.

It is kept as a JSON-shaped dict with camelCase keys because that is exactly
what the remote store persists and what the local cache backs up. The state
store owns the only live copy; everything else reads snapshots.

Helpers:
    default_app_data()   - fresh copy of the hard-coded defaults
    deep_merge()         - defaults-then-override merge used on every load
    serialize_app_data() - canonical JSON used for snapshot equality
"""

from __future__ import annotations

import json
from copy import deepcopy
from typing import Dict, Any, Optional


# Form fields reset by RESET_CALCULATOR (starting a new estimate)
FORM_DEFAULTS: Dict[str, Any] = {
    "mode": "Building",
    "length": 40,
    "width": 30,
    "wallHeight": 10,
    "roofPitch": "4/12",
    "includeGables": True,
    "isMetalSurface": False,
    "wallSettings": {
        "type": "Closed Cell",
        "thickness": 1.0,
        "wastePercentage": 5,
    },
    "roofSettings": {
        "type": "Open Cell",
        "thickness": 4.0,
        "wastePercentage": 5,
    },
    "additionalAreas": [],
    "inventory": [],
    "jobEquipment": [],
    "customerProfile": {
        "id": "",
        "name": "",
        "address": "",
        "city": "",
        "state": "",
        "zip": "",
        "email": "",
        "phone": "",
        "notes": "",
        "status": "Active",
    },
    "pricingMode": "level_pricing",
    "sqFtRates": {"wall": 0, "roof": 0},
    "sitePhotos": [],
    "scheduledDate": "",
    "jobNotes": "",
    "invoiceDate": "",
    "invoiceNumber": "",
    "paymentTerms": "Due on Receipt",
}


DEFAULT_APP_DATA: Dict[str, Any] = {
    **FORM_DEFAULTS,
    # Yield / cost configuration
    "yields": {
        "openCell": 16000,
        "closedCell": 4000,
    },
    "costs": {
        "openCell": 2000,
        "closedCell": 2600,
        "laborRate": 85,
    },
    "expenses": {
        "manHours": 0,
        "tripCharge": 0,
        "fuelSurcharge": 0,
        "other": {"description": "Misc", "amount": 0},
    },
    "showPricing": True,
    # Company
    "companyProfile": {
        "companyName": "",
        "addressLine1": "",
        "addressLine2": "",
        "city": "",
        "state": "",
        "zip": "",
        "phone": "",
        "email": "",
        "website": "",
        "logoUrl": "",
        "crewAccessPin": "",
    },
    # Ledgers and collections
    "warehouse": {
        "openCellSets": 0,
        "closedCellSets": 0,
        "items": [],
    },
    "equipment": [],
    "customers": [],
    "savedEstimates": [],
    "purchaseOrders": [],
    "materialLogs": [],
}


def default_app_data() -> Dict[str, Any]:
    """Return a fresh, independent copy of the default application data."""
    return deepcopy(DEFAULT_APP_DATA)


def deep_merge(defaults: Dict[str, Any], override: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Merge override values over defaults, recursively.

    Precedence rules:
        - defaults provide the shape, override provides the values
        - nested dicts are merged key by key, so a partial nested object in
          the override never erases default keys it does not mention
        - lists and scalars in the override replace the default outright
        - an override value of None for a key whose default is a dict is
          treated as missing
        - keys only present in the override are kept

    Neither argument is modified.

    Args:
        defaults: Base structure (typically DEFAULT_APP_DATA)
        override: Partial data (remote pull or local backup)

    Returns:
        New merged dictionary
    """
    merged = deepcopy(defaults)
    if not override:
        return merged

    for key, value in override.items():
        base = merged.get(key)
        if isinstance(base, dict):
            if value is None:
                continue
            if isinstance(value, dict):
                merged[key] = deep_merge(base, value)
                continue
        merged[key] = deepcopy(value)

    return merged


def serialize_app_data(data: Dict[str, Any]) -> str:
    """
    Serialize application data to canonical JSON.

    Keys are sorted so two equal states always produce the same string; this
    string is what the sync engine compares against the last-synced snapshot
    and what the local cache stores.
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def to_number(value: Any) -> float:
    """Coerce a form value to a number, treating blanks and junk as 0."""
    if isinstance(value, bool):
        return float(value)
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0

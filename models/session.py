"""
Session data model.

A Session identifies the authenticated actor: one company data set, one role.
Exactly one Session is active at a time. It is created by a login/signup
exchange with the remote store, persisted to the local cache so the app can
recover it on restart, and cleared on logout.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any


class Role(Enum):
    """Who is using the device."""

    ADMIN = "admin"
    """Office administrator. Full read/write, auto-pushes changes."""

    CREW = "crew"
    """Field crew. Reads company data, never auto-pushes."""


@dataclass(frozen=True)
class Session:
    """
    The authenticated session.

    Immutable: a new login produces a new Session.
    """

    username: str
    """Opaque company identifier. Also keys the local state backup."""

    role: Role
    """Admin or crew."""

    company_name: str
    """Display name shown in the UI."""

    store_handle: str
    """Remote data-store handle (the company's spreadsheet id)."""

    storage_handle: str
    """Remote file-storage handle (the company's folder id)."""

    @property
    def is_crew(self) -> bool:
        """Whether this is a crew session."""
        return self.role is Role.CREW

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire format shared by the remote store and local cache."""
        return {
            "username": self.username,
            "role": self.role.value,
            "companyName": self.company_name,
            "spreadsheetId": self.store_handle,
            "folderId": self.storage_handle,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        """
        Create from the wire format.

        Raises:
            ValueError: If the username is missing or the role is unknown
        """
        username = data.get("username", "")
        if not username:
            raise ValueError("Session is missing a username")

        return cls(
            username=username,
            role=Role(data.get("role", Role.ADMIN.value)),
            company_name=data.get("companyName", ""),
            store_handle=data.get("spreadsheetId", ""),
            storage_handle=data.get("folderId", ""),
        )

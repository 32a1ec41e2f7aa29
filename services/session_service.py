"""
Session service.

Authenticates against the remote store and hands the resulting Session to the
sync engine, which persists it and loads the company data.
"""

from __future__ import annotations

from core.exceptions import AuthenticationError, RemoteStoreError, ValidationError
from core.gateway import RemoteStoreGateway
from logging_config import get_logger
from models.session import Session
from .sync_service import SyncService


# Module logger
logger = get_logger(__name__)


class SessionService:
    """Login, signup, crew login and logout."""

    def __init__(self, gateway: RemoteStoreGateway, sync_service: SyncService):
        self._gateway = gateway
        self._sync = sync_service

    @staticmethod
    def _require(**fields: str) -> None:
        for name, value in fields.items():
            if not str(value or "").strip():
                raise ValidationError(f"{name} is required", field=name)

    def login(self, username: str, password: str) -> Session:
        """
        Sign in as a company admin.

        Raises:
            ValidationError: Missing credentials
            AuthenticationError: Remote store rejected the login
        """
        self._require(username=username, password=password)
        try:
            session = self._gateway.login(username, password)
        except RemoteStoreError as e:
            logger.warning(f"Login failed for {username}: {e.reason}")
            raise AuthenticationError(e.reason, username=username)
        return self._begin(session)

    def signup(self, username: str, password: str, company_name: str) -> Session:
        """Create a company account and sign in to it."""
        self._require(username=username, password=password, company_name=company_name)
        try:
            session = self._gateway.signup(username, password, company_name)
        except RemoteStoreError as e:
            logger.warning(f"Signup failed for {username}: {e.reason}")
            raise AuthenticationError(e.reason, username=username)
        return self._begin(session)

    def crew_login(self, username: str, pin: str) -> Session:
        """Sign in a crew device with the company id and crew PIN."""
        self._require(username=username, pin=pin)
        try:
            session = self._gateway.crew_login(username, pin)
        except RemoteStoreError as e:
            logger.warning(f"Crew login failed for {username}: {e.reason}")
            raise AuthenticationError(e.reason, username=username)
        return self._begin(session)

    def logout(self) -> None:
        self._sync.end_session()

    def _begin(self, session: Session) -> Session:
        logger.info(f"Signed in {session.username} as {session.role.value}")
        self._sync.begin_session(session)
        return session

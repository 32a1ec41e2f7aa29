"""
Remote store gateway.

This module is the only place that talks to the remote persistence service.
Every operation is one HTTP POST carrying a JSON action envelope:

    {"action": "SYNC_UP", "payload": {...}}

and every reply is normalized to a GatewayResponse:

    {"status": "success" | "error", "data": ..., "message": ...}

RETRY POLICY:
    Transport failures (connection errors, timeouts, HTTP error codes,
    unparseable bodies) are retried up to `retries` more times with a fixed
    backoff. An error envelope returned by the remote store is an answer, not
    a transport failure, and is not retried.

The typed methods (pull_company_state, mark_paid, ...) raise RemoteStoreError
when the normalized response is an error, so callers can use ordinary
try/except flow.

Usage:
    gateway = RemoteStoreGateway(base_url, retries=2, retry_backoff_seconds=1.0)

    data = gateway.pull_company_state(session.store_handle)
    gateway.push_company_state(data, session.store_handle)
"""

from __future__ import annotations

import base64
import json
import time
from dataclasses import dataclass
from typing import Dict, Any, Callable, Optional

import requests

from logging_config import get_logger
from models.session import Session
from .exceptions import RemoteStoreError


# Module logger
logger = get_logger(__name__)


STATUS_SUCCESS = "success"
STATUS_ERROR = "error"


@dataclass(frozen=True)
class GatewayResponse:
    """Normalized reply from the remote store."""

    status: str
    data: Any = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == STATUS_SUCCESS

    @classmethod
    def error(cls, message: str) -> "GatewayResponse":
        return cls(status=STATUS_ERROR, message=message)

    @classmethod
    def from_json(cls, body: Any) -> "GatewayResponse":
        """Normalize a decoded reply body. Anything unexpected is an error."""
        if not isinstance(body, dict):
            return cls.error("Malformed response from remote store")

        status = body.get("status")
        if status not in (STATUS_SUCCESS, STATUS_ERROR):
            return cls.error(f"Unknown response status: {status!r}")

        return cls(status=status, data=body.get("data"), message=body.get("message") or "")


class RemoteStoreGateway:
    """
    Typed client for the remote store.

    One instance is shared by the whole app; requests.Session is used for
    connection reuse. The sleep function is injectable so tests can run the
    retry loop without waiting.

    Attributes:
        base_url: Endpoint that accepts the action envelope
        is_configured: False when no real endpoint is set
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 30.0,
        retries: int = 2,
        retry_backoff_seconds: float = 1.0,
        http_session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the gateway.

        Args:
            base_url: Remote store endpoint (empty = not configured)
            timeout_seconds: Per-request timeout
            retries: Additional attempts after the first transport failure
            retry_backoff_seconds: Fixed wait between attempts
            http_session: requests.Session to use (created if not provided)
            sleep: Sleep function used for backoff
        """
        self.base_url = base_url or ""
        self._timeout = timeout_seconds
        self._retries = max(0, retries)
        self._backoff = retry_backoff_seconds
        self._http = http_session or requests.Session()
        self._sleep = sleep

        logger.info(
            f"RemoteStoreGateway initialized (configured={self.is_configured}, "
            f"retries={self._retries}, backoff={self._backoff}s)"
        )

    @property
    def is_configured(self) -> bool:
        """Whether a real endpoint is set."""
        return bool(self.base_url) and "PLACEHOLDER" not in self.base_url

    # =========================================================================
    # ENVELOPE TRANSPORT
    # =========================================================================

    def request(self, action: str, payload: Dict[str, Any]) -> GatewayResponse:
        """
        Send one action envelope, retrying transport failures.

        Never raises: every failure is folded into an error GatewayResponse.

        Args:
            action: Remote action name (e.g. "SYNC_UP")
            payload: JSON-serializable payload

        Returns:
            Normalized GatewayResponse
        """
        if not self.is_configured:
            logger.warning(f"{action} skipped: remote store URL is not configured")
            return GatewayResponse.error("API Config Missing")

        try:
            body = json.dumps({"action": action, "payload": payload}, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error(f"{action} payload is not serializable: {e}")
            return GatewayResponse.error(f"Failed to serialize payload: {e}")

        attempts = self._retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                response = self._http.post(
                    self.base_url,
                    data=body.encode("utf-8"),
                    headers={"Content-Type": "text/plain;charset=utf-8"},
                    timeout=self._timeout,
                )
                response.raise_for_status()
                result = GatewayResponse.from_json(response.json())
                logger.debug(f"{action} -> {result.status}")
                return result

            except (requests.RequestException, ValueError) as e:
                last_error = e
                remaining = attempts - attempt
                if remaining > 0:
                    logger.warning(f"{action} failed, retrying ({remaining} left): {e}")
                    self._sleep(self._backoff)

        logger.error(f"{action} failed after {attempts} attempts: {last_error}")
        return GatewayResponse.error(str(last_error) or "Network request failed")

    def _call(self, action: str, payload: Dict[str, Any]) -> Any:
        """Send an envelope and return its data, raising on error responses."""
        result = self.request(action, payload)
        if not result.ok:
            raise RemoteStoreError(action, result.message or "Remote request failed")
        return result.data

    @staticmethod
    def _require_url(action: str, data: Any) -> str:
        url = data.get("url") if isinstance(data, dict) else None
        if not url:
            raise RemoteStoreError(action, "Response did not include a url")
        return url

    # =========================================================================
    # COMPANY STATE
    # =========================================================================

    def pull_company_state(self, store_handle: str) -> Dict[str, Any]:
        """
        Fetch the company's stored ApplicationData (possibly partial).

        Raises:
            RemoteStoreError: On failure or when the store returns no data
        """
        data = self._call("SYNC_DOWN", {"spreadsheetId": store_handle})
        if not data or not isinstance(data, dict):
            raise RemoteStoreError("SYNC_DOWN", "Empty response from cloud")
        return data

    def push_company_state(self, data: Dict[str, Any], store_handle: str) -> None:
        """
        Overwrite the company's stored ApplicationData (last writer wins).

        Raises:
            RemoteStoreError: On failure
        """
        self._call("SYNC_UP", {"state": data, "spreadsheetId": store_handle})

    # =========================================================================
    # AUTHENTICATION
    # =========================================================================

    def _session_from(self, action: str, data: Any) -> Session:
        if not isinstance(data, dict):
            raise RemoteStoreError(action, "Response did not include a session")
        try:
            return Session.from_dict(data)
        except ValueError as e:
            raise RemoteStoreError(action, f"Invalid session: {e}")

    def login(self, username: str, password: str) -> Session:
        data = self._call("LOGIN", {"username": username, "password": password})
        return self._session_from("LOGIN", data)

    def signup(self, username: str, password: str, company_name: str) -> Session:
        data = self._call(
            "SIGNUP",
            {"username": username, "password": password, "companyName": company_name},
        )
        return self._session_from("SIGNUP", data)

    def crew_login(self, username: str, pin: str) -> Session:
        data = self._call("LOGIN_CREW", {"username": username, "pin": pin})
        return self._session_from("LOGIN_CREW", data)

    # =========================================================================
    # JOB LIFECYCLE
    # =========================================================================

    def delete_estimate(self, estimate_id: str, store_handle: str) -> None:
        self._call("DELETE_ESTIMATE", {"estimateId": estimate_id, "spreadsheetId": store_handle})

    def mark_paid(self, estimate_id: str, store_handle: str) -> Dict[str, Any]:
        """
        Ask the remote store to close a job financially.

        The remote side computes revenue, COGS, profit and margin and returns
        the finalized record.

        Returns:
            Finalized estimate record

        Raises:
            RemoteStoreError: On failure or when no record is returned
        """
        data = self._call("MARK_PAID", {"estimateId": estimate_id, "spreadsheetId": store_handle})
        if not isinstance(data, dict) or not data:
            raise RemoteStoreError("MARK_PAID", "Response did not include the finalized estimate")
        return data

    def create_field_log_resource(
        self,
        record: Dict[str, Any],
        storage_handle: str,
        store_handle: str,
    ) -> str:
        """
        Create the crew's field-log sheet for a work order.

        Returns:
            URL of the created resource
        """
        data = self._call(
            "CREATE_WORK_ORDER",
            {"estimate": record, "folderId": storage_handle, "spreadsheetId": store_handle},
        )
        return self._require_url("CREATE_WORK_ORDER", data)

    def complete_job(self, estimate_id: str, actuals: Dict[str, Any], store_handle: str) -> None:
        """Report crew actuals for a finished job."""
        self._call(
            "COMPLETE_JOB",
            {"estimateId": estimate_id, "actuals": actuals, "spreadsheetId": store_handle},
        )

    def log_crew_time(self, sheet_url: str, start: str, end: str, user: str) -> None:
        """Append a time entry to a job's field log."""
        self._call("LOG_TIME", {"sheetUrl": sheet_url, "start": start, "end": end, "user": user})

    # =========================================================================
    # FILES
    # =========================================================================

    def upload_image(
        self,
        image_bytes: bytes,
        filename: str,
        store_handle: str,
        storage_handle: str,
    ) -> str:
        """
        Upload an image to the company's file storage.

        Returns:
            Public URL of the uploaded image
        """
        encoded = base64.b64encode(image_bytes).decode("ascii")
        data = self._call(
            "UPLOAD_IMAGE",
            {
                "image": encoded,
                "filename": filename,
                "spreadsheetId": store_handle,
                "folderId": storage_handle,
            },
        )
        return self._require_url("UPLOAD_IMAGE", data)

"""
Job lifecycle service.

Implements the estimate -> work order -> invoice -> paid state machine and the
warehouse/equipment ledger mutations that ride along with it.

Every operation is split in two:

    COMMIT (caller's thread, synchronous):
        Validate, compute the new ApplicationData from the current snapshot,
        and apply it to the StateStore in ONE dispatch. The user sees the
        result immediately (optimistic commit).

    RECONCILE (background thread, best effort):
        Talk to the remote store (field-log sheet, remote delete, full-state
        push). Failures only change sync status and raise notifications;
        they never undo the commit.

Mark paid is the one exception: the remote store computes the financial
close, so the local record changes only after the remote call succeeds.

Thread Model:
    Request thread
    ├── commit (under self._lock, store dispatch)
    └── reconcile thread per job ("WorkOrder-<id>", "Delete-<id>", ...)

Usage:
    lifecycle = JobLifecycleService(store, gateway, sync_service)

    record = lifecycle.save_estimate(results)
    lifecycle.confirm_work_order(results)
    lifecycle.mark_paid(record["id"], confirmed=True)

    # At app shutdown
    lifecycle.shutdown()
"""

from __future__ import annotations

import threading
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from typing import Dict, Any, Callable, List, Optional, Tuple

from core.exceptions import (
    ConfirmationRequiredError,
    CustomerNameRequiredError,
    EstimateNotFoundError,
    LifecycleError,
    NoActiveSessionError,
    RemoteStoreError,
    ValidationError,
)
from core.gateway import RemoteStoreGateway
from logging_config import get_logger, get_job_logger, set_thread_name
from models.app_data import to_number
from models.estimate import (
    DocumentKind,
    EstimateStatus,
    ExecutionStatus,
    can_transition,
    find_estimate,
    new_invoice_number,
    parse_status,
    remove_estimate,
    upsert_estimate,
)
from models.session import Session
from models.state import Action, ActionType, AppState, NotificationLevel, SyncStatus, View
from models.warehouse import assign_equipment, deduct_job_materials, receive_purchase_order
from .state_store import StateStore
from .sync_service import SyncService


# Module logger
logger = get_logger(__name__)


Renderer = Callable[[Dict[str, Any], Dict[str, Any], DocumentKind, Dict[str, Any]], Any]


_SAVE_MESSAGES = {
    EstimateStatus.WORK_ORDER: "Job Sold! Moved to Work Order",
    EstimateStatus.INVOICED: "Invoice Generated",
    EstimateStatus.ARCHIVED: "Job Archived",
}


def _new_id() -> str:
    return uuid.uuid4().hex[:9]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class JobLifecycleService:
    """
    Service for estimate lifecycle transitions.

    Attributes:
        renderer: Optional document renderer called after work order and
            payment transitions
    """

    def __init__(
        self,
        store: StateStore,
        gateway: RemoteStoreGateway,
        sync_service: SyncService,
        renderer: Optional[Renderer] = None,
        id_factory: Callable[[], str] = _new_id,
        invoice_number_factory: Callable[[], str] = new_invoice_number,
        clock: Callable[[], datetime] = _utc_now,
    ):
        """
        Initialize the lifecycle service.

        Args:
            store: Application state store
            gateway: Remote store gateway
            sync_service: Sync engine (its push() is used for reconciles)
            renderer: Document renderer (data, results, kind, record)
            id_factory: Mints estimate, customer and purchase order ids
            invoice_number_factory: Mints invoice numbers
            clock: Current time source
        """
        self._store = store
        self._gateway = gateway
        self._sync = sync_service
        self.renderer = renderer
        self._new_id = id_factory
        self._new_invoice_number = invoice_number_factory
        self._clock = clock

        # Serializes read-compute-dispatch so commits never interleave
        self._lock = threading.Lock()

        # Track background reconcile threads for cleanup
        self._active_threads: Dict[str, threading.Thread] = {}
        self._threads_lock = threading.Lock()

        logger.info("JobLifecycleService initialized")

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    # =========================================================================
    # SAVE (DRAFT CREATE / UPDATE)
    # =========================================================================

    def _prepare_save(
        self,
        state: AppState,
        results: Dict[str, Any],
        target_status: Optional[EstimateStatus],
        extra: Optional[Dict[str, Any]],
        confirming_work_order: bool = False,
    ) -> Tuple[Dict[str, Any], Dict[str, Any], Optional[EstimateStatus]]:
        """
        Build the record for the current form and the data patch to commit it.

        Returns:
            (record, patch, previous status or None for a new record)

        Raises:
            CustomerNameRequiredError: Form has no customer name
            LifecycleError: The status change is not allowed
            LifecycleError: Entering Work Order outside confirm_work_order
        """
        data = state.data
        profile = data.get("customerProfile") or {}

        if not str(profile.get("name") or "").strip():
            self._store.notify(NotificationLevel.ERROR, "Customer Name Required to Save")
            raise CustomerNameRequiredError()

        estimates = data.get("savedEstimates", [])
        estimate_id = state.ui.editing_estimate_id or self._new_id()
        existing = find_estimate(estimates, estimate_id) or {}
        previous = parse_status(existing.get("status"))

        new_status = target_status or previous or EstimateStatus.DRAFT
        if new_status is EstimateStatus.PAID:
            raise LifecycleError(
                "Payments are recorded with mark paid",
                estimate_id=estimate_id,
                from_status=previous.value if previous else None,
                to_status=new_status.value,
            )
        if (
            new_status is EstimateStatus.WORK_ORDER
            and previous is not EstimateStatus.WORK_ORDER
            and not confirming_work_order
        ):
            # Only confirm_work_order deducts stock and assigns equipment
            raise LifecycleError(
                "Work orders are created with confirm work order",
                estimate_id=estimate_id,
                from_status=previous.value if previous else None,
                to_status=new_status.value,
            )
        if not can_transition(previous, new_status):
            raise LifecycleError(
                f"Cannot move estimate from {previous.value if previous else 'new'} to {new_status.value}",
                estimate_id=estimate_id,
                from_status=previous.value if previous else None,
                to_status=new_status.value,
            )

        # Once set, an invoice number never changes. A new record never inherits
        # the number left in the form by another job.
        invoice_number = existing.get("invoiceNumber") or ""
        if existing and not invoice_number:
            invoice_number = data.get("invoiceNumber") or ""
        if not invoice_number and new_status is EstimateStatus.INVOICED:
            invoice_number = self._new_invoice_number()

        customer = deepcopy(profile)
        if not customer.get("id"):
            customer["id"] = self._new_id()

        record: Dict[str, Any] = {
            "id": estimate_id,
            "customerId": customer["id"],
            "date": existing.get("date") or self._timestamp(),
            "scheduledDate": data.get("scheduledDate", ""),
            "invoiceDate": data.get("invoiceDate", ""),
            "paymentTerms": data.get("paymentTerms", ""),
            "status": new_status.value,
            "invoiceNumber": invoice_number,
            "customer": customer,
            "inputs": {
                "mode": data.get("mode"),
                "length": data.get("length"),
                "width": data.get("width"),
                "wallHeight": data.get("wallHeight"),
                "roofPitch": data.get("roofPitch"),
                "includeGables": data.get("includeGables"),
                "isMetalSurface": data.get("isMetalSurface", False),
                "additionalAreas": deepcopy(data.get("additionalAreas", [])),
            },
            "results": deepcopy(results),
            "materials": {
                "openCellSets": to_number(results.get("openCellSets")),
                "closedCellSets": to_number(results.get("closedCellSets")),
                "inventory": deepcopy(data.get("inventory", [])),
                "equipment": deepcopy(data.get("jobEquipment", [])),
            },
            "totalValue": to_number(results.get("totalCost")),
            "wallSettings": deepcopy(data.get("wallSettings", {})),
            "roofSettings": deepcopy(data.get("roofSettings", {})),
            "expenses": deepcopy(data.get("expenses", {})),
            "notes": data.get("jobNotes", ""),
            "pricingMode": data.get("pricingMode"),
            "sqFtRates": deepcopy(data.get("sqFtRates", {})),
            "executionStatus": existing.get("executionStatus") or ExecutionStatus.NOT_STARTED.value,
            "sitePhotos": deepcopy(data.get("sitePhotos", [])),
        }
        for key in ("actuals", "financials", "workOrderSheetUrl"):
            if existing.get(key) is not None:
                record[key] = existing[key]
        if extra:
            record.update({k: v for k, v in extra.items() if k not in ("id", "status")})

        patch: Dict[str, Any] = {"savedEstimates": upsert_estimate(estimates, record)}

        # Every saved estimate has a resolvable customer
        customers = data.get("customers", [])
        if not any(c.get("id") == customer["id"] for c in customers):
            patch["customers"] = list(customers) + [customer]
        if customer["id"] != profile.get("id"):
            patch["customerProfile"] = customer
        if invoice_number != (data.get("invoiceNumber") or ""):
            patch["invoiceNumber"] = invoice_number

        return record, patch, previous

    def save_estimate(
        self,
        results: Dict[str, Any],
        target_status: Optional[EstimateStatus] = None,
        extra: Optional[Dict[str, Any]] = None,
        redirect: bool = True,
    ) -> Dict[str, Any]:
        """
        Save the current form as an estimate record.

        Saving twice with the same input updates the same record (the
        editing id is set after the first save).

        Args:
            results: CalculationResults from the external calculator
            target_status: New status (default: keep the current one, Draft if new)
            extra: Additional record fields
            redirect: Navigate to the estimate detail view

        Returns:
            The saved record
        """
        with self._lock:
            record, patch, _ = self._prepare_save(self._store.state, results, target_status, extra)
            self._store.dispatch(Action(ActionType.UPDATE_DATA, patch))
            self._store.dispatch(Action(ActionType.SET_EDITING_ESTIMATE, record["id"]))

        if redirect:
            self._store.dispatch(Action(ActionType.SET_VIEW, View.ESTIMATE_DETAIL))

        self._store.notify(NotificationLevel.SUCCESS, _SAVE_MESSAGES.get(target_status, "Estimate Saved"))
        logger.info(f"Saved estimate {record['id']} ({record['status']})")
        return record

    def generate_invoice(self, results: Dict[str, Any]) -> Dict[str, Any]:
        """Move the current estimate to Invoiced, assigning its invoice number once."""
        return self.save_estimate(results, EstimateStatus.INVOICED)

    # =========================================================================
    # WORK ORDER
    # =========================================================================

    def confirm_work_order(self, results: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sell the current estimate: Draft (or new) -> Work Order.

        Local commit (one dispatch):
            - chemical sets and inventory items deducted (may go negative)
            - record upserted with status Work Order
            - assigned equipment "In Use" with lastSeen pointing at the job

        Background:
            - field-log sheet created and attached
            - full state pushed

        Returns:
            The work order record
        """
        with self._lock:
            state = self._store.state
            record, patch, previous = self._prepare_save(
                state, results, EstimateStatus.WORK_ORDER, None, confirming_work_order=True
            )
            if previous not in (None, EstimateStatus.DRAFT):
                raise LifecycleError(
                    f"Only a draft can become a work order (status is {previous.value})",
                    estimate_id=record["id"],
                    from_status=previous.value,
                    to_status=EstimateStatus.WORK_ORDER.value,
                )

            data = state.data
            patch["warehouse"] = deduct_job_materials(
                data.get("warehouse", {}),
                results.get("openCellSets"),
                results.get("closedCellSets"),
                data.get("inventory", []),
            )
            patch["equipment"] = assign_equipment(
                data.get("equipment", []),
                data.get("jobEquipment", []),
                job_id=record["id"],
                customer_name=record["customer"].get("name", ""),
                date=self._timestamp(),
            )

            self._store.dispatch(Action(ActionType.UPDATE_DATA, patch))
            self._store.dispatch(Action(ActionType.SET_EDITING_ESTIMATE, record["id"]))

        logger.info(f"Work order {record['id']} committed locally")

        self._store.dispatch(Action(ActionType.SET_VIEW, View.DASHBOARD))
        self._store.notify(NotificationLevel.SUCCESS, "Work Order Created & Equipment Assigned.")
        self._render(DocumentKind.WORK_ORDER, results, record)

        session = self._store.state.session
        if session is None:
            logger.warning(f"No session; work order {record['id']} stays local")
        else:
            self._start_background(
                f"WorkOrder-{record['id'][:8]}",
                self._work_order_thread_main,
                record,
                session,
            )
        return record

    def _work_order_thread_main(self, record: Dict[str, Any], session: Session) -> None:
        """
        Reconcile a committed work order with the remote store.

        Failures here never touch the committed warehouse, equipment or
        record; they only surface as status and notifications.
        """
        estimate_id = record["id"]
        set_thread_name(f"WorkOrder-{estimate_id[:8]}")
        job_logger = get_job_logger(estimate_id)

        sheet_created = False
        try:
            job_logger.info("Creating field log sheet...")
            try:
                url = self._gateway.create_field_log_resource(
                    record, session.storage_handle, session.store_handle
                )
            except RemoteStoreError as e:
                job_logger.warning(f"Field log sheet not created: {e}")
                self._store.notify(
                    NotificationLevel.WARNING,
                    "Work order saved, but the crew log sheet could not be created.",
                )
            else:
                self._attach_sheet_url(estimate_id, url)
                sheet_created = True
                job_logger.info(f"Field log sheet attached: {url}")

            if session.is_crew:
                job_logger.info("Crew session; full state not pushed")
                pushed = False
            else:
                pushed = self._sync.push()

            if not sheet_created:
                self._sync.set_status(SyncStatus.ERROR)
            elif pushed:
                self._store.notify(NotificationLevel.SUCCESS, "Work Order & Sheet Synced Successfully")

        except Exception:
            job_logger.exception("Work order reconcile crashed")
            self._sync.set_status(SyncStatus.ERROR)
            self._store.notify(NotificationLevel.ERROR, "Background Sync Failed. Check Connection.")

        finally:
            self._finish_background(f"WorkOrder-{estimate_id[:8]}")

    def _attach_sheet_url(self, estimate_id: str, url: str) -> None:
        with self._lock:
            current = find_estimate(self._store.state.data.get("savedEstimates", []), estimate_id)
            if current is None:
                # Deleted while the sheet was being created
                return
            self._store.dispatch(
                Action(ActionType.UPDATE_SAVED_ESTIMATE, {**current, "workOrderSheetUrl": url})
            )

    # =========================================================================
    # INVOICE
    # =========================================================================

    def apply_field_actuals(self, estimate_id: str) -> Dict[str, Any]:
        """
        Copy crew-reported usage onto the invoice draft.

        Overwrites (does not merge) the form's labor hours, and its inventory
        lines when the crew tracked any.

        Returns:
            The applied patch

        Raises:
            EstimateNotFoundError: Unknown id
            ValidationError: The crew has not reported actuals
        """
        with self._lock:
            data = self._store.state.data
            record = self._require_estimate(data, estimate_id)
            actuals = record.get("actuals")
            if not actuals:
                raise ValidationError("No field actuals reported for this job", field="actuals")

            patch: Dict[str, Any] = {
                "expenses": {**data.get("expenses", {}), "manHours": to_number(actuals.get("laborHours"))},
            }
            if actuals.get("inventory"):
                patch["inventory"] = deepcopy(actuals["inventory"])
            self._store.dispatch(Action(ActionType.UPDATE_DATA, patch))

        self._store.notify(NotificationLevel.SUCCESS, "Field actuals applied to invoice.")
        logger.info(f"Applied field actuals of {estimate_id}")
        return patch

    # =========================================================================
    # PAYMENT
    # =========================================================================

    def mark_paid(self, estimate_id: str, confirmed: bool = False) -> Optional[Dict[str, Any]]:
        """
        Record payment for an invoiced job.

        NOT optimistic: the remote store computes the financial close and
        the local record is replaced only with its answer.

        Args:
            estimate_id: Job to close
            confirmed: The user explicitly confirmed the payment

        Returns:
            Finalized record, or None if the remote call failed (local
            status unchanged)

        Raises:
            ConfirmationRequiredError: confirmed is False
            NoActiveSessionError: Nobody is signed in
            EstimateNotFoundError: Unknown id
            LifecycleError: The job is not Invoiced
        """
        if not confirmed:
            raise ConfirmationRequiredError("mark_paid")

        state = self._store.state
        session = state.session
        if session is None:
            raise NoActiveSessionError("mark_paid")

        record = self._require_estimate(state.data, estimate_id)
        status = parse_status(record.get("status"))
        if not can_transition(status, EstimateStatus.PAID):
            raise LifecycleError(
                "Only an invoiced job can be marked paid",
                estimate_id=estimate_id,
                from_status=record.get("status"),
                to_status=EstimateStatus.PAID.value,
            )

        self._sync.set_status(SyncStatus.SYNCING)
        try:
            finalized = self._gateway.mark_paid(estimate_id, session.store_handle)
        except RemoteStoreError as e:
            logger.error(f"Mark paid failed for {estimate_id}: {e}")
            self._sync.set_status(SyncStatus.ERROR)
            self._store.notify(NotificationLevel.ERROR, "Failed to record payment. Status unchanged.")
            return None

        finalized = {
            **finalized,
            "id": estimate_id,
            "status": finalized.get("status") or EstimateStatus.PAID.value,
        }
        self._store.dispatch(Action(ActionType.UPDATE_SAVED_ESTIMATE, finalized))
        self._sync.set_status(SyncStatus.SUCCESS)
        self._store.notify(NotificationLevel.SUCCESS, "Paid! Profit Calculated.")
        logger.info(f"Estimate {estimate_id} marked paid")

        self._render(DocumentKind.RECEIPT, record.get("results") or {}, finalized)
        return finalized

    # =========================================================================
    # DELETE / ARCHIVE
    # =========================================================================

    def delete_estimate(self, estimate_id: str) -> None:
        """
        Delete a job locally now and remotely in the background.

        Local delete wins: a remote failure is reported but the record is
        not restored.
        """
        with self._lock:
            state = self._store.state
            estimates = state.data.get("savedEstimates", [])
            if find_estimate(estimates, estimate_id) is None:
                raise EstimateNotFoundError(estimate_id)
            self._store.dispatch(
                Action(ActionType.UPDATE_DATA, {"savedEstimates": remove_estimate(estimates, estimate_id)})
            )
            if state.ui.editing_estimate_id == estimate_id:
                self._store.dispatch(Action(ActionType.RESET_CALCULATOR))
                self._store.dispatch(Action(ActionType.SET_VIEW, View.DASHBOARD))

        logger.info(f"Deleted estimate {estimate_id} locally")

        session = self._store.state.session
        if session is not None:
            self._start_background(
                f"Delete-{estimate_id[:8]}",
                self._delete_thread_main,
                estimate_id,
                session,
            )

    def _delete_thread_main(self, estimate_id: str, session: Session) -> None:
        set_thread_name(f"Delete-{estimate_id[:8]}")
        try:
            self._gateway.delete_estimate(estimate_id, session.store_handle)
        except RemoteStoreError as e:
            logger.error(f"Remote delete of {estimate_id} failed: {e}")
            self._store.notify(
                NotificationLevel.ERROR,
                "Deleted on this device, but the server delete failed.",
            )
        except Exception:
            logger.exception(f"Remote delete of {estimate_id} crashed")
            self._store.notify(
                NotificationLevel.ERROR,
                "Deleted on this device, but the server delete failed.",
            )
        else:
            self._store.notify(NotificationLevel.SUCCESS, "Job Deleted")
        finally:
            self._finish_background(f"Delete-{estimate_id[:8]}")

    def archive_estimate(self, estimate_id: str) -> Dict[str, Any]:
        """Move any open (non-Paid) job to Archived."""
        with self._lock:
            data = self._store.state.data
            record = self._require_estimate(data, estimate_id)
            status = parse_status(record.get("status"))
            if status is not None and not can_transition(status, EstimateStatus.ARCHIVED):
                raise LifecycleError(
                    f"A {status.value} job cannot be archived",
                    estimate_id=estimate_id,
                    from_status=status.value,
                    to_status=EstimateStatus.ARCHIVED.value,
                )
            archived = {**record, "status": EstimateStatus.ARCHIVED.value}
            self._store.dispatch(Action(ActionType.UPDATE_SAVED_ESTIMATE, archived))

        self._store.notify(NotificationLevel.SUCCESS, _SAVE_MESSAGES[EstimateStatus.ARCHIVED])
        logger.info(f"Archived estimate {estimate_id}")
        return archived

    # =========================================================================
    # WAREHOUSE
    # =========================================================================

    def receive_purchase_order(self, order: Dict[str, Any]) -> Dict[str, Any]:
        """
        Receive a vendor order: add its lines to stock and record it.

        Committed in one dispatch, then pushed in the background.

        Returns:
            The recorded purchase order
        """
        if not order.get("items"):
            raise ValidationError("Purchase order has no items", field="items")

        with self._lock:
            data = self._store.state.data
            recorded = deepcopy(order)
            recorded.setdefault("id", self._new_id())
            recorded.setdefault("date", self._timestamp())
            recorded.setdefault("status", "Received")
            recorded.setdefault(
                "totalCost",
                sum(to_number(line.get("total")) for line in recorded["items"]),
            )

            patch = {
                "warehouse": receive_purchase_order(data.get("warehouse", {}), recorded),
                "purchaseOrders": list(data.get("purchaseOrders", [])) + [recorded],
            }
            self._store.dispatch(Action(ActionType.UPDATE_DATA, patch))

        self._store.notify(NotificationLevel.SUCCESS, "Order Saved & Stock Updated")
        self._store.dispatch(Action(ActionType.SET_VIEW, View.WAREHOUSE))
        logger.info(f"Received purchase order {recorded['id']} ({len(recorded['items'])} lines)")

        session = self._store.state.session
        if session is not None and not session.is_crew:
            self._start_background(f"Order-{recorded['id'][:8]}", self._push_thread_main, recorded["id"])
        return recorded

    def _push_thread_main(self, label: str) -> None:
        name = f"Order-{label[:8]}"
        set_thread_name(name)
        try:
            self._sync.push()
        except Exception:
            logger.exception("Background push crashed")
            self._sync.set_status(SyncStatus.ERROR)
        finally:
            self._finish_background(name)

    # =========================================================================
    # FORM / CUSTOMERS / FIELD REPORTS
    # =========================================================================

    def load_estimate_for_editing(self, estimate_id: str) -> Dict[str, Any]:
        """Copy a saved record back into the form fields and start editing it."""
        with self._lock:
            data = self._store.state.data
            record = self._require_estimate(data, estimate_id)
            inputs = record.get("inputs") or {}
            materials = record.get("materials") or {}
            costs = data.get("costs") or {}

            expenses = deepcopy(record.get("expenses") or {})
            if expenses.get("laborRate") is None and "laborRate" in costs:
                expenses["laborRate"] = costs["laborRate"]

            patch = {
                "mode": inputs.get("mode"),
                "length": inputs.get("length"),
                "width": inputs.get("width"),
                "wallHeight": inputs.get("wallHeight"),
                "roofPitch": inputs.get("roofPitch"),
                "includeGables": inputs.get("includeGables"),
                "isMetalSurface": inputs.get("isMetalSurface") or False,
                "additionalAreas": inputs.get("additionalAreas") or [],
                "wallSettings": record.get("wallSettings") or {},
                "roofSettings": record.get("roofSettings") or {},
                "expenses": expenses,
                "inventory": materials.get("inventory") or [],
                "jobEquipment": materials.get("equipment") or [],
                "customerProfile": record.get("customer") or {},
                "jobNotes": record.get("notes") or "",
                "scheduledDate": record.get("scheduledDate") or "",
                "invoiceDate": record.get("invoiceDate") or "",
                "invoiceNumber": record.get("invoiceNumber") or "",
                "paymentTerms": record.get("paymentTerms") or "Due on Receipt",
                "pricingMode": record.get("pricingMode") or "level_pricing",
                "sqFtRates": record.get("sqFtRates") or {"wall": 0, "roof": 0},
                "sitePhotos": record.get("sitePhotos") or [],
            }
            self._store.dispatch(Action(ActionType.UPDATE_DATA, patch))
            self._store.dispatch(Action(ActionType.SET_EDITING_ESTIMATE, estimate_id))

        self._store.dispatch(Action(ActionType.SET_VIEW, View.ESTIMATE_DETAIL))
        return record

    def start_new_estimate(self) -> None:
        self._store.dispatch(Action(ActionType.RESET_CALCULATOR))
        self._store.dispatch(Action(ActionType.SET_VIEW, View.CALCULATOR))

    def save_customer(self, customer: Dict[str, Any]) -> Dict[str, Any]:
        """
        Add or replace a customer in the roster.

        The form's customer is refreshed when it is the same customer.
        """
        if not str(customer.get("name") or "").strip():
            raise CustomerNameRequiredError()

        with self._lock:
            data = self._store.state.data
            saved = deepcopy(customer)
            if not saved.get("id"):
                saved["id"] = self._new_id()

            customers: List[Dict[str, Any]] = list(data.get("customers", []))
            for index, existing in enumerate(customers):
                if existing.get("id") == saved["id"]:
                    customers[index] = saved
                    break
            else:
                customers.append(saved)

            patch: Dict[str, Any] = {"customers": customers}
            if (data.get("customerProfile") or {}).get("id") == saved["id"]:
                patch["customerProfile"] = saved
            self._store.dispatch(Action(ActionType.UPDATE_DATA, patch))

        logger.info(f"Saved customer {saved['id']}")
        return saved

    def update_execution_status(self, estimate_id: str, status: ExecutionStatus) -> Dict[str, Any]:
        """Record field progress on a work order."""
        with self._lock:
            record = self._require_estimate(self._store.state.data, estimate_id)
            if parse_status(record.get("status")) is not EstimateStatus.WORK_ORDER:
                raise LifecycleError(
                    "Field progress is tracked on work orders only",
                    estimate_id=estimate_id,
                    from_status=record.get("status"),
                )
            updated = {**record, "executionStatus": status.value}
            self._store.dispatch(Action(ActionType.UPDATE_SAVED_ESTIMATE, updated))

        logger.info(f"Estimate {estimate_id} execution status: {status.value}")
        return updated

    def report_job_completion(
        self,
        estimate_id: str,
        actuals: Dict[str, Any],
        completed_by: str,
    ) -> Dict[str, Any]:
        """
        Crew completion report.

        Stored locally at once, then sent with COMPLETE_JOB in the
        background (crew devices never auto-push the full state).

        Returns:
            The updated record
        """
        with self._lock:
            record = self._require_estimate(self._store.state.data, estimate_id)
            if parse_status(record.get("status")) is not EstimateStatus.WORK_ORDER:
                raise LifecycleError(
                    "Only a work order can be completed",
                    estimate_id=estimate_id,
                    from_status=record.get("status"),
                )
            reported = {
                **deepcopy(actuals),
                "completedBy": completed_by,
                "completionDate": self._timestamp(),
            }
            updated = {
                **record,
                "actuals": reported,
                "executionStatus": ExecutionStatus.COMPLETED.value,
            }
            self._store.dispatch(Action(ActionType.UPDATE_SAVED_ESTIMATE, updated))

        self._store.notify(NotificationLevel.SUCCESS, "Job Completed! Office notified.")
        logger.info(f"Estimate {estimate_id} completed by {completed_by}")

        session = self._store.state.session
        if session is not None:
            self._start_background(
                f"Complete-{estimate_id[:8]}",
                self._complete_thread_main,
                estimate_id,
                reported,
                session,
            )
        return updated

    def _complete_thread_main(self, estimate_id: str, actuals: Dict[str, Any], session: Session) -> None:
        name = f"Complete-{estimate_id[:8]}"
        set_thread_name(name)
        try:
            self._gateway.complete_job(estimate_id, actuals, session.store_handle)
        except RemoteStoreError as e:
            logger.error(f"Completion report for {estimate_id} failed: {e}")
            self._sync.set_status(SyncStatus.ERROR)
            self._store.notify(NotificationLevel.ERROR, "Completion saved on this device, but upload failed.")
        except Exception:
            logger.exception(f"Completion report for {estimate_id} crashed")
            self._sync.set_status(SyncStatus.ERROR)
        finally:
            self._finish_background(name)

    def upload_site_photo(
        self,
        image_bytes: bytes,
        filename: str,
        uploaded_by: str,
        photo_type: str = "site_condition",
    ) -> Dict[str, Any]:
        """
        Upload a photo and attach it to the form's site photos.

        Returns:
            The JobImage entry

        Raises:
            NoActiveSessionError: Nobody is signed in
            RemoteStoreError: Upload failed
        """
        session = self._store.state.session
        if session is None:
            raise NoActiveSessionError("upload_site_photo")

        try:
            url = self._gateway.upload_image(
                image_bytes, filename, session.store_handle, session.storage_handle
            )
        except RemoteStoreError:
            self._store.notify(NotificationLevel.ERROR, "Image upload failed.")
            raise

        image = {
            "id": self._new_id(),
            "url": url,
            "uploadedAt": self._timestamp(),
            "uploadedBy": uploaded_by,
            "type": photo_type,
        }
        with self._lock:
            photos = list(self._store.state.data.get("sitePhotos", [])) + [image]
            self._store.dispatch(Action(ActionType.UPDATE_DATA, {"sitePhotos": photos}))

        logger.info(f"Uploaded site photo {filename}")
        return image

    def log_crew_time(self, estimate_id: str, start: str, end: str, user: str) -> None:
        """
        Append a crew time entry to a work order's field-log sheet.

        Raises:
            NoActiveSessionError: Nobody is signed in
            EstimateNotFoundError: Unknown id
            ValidationError: The job has no field-log sheet yet
            RemoteStoreError: The remote store rejected the entry
        """
        if self._store.state.session is None:
            raise NoActiveSessionError("log_crew_time")

        record = self._require_estimate(self._store.state.data, estimate_id)
        sheet_url = record.get("workOrderSheetUrl")
        if not sheet_url:
            raise ValidationError("This job has no field log sheet", field="workOrderSheetUrl")

        try:
            self._gateway.log_crew_time(sheet_url, start, end, user)
        except RemoteStoreError:
            self._store.notify(NotificationLevel.ERROR, "Time entry could not be logged.")
            raise

        self._store.notify(NotificationLevel.SUCCESS, "Time Logged")
        logger.info(f"Logged crew time on {estimate_id} for {user} ({start} - {end})")

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _require_estimate(data: Dict[str, Any], estimate_id: str) -> Dict[str, Any]:
        record = find_estimate(data.get("savedEstimates", []), estimate_id)
        if record is None:
            raise EstimateNotFoundError(estimate_id)
        return record

    def _render(self, kind: DocumentKind, results: Dict[str, Any], record: Dict[str, Any]) -> None:
        if self.renderer is None:
            return
        try:
            self.renderer(self._store.state.data, results, kind, record)
        except Exception:
            logger.exception(f"{kind.value} document rendering failed for {record.get('id')}")

    def _start_background(self, name: str, target: Callable[..., None], *args: Any) -> threading.Thread:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        with self._threads_lock:
            self._active_threads[name] = thread
        thread.start()
        return thread

    def _finish_background(self, name: str) -> None:
        with self._threads_lock:
            self._active_threads.pop(name, None)

    def wait_for_background(self, timeout: float = 5.0) -> bool:
        """
        Wait for background reconciles to finish.

        Returns:
            True if no reconcile is still running
        """
        with self._threads_lock:
            active = list(self._active_threads.items())

        for name, thread in active:
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning(f"Background thread {name} did not complete in time")

        with self._threads_lock:
            return not any(t.is_alive() for t in self._active_threads.values())

    def shutdown(self, timeout_per_thread: float = 5.0) -> None:
        """Wait for all background reconciles. Call during application shutdown."""
        with self._threads_lock:
            pending = len(self._active_threads)
        if not pending:
            logger.info("No background reconciles to wait for")
            return

        logger.info(f"Waiting for {pending} background reconciles to complete...")
        self.wait_for_background(timeout_per_thread)
        logger.info("Lifecycle service shutdown complete")

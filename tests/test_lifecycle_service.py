"""
Unit tests for the job lifecycle service.

Remote calls go to the MagicMock gateway from conftest.py. Background
reconciles run on real threads; tests join them with wait_for_background()
before asserting on their effects.
"""

import itertools
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from core.exceptions import (
    ConfirmationRequiredError,
    CustomerNameRequiredError,
    EstimateNotFoundError,
    LifecycleError,
    NoActiveSessionError,
    RemoteStoreError,
    ValidationError,
)
from models.estimate import DocumentKind, EstimateStatus, ExecutionStatus, find_estimate
from models.state import Action, ActionType, NotificationLevel, SyncStatus, View
from services.lifecycle_service import JobLifecycleService


RESULTS = {"openCellSets": 2, "closedCellSets": 1.5, "totalCost": 4200}
NOW = datetime(2026, 5, 1, 14, 30, tzinfo=timezone.utc)


def _edit(store, **fields):
    store.dispatch(Action(ActionType.UPDATE_DATA, fields))


def _fill_form(store, name="Jane Doe", **fields):
    profile = {**store.state.data["customerProfile"], "name": name}
    _edit(store, customerProfile=profile, **fields)


def _record(store, estimate_id):
    return find_estimate(store.state.data["savedEstimates"], estimate_id)


def _messages(store, level=None):
    return [
        n.message for n in store.state.ui.notifications
        if level is None or n.level is level
    ]


# Fixtures

@pytest.fixture
def invoice_numbers():
    return iter(["INV-1001", "INV-1002", "INV-1003"])


@pytest.fixture
def lifecycle(signed_in, gateway, sync, invoice_numbers):
    counter = itertools.count(1)
    service = JobLifecycleService(
        signed_in,
        gateway,
        sync,
        id_factory=lambda: f"id-{next(counter)}",
        invoice_number_factory=lambda: next(invoice_numbers),
        clock=lambda: NOW,
    )
    yield service
    service.shutdown()


@pytest.fixture
def stocked(signed_in):
    """Warehouse with a little stock, two tools, and a job using one of each."""
    _edit(
        signed_in,
        warehouse={
            "openCellSets": 1,
            "closedCellSets": 5,
            "items": [{"id": "inv-1", "name": "Tape", "quantity": 3}],
        },
        equipment=[
            {"id": "rig-1", "name": "Spray Rig", "status": "Available"},
            {"id": "gun-2", "name": "Spare Gun", "status": "Available"},
        ],
        inventory=[{"id": "inv-1", "name": "Tape", "quantity": 4}],
        jobEquipment=[{"id": "rig-1", "name": "Spray Rig"}],
    )
    _fill_form(signed_in)
    return signed_in


@pytest.fixture
def work_order(lifecycle, stocked):
    record = lifecycle.confirm_work_order(RESULTS)
    assert lifecycle.wait_for_background()
    return record


@pytest.fixture
def invoiced(lifecycle, work_order):
    return lifecycle.generate_invoice(RESULTS)


# Tests for saving estimates

class TestSaveEstimate:
    """Test draft creation, updates and status rules on save."""

    def test_blank_customer_name_rejected(self, lifecycle, signed_in):
        with pytest.raises(CustomerNameRequiredError):
            lifecycle.save_estimate(RESULTS)

        assert signed_in.state.data["savedEstimates"] == []
        assert "Customer Name Required to Save" in _messages(signed_in, NotificationLevel.ERROR)

    def test_first_save_creates_draft_and_customer(self, lifecycle, signed_in):
        _fill_form(signed_in, length=55)

        record = lifecycle.save_estimate(RESULTS)

        assert record["id"] == "id-1"
        assert record["status"] == EstimateStatus.DRAFT.value
        assert record["inputs"]["length"] == 55
        assert record["totalValue"] == 4200.0
        assert record["date"] == NOW.isoformat()
        assert record["customerId"] == "id-2"

        data = signed_in.state.data
        assert [c["id"] for c in data["customers"]] == ["id-2"]
        assert data["customerProfile"]["id"] == "id-2"
        assert signed_in.state.ui.editing_estimate_id == "id-1"
        assert signed_in.state.ui.view is View.ESTIMATE_DETAIL
        assert "Estimate Saved" in _messages(signed_in, NotificationLevel.SUCCESS)

    def test_saving_twice_updates_same_record(self, lifecycle, signed_in):
        """Test idempotence: the second save updates, it does not duplicate."""
        _fill_form(signed_in)
        lifecycle.save_estimate(RESULTS)

        _edit(signed_in, jobNotes="Add a second coat")
        lifecycle.save_estimate(RESULTS)

        data = signed_in.state.data
        assert len(data["savedEstimates"]) == 1
        assert data["savedEstimates"][0]["notes"] == "Add a second coat"
        assert len(data["customers"]) == 1

    def test_existing_customer_reused(self, lifecycle, signed_in):
        customer = {"id": "cust-9", "name": "Bob Builder"}
        _edit(signed_in, customers=[customer], customerProfile=customer)

        record = lifecycle.save_estimate(RESULTS)

        assert record["customerId"] == "cust-9"
        assert signed_in.state.data["customers"] == [customer]

    def test_no_redirect(self, lifecycle, signed_in):
        _fill_form(signed_in)

        lifecycle.save_estimate(RESULTS, redirect=False)

        assert signed_in.state.ui.view is View.DASHBOARD

    def test_extra_fields_cannot_override_identity(self, lifecycle, signed_in):
        _fill_form(signed_in)

        record = lifecycle.save_estimate(
            RESULTS, extra={"id": "other", "status": "Paid", "leadSource": "Referral"}
        )

        assert record["id"] == "id-1"
        assert record["status"] == EstimateStatus.DRAFT.value
        assert record["leadSource"] == "Referral"

    def test_paid_cannot_be_saved(self, lifecycle, signed_in):
        _fill_form(signed_in)

        with pytest.raises(LifecycleError):
            lifecycle.save_estimate(RESULTS, EstimateStatus.PAID)

    def test_invoice_number_assigned_once(self, lifecycle, work_order, signed_in):
        first = lifecycle.generate_invoice(RESULTS)
        second = lifecycle.generate_invoice(RESULTS)

        assert first["invoiceNumber"] == "INV-1001"
        assert second["invoiceNumber"] == "INV-1001"
        assert signed_in.state.data["invoiceNumber"] == "INV-1001"
        assert "Invoice Generated" in _messages(signed_in, NotificationLevel.SUCCESS)

    def test_backward_move_rejected(self, lifecycle, invoiced, signed_in):
        with pytest.raises(LifecycleError) as excinfo:
            lifecycle.save_estimate(RESULTS, EstimateStatus.DRAFT)

        assert excinfo.value.details["from_status"] == "Invoiced"
        assert _record(signed_in, invoiced["id"])["status"] == "Invoiced"

    def test_work_order_status_reserved_for_confirm(self, lifecycle, stocked):
        """Test a save cannot sell a job without touching stock and equipment."""
        with pytest.raises(LifecycleError):
            lifecycle.save_estimate(RESULTS, EstimateStatus.WORK_ORDER)

        draft = lifecycle.save_estimate(RESULTS)
        with pytest.raises(LifecycleError):
            lifecycle.save_estimate(RESULTS, EstimateStatus.WORK_ORDER)

        assert _record(stocked, draft["id"])["status"] == EstimateStatus.DRAFT.value
        assert stocked.state.data["warehouse"]["openCellSets"] == 1
        assert stocked.state.data["equipment"][0]["status"] == "Available"

    def test_saving_work_order_keeps_its_status(self, lifecycle, work_order, stocked):
        _edit(stocked, jobNotes="Gate code 4411")

        record = lifecycle.save_estimate(RESULTS)

        assert record["status"] == EstimateStatus.WORK_ORDER.value
        assert record["notes"] == "Gate code 4411"
        assert stocked.state.data["warehouse"]["openCellSets"] == -1

    def test_new_draft_never_inherits_invoice_number(self, lifecycle, signed_in):
        _fill_form(signed_in, invoiceNumber="INV-0999")

        record = lifecycle.save_estimate(RESULTS)

        assert record["invoiceNumber"] == ""
        assert signed_in.state.data["invoiceNumber"] == ""

    def test_invoice_number_not_reused_after_delete(self, lifecycle, invoiced, stocked):
        lifecycle.delete_estimate(invoiced["id"])
        assert stocked.state.data["invoiceNumber"] == ""

        _fill_form(stocked)
        draft = lifecycle.save_estimate(RESULTS)

        assert draft["id"] != invoiced["id"]
        assert draft["status"] == EstimateStatus.DRAFT.value
        assert draft["invoiceNumber"] == ""


# Tests for the work order transition

class TestWorkOrder:
    """Test the sold-job commit and its background reconcile."""

    def test_commit_deducts_stock_and_assigns_equipment(self, lifecycle, stocked):
        record = lifecycle.confirm_work_order(RESULTS)

        data = stocked.state.data
        assert record["status"] == EstimateStatus.WORK_ORDER.value
        assert data["warehouse"]["openCellSets"] == -1  # stock may go negative
        assert data["warehouse"]["closedCellSets"] == 3.5
        assert data["warehouse"]["items"][0]["quantity"] == -1

        rig, spare = data["equipment"]
        assert rig["status"] == "In Use"
        assert rig["lastSeen"] == {
            "jobId": record["id"],
            "customerName": "Jane Doe",
            "date": NOW.isoformat(),
            "crewMember": "Assigned to Job",
        }
        assert spare == {"id": "gun-2", "name": "Spare Gun", "status": "Available"}

        assert stocked.state.ui.view is View.DASHBOARD
        assert "Work Order Created & Equipment Assigned." in _messages(stocked, NotificationLevel.SUCCESS)

    def test_job_line_matched_to_stock_by_name(self, lifecycle, stocked):
        _edit(stocked, inventory=[{"id": "line-xyz", "name": "Tape", "quantity": 4}])

        lifecycle.confirm_work_order(RESULTS)

        assert stocked.state.data["warehouse"]["items"][0]["quantity"] == -1

    def test_background_attaches_sheet_and_pushes(self, lifecycle, work_order, stocked, gateway):
        assert gateway.create_field_log_resource.call_args.args[1:] == ("folder-456", "sheet-123")
        assert _record(stocked, work_order["id"])["workOrderSheetUrl"] == "https://sheets.example/wo-1"

        pushed = gateway.push_company_state.call_args.args[0]
        assert pushed["savedEstimates"][0]["workOrderSheetUrl"] == "https://sheets.example/wo-1"
        assert "Work Order & Sheet Synced Successfully" in _messages(stocked, NotificationLevel.SUCCESS)

    def test_sheet_failure_keeps_commit(self, lifecycle, stocked, gateway):
        gateway.create_field_log_resource.side_effect = RemoteStoreError("CREATE_WORK_ORDER", "quota")

        record = lifecycle.confirm_work_order(RESULTS)
        assert lifecycle.wait_for_background()

        saved = _record(stocked, record["id"])
        assert saved["status"] == EstimateStatus.WORK_ORDER.value
        assert "workOrderSheetUrl" not in saved
        assert stocked.state.data["warehouse"]["openCellSets"] == -1
        assert _messages(stocked, NotificationLevel.WARNING)
        gateway.push_company_state.assert_called()
        assert stocked.state.ui.sync_status is SyncStatus.ERROR
        assert "Work Order & Sheet Synced Successfully" not in _messages(stocked)

    def test_push_failure_does_not_roll_back(self, lifecycle, stocked, gateway):
        gateway.push_company_state.side_effect = RemoteStoreError("SYNC_UP", "offline")

        record = lifecycle.confirm_work_order(RESULTS)
        assert lifecycle.wait_for_background()

        assert stocked.state.ui.sync_status is SyncStatus.ERROR
        assert _record(stocked, record["id"])["status"] == EstimateStatus.WORK_ORDER.value
        assert stocked.state.data["equipment"][0]["status"] == "In Use"
        assert "Work Order & Sheet Synced Successfully" not in _messages(stocked)

    def test_second_confirm_rejected(self, lifecycle, work_order, stocked):
        """Test a work order cannot be confirmed again (no double deduction)."""
        with pytest.raises(LifecycleError):
            lifecycle.confirm_work_order(RESULTS)

        assert stocked.state.data["warehouse"]["openCellSets"] == -1

    def test_crew_work_order_not_pushed(self, store, gateway, sync, crew_session):
        sync.begin_session(crew_session)
        lifecycle = JobLifecycleService(store, gateway, sync)
        _fill_form(store)

        try:
            record = lifecycle.confirm_work_order(RESULTS)
            assert lifecycle.wait_for_background()
        finally:
            lifecycle.shutdown()

        assert _record(store, record["id"])["workOrderSheetUrl"] == "https://sheets.example/wo-1"
        gateway.push_company_state.assert_not_called()

    def test_renderer_failure_only_logged(self, lifecycle, stocked):
        lifecycle.renderer = MagicMock(side_effect=RuntimeError("template missing"))

        record = lifecycle.confirm_work_order(RESULTS)

        assert lifecycle.renderer.call_args.args[2] is DocumentKind.WORK_ORDER
        assert _record(stocked, record["id"]) is not None


# Tests for field reports and actuals

class TestFieldReports:
    """Test crew progress, completion reports and applying actuals."""

    def test_execution_status_on_work_order(self, lifecycle, work_order, stocked):
        updated = lifecycle.update_execution_status(work_order["id"], ExecutionStatus.IN_PROGRESS)

        assert updated["executionStatus"] == "In Progress"
        assert _record(stocked, work_order["id"])["executionStatus"] == "In Progress"

    def test_execution_status_on_draft_rejected(self, lifecycle, signed_in):
        _fill_form(signed_in)
        record = lifecycle.save_estimate(RESULTS)

        with pytest.raises(LifecycleError):
            lifecycle.update_execution_status(record["id"], ExecutionStatus.IN_PROGRESS)

    def test_completion_report_sent_in_background(self, lifecycle, work_order, stocked, gateway):
        actuals = {"laborHours": 12, "inventory": [{"id": "inv-1", "name": "Tape", "quantity": 6}]}

        updated = lifecycle.report_job_completion(work_order["id"], actuals, "Crew A")
        assert lifecycle.wait_for_background()

        assert updated["executionStatus"] == ExecutionStatus.COMPLETED.value
        assert updated["actuals"]["completedBy"] == "Crew A"
        assert updated["actuals"]["completionDate"] == NOW.isoformat()
        gateway.complete_job.assert_called_once_with(work_order["id"], updated["actuals"], "sheet-123")
        assert "Job Completed! Office notified." in _messages(stocked, NotificationLevel.SUCCESS)

    def test_completion_upload_failure_keeps_report(self, lifecycle, work_order, stocked, gateway):
        gateway.complete_job.side_effect = RemoteStoreError("COMPLETE_JOB", "offline")

        lifecycle.report_job_completion(work_order["id"], {"laborHours": 8}, "Crew A")
        assert lifecycle.wait_for_background()

        assert _record(stocked, work_order["id"])["actuals"]["laborHours"] == 8
        assert stocked.state.ui.sync_status is SyncStatus.ERROR

    def test_apply_field_actuals(self, lifecycle, work_order, stocked):
        actuals = {"laborHours": 12, "inventory": [{"id": "inv-1", "name": "Tape", "quantity": 6}]}
        lifecycle.report_job_completion(work_order["id"], actuals, "Crew A")

        lifecycle.apply_field_actuals(work_order["id"])

        data = stocked.state.data
        assert data["expenses"]["manHours"] == 12.0
        assert data["inventory"] == [{"id": "inv-1", "name": "Tape", "quantity": 6}]

    def test_apply_without_actuals_rejected(self, lifecycle, work_order):
        with pytest.raises(ValidationError):
            lifecycle.apply_field_actuals(work_order["id"])

    def test_log_crew_time_to_field_log(self, lifecycle, work_order, stocked, gateway):
        lifecycle.log_crew_time(work_order["id"], "08:00", "16:30", "Crew A")

        gateway.log_crew_time.assert_called_once_with(
            "https://sheets.example/wo-1", "08:00", "16:30", "Crew A"
        )
        assert "Time Logged" in _messages(stocked, NotificationLevel.SUCCESS)

    def test_log_crew_time_needs_field_log(self, lifecycle, signed_in, gateway):
        _fill_form(signed_in)
        draft = lifecycle.save_estimate(RESULTS)

        with pytest.raises(ValidationError):
            lifecycle.log_crew_time(draft["id"], "08:00", "16:30", "Crew A")

        gateway.log_crew_time.assert_not_called()

    def test_log_crew_time_failure(self, lifecycle, work_order, stocked, gateway):
        gateway.log_crew_time.side_effect = RemoteStoreError("LOG_TIME", "sheet locked")

        with pytest.raises(RemoteStoreError):
            lifecycle.log_crew_time(work_order["id"], "08:00", "16:30", "Crew A")

        assert "Time entry could not be logged." in _messages(stocked, NotificationLevel.ERROR)


# Tests for payment

class TestMarkPaid:
    """Test the confirmed, non-optimistic payment transition."""

    def test_confirmation_required(self, lifecycle, invoiced, gateway):
        with pytest.raises(ConfirmationRequiredError):
            lifecycle.mark_paid(invoiced["id"])

        gateway.mark_paid.assert_not_called()

    def test_only_invoiced_jobs_can_be_paid(self, lifecycle, work_order, gateway):
        with pytest.raises(LifecycleError):
            lifecycle.mark_paid(work_order["id"], confirmed=True)

        gateway.mark_paid.assert_not_called()

    def test_unknown_estimate(self, lifecycle):
        with pytest.raises(EstimateNotFoundError):
            lifecycle.mark_paid("missing", confirmed=True)

    def test_success_replaces_record_with_finalized(self, lifecycle, invoiced, stocked, gateway):
        gateway.mark_paid.return_value = {
            "id": invoiced["id"],
            "status": "Paid",
            "financials": {"revenue": 4200, "netProfit": 1800},
        }
        lifecycle.renderer = MagicMock()

        finalized = lifecycle.mark_paid(invoiced["id"], confirmed=True)

        saved = _record(stocked, invoiced["id"])
        assert saved == finalized
        assert saved["financials"]["netProfit"] == 1800
        assert stocked.state.ui.sync_status is SyncStatus.SUCCESS
        assert "Paid! Profit Calculated." in _messages(stocked, NotificationLevel.SUCCESS)
        gateway.mark_paid.assert_called_once_with(invoiced["id"], "sheet-123")
        assert lifecycle.renderer.call_args.args[2] is DocumentKind.RECEIPT

    def test_finalized_record_without_status_is_paid(self, lifecycle, invoiced, stocked, gateway):
        gateway.mark_paid.return_value = {"financials": {"netProfit": 10}}

        lifecycle.mark_paid(invoiced["id"], confirmed=True)

        assert _record(stocked, invoiced["id"])["status"] == "Paid"

    def test_failure_leaves_status_unchanged(self, lifecycle, invoiced, stocked, gateway):
        gateway.mark_paid.side_effect = RemoteStoreError("MARK_JOB_PAID", "offline")

        assert lifecycle.mark_paid(invoiced["id"], confirmed=True) is None

        assert _record(stocked, invoiced["id"])["status"] == "Invoiced"
        assert stocked.state.ui.sync_status is SyncStatus.ERROR
        assert "Failed to record payment. Status unchanged." in _messages(stocked, NotificationLevel.ERROR)

    def test_paid_job_is_immutable(self, lifecycle, invoiced, gateway):
        gateway.mark_paid.return_value = {"status": "Paid"}
        lifecycle.mark_paid(invoiced["id"], confirmed=True)

        with pytest.raises(LifecycleError):
            lifecycle.archive_estimate(invoiced["id"])
        with pytest.raises(LifecycleError):
            lifecycle.mark_paid(invoiced["id"], confirmed=True)


# Tests for delete and archive

class TestDeleteAndArchive:
    """Test local-first delete and archiving."""

    def test_delete_removes_locally_then_remotely(self, lifecycle, signed_in, gateway):
        _fill_form(signed_in)
        record = lifecycle.save_estimate(RESULTS)

        lifecycle.delete_estimate(record["id"])

        assert signed_in.state.data["savedEstimates"] == []
        assert signed_in.state.ui.editing_estimate_id is None
        assert signed_in.state.ui.view is View.DASHBOARD

        assert lifecycle.wait_for_background()
        gateway.delete_estimate.assert_called_once_with(record["id"], "sheet-123")
        assert "Job Deleted" in _messages(signed_in, NotificationLevel.SUCCESS)

    def test_remote_delete_failure_does_not_restore(self, lifecycle, signed_in, gateway):
        gateway.delete_estimate.side_effect = RemoteStoreError("DELETE_ESTIMATE", "offline")
        _fill_form(signed_in)
        record = lifecycle.save_estimate(RESULTS)

        lifecycle.delete_estimate(record["id"])
        assert lifecycle.wait_for_background()

        assert signed_in.state.data["savedEstimates"] == []
        assert "Deleted on this device, but the server delete failed." in _messages(
            signed_in, NotificationLevel.ERROR
        )

    def test_delete_unknown_estimate(self, lifecycle, gateway):
        with pytest.raises(EstimateNotFoundError):
            lifecycle.delete_estimate("missing")

        gateway.delete_estimate.assert_not_called()

    def test_sheet_url_not_attached_to_deleted_job(self, lifecycle, stocked, gateway):
        """Test a job deleted while its sheet is being created stays deleted."""
        def create_sheet(record, folder, sheet):
            lifecycle.delete_estimate(record["id"])
            return "https://sheets.example/late"

        gateway.create_field_log_resource.side_effect = create_sheet

        lifecycle.confirm_work_order(RESULTS)
        lifecycle.wait_for_background()
        assert lifecycle.wait_for_background()

        assert stocked.state.data["savedEstimates"] == []

    def test_archive_open_job(self, lifecycle, signed_in):
        _fill_form(signed_in)
        record = lifecycle.save_estimate(RESULTS)

        archived = lifecycle.archive_estimate(record["id"])

        assert archived["status"] == "Archived"
        assert _record(signed_in, record["id"])["status"] == "Archived"
        assert "Job Archived" in _messages(signed_in, NotificationLevel.SUCCESS)


# Tests for warehouse receipts

class TestPurchaseOrders:
    """Test receiving vendor orders into stock."""

    def test_receive_adds_stock_and_records_order(self, lifecycle, stocked, gateway):
        order = {
            "vendorName": "Foam Supply",
            "items": [
                {"type": "open_cell", "quantity": 4, "total": 4000},
                {"type": "inventory", "inventoryId": "inv-1", "quantity": 10, "total": 50},
                {"type": "inventory", "inventoryId": "ghost", "quantity": 5, "total": 0},
            ],
        }

        recorded = lifecycle.receive_purchase_order(order)

        warehouse = stocked.state.data["warehouse"]
        assert warehouse["openCellSets"] == 5
        assert warehouse["closedCellSets"] == 5
        assert warehouse["items"] == [{"id": "inv-1", "name": "Tape", "quantity": 13}]

        assert recorded["status"] == "Received"
        assert recorded["totalCost"] == 4050
        assert recorded["date"] == NOW.isoformat()
        assert stocked.state.data["purchaseOrders"] == [recorded]
        assert stocked.state.ui.view is View.WAREHOUSE
        assert "Order Saved & Stock Updated" in _messages(stocked, NotificationLevel.SUCCESS)

        assert lifecycle.wait_for_background()
        gateway.push_company_state.assert_called_once()

    def test_empty_order_rejected(self, lifecycle, signed_in):
        with pytest.raises(ValidationError):
            lifecycle.receive_purchase_order({"vendorName": "Foam Supply", "items": []})

        assert signed_in.state.data["purchaseOrders"] == []

    def test_crew_receipt_not_pushed(self, store, gateway, sync, crew_session):
        sync.begin_session(crew_session)
        lifecycle = JobLifecycleService(store, gateway, sync)

        lifecycle.receive_purchase_order({"items": [{"type": "closed_cell", "quantity": 2}]})
        assert lifecycle.wait_for_background()

        assert store.state.data["warehouse"]["closedCellSets"] == 2
        gateway.push_company_state.assert_not_called()


# Tests for the form, customers and photos

class TestFormAndCustomers:
    """Test form navigation, the customer roster and site photos."""

    def test_start_new_estimate_resets_form(self, lifecycle, signed_in):
        _fill_form(signed_in, length=99)
        lifecycle.save_estimate(RESULTS)

        lifecycle.start_new_estimate()

        assert signed_in.state.data["length"] == 40
        assert signed_in.state.data["customerProfile"]["name"] == ""
        assert len(signed_in.state.data["savedEstimates"]) == 1
        assert signed_in.state.ui.editing_estimate_id is None
        assert signed_in.state.ui.view is View.CALCULATOR

    def test_load_estimate_for_editing(self, lifecycle, signed_in):
        _fill_form(signed_in, length=55, jobNotes="Attic only")
        record = lifecycle.save_estimate(RESULTS)
        lifecycle.start_new_estimate()

        lifecycle.load_estimate_for_editing(record["id"])

        data = signed_in.state.data
        assert data["length"] == 55
        assert data["jobNotes"] == "Attic only"
        assert data["customerProfile"]["name"] == "Jane Doe"
        assert signed_in.state.ui.editing_estimate_id == record["id"]
        assert signed_in.state.ui.view is View.ESTIMATE_DETAIL

    def test_save_new_customer(self, lifecycle, signed_in):
        saved = lifecycle.save_customer({"name": "Bob Builder", "phone": "555-0100"})

        assert saved["id"] == "id-1"
        assert signed_in.state.data["customers"] == [saved]

    def test_update_customer_refreshes_form(self, lifecycle, signed_in):
        customer = {"id": "cust-9", "name": "Bob"}
        _edit(signed_in, customers=[customer], customerProfile=customer)

        lifecycle.save_customer({"id": "cust-9", "name": "Robert"})

        assert signed_in.state.data["customers"] == [{"id": "cust-9", "name": "Robert"}]
        assert signed_in.state.data["customerProfile"]["name"] == "Robert"

    def test_customer_name_required(self, lifecycle):
        with pytest.raises(CustomerNameRequiredError):
            lifecycle.save_customer({"name": "  "})

    def test_upload_site_photo(self, lifecycle, signed_in, gateway):
        image = lifecycle.upload_site_photo(b"jpeg-bytes", "attic.jpg", "Crew A", "progress")

        assert image["url"] == "https://files.example/photo.jpg"
        assert image["type"] == "progress"
        assert signed_in.state.data["sitePhotos"] == [image]
        gateway.upload_image.assert_called_once_with(b"jpeg-bytes", "attic.jpg", "sheet-123", "folder-456")

    def test_upload_failure(self, lifecycle, signed_in, gateway):
        gateway.upload_image.side_effect = RemoteStoreError("UPLOAD_IMAGE", "too large")

        with pytest.raises(RemoteStoreError):
            lifecycle.upload_site_photo(b"jpeg-bytes", "attic.jpg", "Crew A")

        assert signed_in.state.data["sitePhotos"] == []
        assert "Image upload failed." in _messages(signed_in, NotificationLevel.ERROR)

    def test_upload_requires_session(self, store, gateway, sync):
        lifecycle = JobLifecycleService(store, gateway, sync)

        with pytest.raises(NoActiveSessionError):
            lifecycle.upload_site_photo(b"jpeg-bytes", "attic.jpg", "Crew A")

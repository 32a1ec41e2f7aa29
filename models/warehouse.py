"""
Warehouse and equipment ledger mutations.

WarehouseState is mutated by exactly two operations:
    - deduct_job_materials(): a job becomes a Work Order
    - receive_purchase_order(): stock arrives from a vendor

There is no lower bound. Quantities may go negative: crews log what they
actually used and the office reconciles later, so stock is never a gate.

All functions are pure: they return new structures and leave their inputs
untouched, so the state store can commit the results in a single dispatch.
"""

from __future__ import annotations

from typing import Dict, Any, List, Optional

from .app_data import to_number


IN_USE = "In Use"
ASSIGNED_TO_JOB = "Assigned to Job"


def _match_item(item: Dict[str, Any], used: Dict[str, Any]) -> bool:
    # Lines added to a job get ids of their own, so the name is what ties a
    # line to its warehouse item; an id match also counts.
    if used.get("id") and used.get("id") == item.get("id"):
        return True
    return bool(used.get("name")) and used.get("name") == item.get("name")


def deduct_job_materials(
    warehouse: Dict[str, Any],
    open_cell_sets: Any,
    closed_cell_sets: Any,
    job_inventory: Optional[List[Dict[str, Any]]] = None,
) -> Dict[str, Any]:
    """
    Deduct a job's chemical sets and inventory items from stock.

    Args:
        warehouse: Current warehouse state
        open_cell_sets: Open-cell sets the job requires
        closed_cell_sets: Closed-cell sets the job requires
        job_inventory: Inventory lines assigned to the job

    Returns:
        New warehouse state (quantities may be negative)
    """
    job_inventory = job_inventory or []

    items = []
    for item in warehouse.get("items", []):
        used = next((line for line in job_inventory if _match_item(item, line)), None)
        if used is not None:
            item = {**item, "quantity": to_number(item.get("quantity")) - to_number(used.get("quantity"))}
        else:
            item = dict(item)
        items.append(item)

    return {
        **warehouse,
        "openCellSets": to_number(warehouse.get("openCellSets")) - to_number(open_cell_sets),
        "closedCellSets": to_number(warehouse.get("closedCellSets")) - to_number(closed_cell_sets),
        "items": items,
    }


def receive_purchase_order(warehouse: Dict[str, Any], order: Dict[str, Any]) -> Dict[str, Any]:
    """
    Add the lines of a received purchase order to stock.

    Line types:
        open_cell   -> openCellSets
        closed_cell -> closedCellSets
        inventory   -> warehouse item with id == inventoryId (unknown ids ignored)

    Returns:
        New warehouse state
    """
    open_sets = to_number(warehouse.get("openCellSets"))
    closed_sets = to_number(warehouse.get("closedCellSets"))
    items = [dict(item) for item in warehouse.get("items", [])]

    for line in order.get("items", []):
        quantity = to_number(line.get("quantity"))
        line_type = line.get("type")

        if line_type == "open_cell":
            open_sets += quantity
        elif line_type == "closed_cell":
            closed_sets += quantity
        elif line_type == "inventory" and line.get("inventoryId"):
            for item in items:
                if item.get("id") == line["inventoryId"]:
                    item["quantity"] = to_number(item.get("quantity")) + quantity
                    break

    return {
        **warehouse,
        "openCellSets": open_sets,
        "closedCellSets": closed_sets,
        "items": items,
    }


def assign_equipment(
    equipment: List[Dict[str, Any]],
    job_equipment: List[Dict[str, Any]],
    job_id: str,
    customer_name: str,
    date: str,
    crew_member: str = ASSIGNED_TO_JOB,
) -> List[Dict[str, Any]]:
    """
    Mark every tool assigned to a job as in use and point lastSeen at the job.

    lastSeen is a lookup back-reference to the job that most recently claimed
    the tool, not an ownership relation.

    Returns:
        New equipment roster
    """
    assigned_ids = {tool.get("id") for tool in job_equipment if tool.get("id")}
    if not assigned_ids:
        return [dict(tool) for tool in equipment]

    roster = []
    for tool in equipment:
        if tool.get("id") in assigned_ids:
            tool = {
                **tool,
                "status": IN_USE,
                "lastSeen": {
                    "jobId": job_id,
                    "customerName": customer_name,
                    "date": date,
                    "crewMember": crew_member,
                },
            }
        else:
            tool = dict(tool)
        roster.append(tool)
    return roster

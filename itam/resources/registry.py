"""Registered record collections of the IT asset backend.

Filter declaration order is the order parameters appear on the query string
(after page, limit and q).
"""
from __future__ import annotations
from typing import Dict, List

from ..errors import ValidationError
from .base import (
    CREATE,
    ActionSpec,
    FilterSpec,
    Payload,
    ResourceSpec,
    min_length,
    number,
    required,
    required_list,
    when,
)


def _domain_only(payload: Payload) -> bool:
    return payload.get("type") == "domain"


def _has_seats(payload: Payload) -> bool:
    return payload.get("type") in ("saas", "license")


def _temporary_access(payload: Payload) -> bool:
    return payload.get("accessType", "temporary") == "temporary"


def _fingerprint_person(payload: Payload) -> None:
    if payload.get("personType", "employee") == "employee":
        required("employeeId", "Employee")(payload)
        return
    temp = payload.get("tempPerson") or {}
    name = temp.get("name") if isinstance(temp, dict) else None
    if not name or not str(name).strip():
        raise ValidationError("Temporary person name is required.", "tempPerson.name")


def _assign_target(payload: Payload) -> None:
    target = payload.get("targetType", "employee")
    if target == "department":
        required("targetName", "Department name")(payload)
    elif target in ("employee", "asset"):
        required("targetId", target.capitalize())(payload)
    else:
        raise ValidationError("Target type must be employee, asset or department.", "targetType")
    number("seatCount", "seat count", minimum=1)(payload)


ASSETS = ResourceSpec(
    name="assets",
    title="Assets",
    path="/api/assets",
    filters=(
        FilterSpec("department", "Department"),
        FilterSpec("category", "Category"),
        FilterSpec("expiringSoon", "Warranty expiring within 30 days", kind="bool"),
    ),
    columns=(
        ("assetTag", "Tag"),
        ("name", "Name"),
        ("category", "Category"),
        ("brand", "Brand"),
        ("model", "Model"),
        ("serialNumber", "Serial"),
        ("department", "Department"),
        ("warrantyExpiry", "Warranty"),
    ),
    create_validators=(
        required("assetTag", "Asset Tag"),
        required("name", "Name"),
        required("category", "Category"),
        required("department", "Department"),
    ),
    label_fields=("assetTag", "name"),
)

EMPLOYEES = ResourceSpec(
    name="employees",
    title="Employees",
    path="/api/employees",
    filters=(FilterSpec("department", "Department"),),
    columns=(
        ("employeeId", "Employee ID"),
        ("name", "Name"),
        ("email", "Email"),
        ("department", "Department"),
        ("designation", "Designation"),
    ),
    create_validators=(
        required("name", "Name"),
        required("email", "Email"),
        required("department", "Department"),
    ),
    label_fields=("name", "email"),
)

ASSIGNMENTS = ResourceSpec(
    name="assignments",
    title="Assignments",
    path="/api/assignments",
    filters=(
        FilterSpec("status", "Status", kind="choice", choices=("active", "returned", "all"), default="active"),
    ),
    columns=(
        ("assetTag", "Asset"),
        ("employeeName", "Employee"),
        ("type", "Type"),
        ("assignedAt", "Assigned"),
        ("expectedReturnAt", "Expected return"),
        ("status", "Status"),
    ),
    create_validators=(required("assetId", "Asset"), required("employeeId", "Employee")),
    actions=(ActionSpec("return", label="Return asset"),),
    notify_kinds=(CREATE,),
    supports_update=False,
    supports_delete=False,
    label_fields=("assetTag", "employeeName"),
)

SOFTWARE = ResourceSpec(
    name="software",
    title="Software & Subscriptions",
    path="/api/software",
    filters=(
        FilterSpec("type", "Type", kind="choice", choices=("saas", "license", "domain"), default="saas"),
        FilterSpec("department", "Department"),
        FilterSpec("expiry", "Expiry window", kind="choice", choices=("expired", "30", "60", "90")),
    ),
    columns=(
        ("name", "Name"),
        ("vendor", "Vendor"),
        ("department", "Department"),
        ("quantityTotal", "Seats"),
        ("expiryDate", "Expiry"),
        ("billingCycle", "Billing"),
    ),
    create_validators=(
        required("name", "Name"),
        when(_domain_only, required("domainName", "Domain name")),
        when(_has_seats, number("quantityTotal", "seats total", minimum=1)),
        number("cost", "cost", minimum=0),
    ),
    actions=(
        ActionSpec("renew", label="Renew", validators=(
            required("newExpiryDate", "New expiry date"),
            number("cost", "cost", minimum=0),
        )),
        ActionSpec("assign", label="Assign seats", validators=(_assign_target,)),
    ),
)

SOFTWARE_SEATS = ResourceSpec(
    name="software-seats",
    title="Seat Assignments",
    path="/api/software/{parent_id}/assignments",
    parent="software",
    filters=(
        FilterSpec("status", "Status", kind="choice", choices=("active", "revoked"), default="active"),
    ),
    columns=(
        ("targetType", "Target"),
        ("targetName", "Assigned to"),
        ("seatCount", "Seats"),
        ("assignedAt", "Assigned"),
        ("status", "Status"),
    ),
    actions=(
        ActionSpec("revoke", label="Revoke seats", path="/api/software/assignments/{id}/revoke"),
    ),
    supports_create=False,
    supports_update=False,
    supports_delete=False,
    label_fields=("targetType", "targetName"),
)

SOFTWARE_RENEWALS = ResourceSpec(
    name="software-renewals",
    title="Renewal History",
    path="/api/software/{parent_id}/renewals",
    parent="software",
    columns=(
        ("renewedAt", "Renewed"),
        ("oldExpiryDate", "Old expiry"),
        ("newExpiryDate", "New expiry"),
        ("cost", "Cost"),
        ("currency", "Currency"),
    ),
    supports_create=False,
    supports_update=False,
    supports_delete=False,
    label_fields=("renewedAt",),
)

INTERNET_CONNECTIONS = ResourceSpec(
    name="internet-connections",
    title="Internet Connections",
    path="/api/internet/connections",
    filters=(FilterSpec("status", "Status", kind="choice", choices=("active", "inactive")),),
    columns=(
        ("name", "Name"),
        ("provider", "Provider"),
        ("location", "Location"),
        ("accountNumber", "Account"),
        ("ipAddress", "IP"),
        ("status", "Status"),
    ),
    create_validators=(required("name", "Name"),),
)

INTERNET_PACKAGES = ResourceSpec(
    name="internet-packages",
    title="Internet Packages",
    path="/api/internet/packages",
    filters=(FilterSpec("month", "Month (YYYY-MM)"), FilterSpec("connectionId", "Connection")),
    columns=(
        ("connectionName", "Connection"),
        ("month", "Month"),
        ("packageName", "Package"),
        ("dataLimitGB", "Limit (GB)"),
        ("cost", "Cost"),
        ("currency", "Currency"),
    ),
    create_validators=(
        required("connectionId", "Connection"),
        required("month", "Month"),
        required("packageName", "Package name"),
        number("dataLimitGB", "data limit", minimum=0),
        number("cost", "cost", minimum=0),
    ),
    label_fields=("packageName", "month"),
)

INTERNET_USAGE = ResourceSpec(
    name="internet-usage",
    title="Internet Usage",
    path="/api/internet/usage",
    filters=(FilterSpec("month", "Month (YYYY-MM)"),),
    columns=(
        ("connectionName", "Connection"),
        ("month", "Month"),
        ("startReadingGB", "Start (GB)"),
        ("endReadingGB", "End (GB)"),
        ("usedGB", "Used (GB)"),
        ("remarks", "Remarks"),
    ),
    update_validators=(
        number("startReadingGB", "number value", minimum=0),
        number("endReadingGB", "number value", minimum=0),
        number("manualUsedGB", "number value", minimum=0),
    ),
    actions=(
        ActionSpec("generate-month", label="Generate month rows", collection=True,
                   query_fields=("month",), validators=(required("month", "Month"),)),
    ),
    min_latency_ms=350,
    supports_create=False,
    label_fields=("connectionName", "month"),
)

REPAIRS = ResourceSpec(
    name="repairs",
    title="Repairs",
    path="/api/repairs",
    filters=(
        FilterSpec("status", "Status"),
        FilterSpec("priority", "Priority", kind="choice", choices=("low", "medium", "high", "urgent")),
        FilterSpec("type", "Type"),
        FilterSpec("department", "Department"),
        FilterSpec("dateFrom", "From date (YYYY-MM-DD)"),
    ),
    columns=(
        ("ticketNo", "Ticket"),
        ("title", "Title"),
        ("assetTag", "Asset"),
        ("employeeName", "Employee"),
        ("priority", "Priority"),
        ("status", "Status"),
        ("costLKR", "Cost (LKR)"),
    ),
    create_validators=(
        required("assetId", "Asset"),
        required("employeeId", "Employee"),
        required("title", "Title"),
        number("costLKR", "cost (LKR)", minimum=0),
    ),
    actions=(
        ActionSpec("status", method="PATCH", label="Change status",
                   validators=(required("status", "Status"),), notify=True),
        ActionSpec("note", label="Add note", validators=(required("note", "Note"),), notify=True),
    ),
    notify_kinds=(CREATE,),
    min_latency_ms=320,
    label_fields=("ticketNo", "title"),
)

MAINTENANCE_JOBS = ResourceSpec(
    name="maintenance-jobs",
    title="Maintenance Jobs",
    path="/api/maintenance/jobs",
    filters=(FilterSpec("status", "Status"), FilterSpec("department", "Department")),
    columns=(
        ("jobNo", "Job"),
        ("employeeName", "Employee"),
        ("assetCount", "Assets"),
        ("purpose", "Purpose"),
        ("scheduledAt", "Scheduled"),
        ("status", "Status"),
    ),
    create_validators=(
        required("employeeId", "Employee"),
        required_list("assetIds", "asset"),
    ),
    actions=(
        ActionSpec("status", method="PATCH", label="Change status",
                   validators=(required("status", "Status"),), notify=True),
        ActionSpec("note", label="Add note", validators=(required("note", "Note"),), notify=True),
    ),
    notify_kinds=(CREATE,),
    min_latency_ms=320,
    supports_update=False,
    supports_delete=False,
    label_fields=("jobNo",),
)

EMPLOYEE_ASSETS = ResourceSpec(
    name="employee-assets",
    title="Employee Assets",
    path="/api/maintenance/employee-assets",
    filters=(FilterSpec("department", "Department"),),
    columns=(("employeeName", "Employee"), ("department", "Department"), ("assetCount", "Assets")),
    min_latency_ms=320,
    supports_create=False,
    supports_update=False,
    supports_delete=False,
    label_fields=("employeeName",),
)

FINGERPRINT_REQUESTS = ResourceSpec(
    name="fingerprint-requests",
    title="Fingerprint Access Requests",
    path="/api/fingerprint/requests",
    filters=(
        FilterSpec("status", "Status", kind="choice", choices=("open", "approved", "cancelled")),
    ),
    columns=(
        ("requestNo", "Request"),
        ("personName", "Person"),
        ("systemName", "System"),
        ("accessType", "Access"),
        ("validTo", "Valid to"),
        ("status", "Status"),
    ),
    create_validators=(
        required("systemId", "Fingerprint system"),
        _fingerprint_person,
        when(_temporary_access, required("validTo", "Valid To")),
    ),
    actions=(
        ActionSpec("approve", label="Approve", notify=True),
        ActionSpec("cancel", label="Cancel request"),
    ),
    supports_update=False,
    supports_delete=False,
    label_fields=("requestNo", "personName"),
)

FINGERPRINT_SYSTEMS = ResourceSpec(
    name="fingerprint-systems",
    title="Fingerprint Systems",
    path="/api/fingerprint/systems",
    columns=(("name", "Name"), ("location", "Location"), ("deviceId", "Device"), ("enabled", "Enabled")),
    create_validators=(required("name", "System name"),),
    page_size=100,
)

USERS = ResourceSpec(
    name="users",
    title="Users",
    path="/api/users",
    columns=(("username", "Username"), ("email", "Email"), ("role", "Role")),
    update_validators=(required("username", "Username"), required("email", "Email")),
    actions=(
        ActionSpec("password", method="PATCH", label="Set password",
                   validators=(min_length("password", "Password", 6),)),
    ),
    items_key="users",
    record_key="user",
    supports_create=False,
    label_fields=("username", "email"),
)

RESOURCES: Dict[str, ResourceSpec] = {
    spec.name: spec
    for spec in (
        ASSETS,
        EMPLOYEES,
        ASSIGNMENTS,
        SOFTWARE,
        SOFTWARE_SEATS,
        SOFTWARE_RENEWALS,
        INTERNET_CONNECTIONS,
        INTERNET_PACKAGES,
        INTERNET_USAGE,
        REPAIRS,
        MAINTENANCE_JOBS,
        EMPLOYEE_ASSETS,
        FINGERPRINT_REQUESTS,
        FINGERPRINT_SYSTEMS,
        USERS,
    )
}


def get_resource(name: str) -> ResourceSpec:
    """Look up a resource by name.

    Raises:
        KeyError: with the list of known names
    """
    try:
        return RESOURCES[name]
    except KeyError:
        raise KeyError(f"Unknown resource '{name}'. Available: {', '.join(RESOURCES)}") from None


def list_resources(nested: bool = True) -> List[ResourceSpec]:
    """All resources; ``nested=False`` leaves out lists that need a parent id."""
    return [spec for spec in RESOURCES.values() if nested or spec.parent is None]


__all__ = ["RESOURCES", "get_resource", "list_resources"]

# portal/services/commands.py
"""Side effects (session sync, audit entry, notification) attached to each command type."""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from portal.core.identity import UserIdentity
from portal.core.permissions import PermissionAction
from portal.models.user import UserRole
from portal.schemas.notification import LinkTo, NotificationCreate
from portal.services.pipeline import AuditRule, MutationCommand, NotifyRule, SyncRule
from portal.services.sessions import SessionRegistry


@dataclass(frozen=True)
class CommandRule:
    audit: Optional[AuditRule] = None
    notify: Optional[NotifyRule] = None
    sync: Optional[SyncRule] = None


def _find(items: List[Any], entity_id: Any) -> Dict[str, Any]:
    for item in items:
        if isinstance(item, dict) and str(item.get("id")) == str(entity_id):
            return item
    return {}


def _label(command: MutationCommand, items: List[Any], *keys: str) -> str:
    source = {**_find(items, command.entity_id), **command.payload}
    for key in keys:
        if source.get(key):
            return str(source[key])
    return f"#{command.entity_id}" if command.entity_id is not None else "(unnamed)"


def _created(command: MutationCommand, items: List[Any]) -> Dict[str, Any]:
    # The item whose id was not in the collection before the create
    known = {str(item.get("id")) for item in command.previous if isinstance(item, dict)}
    fresh = [item for item in items if isinstance(item, dict) and str(item.get("id")) not in known]
    return fresh[-1] if fresh else {}


# ============================================================================
# SESSION SYNC RULES
# ============================================================================
def sync_user_sessions(command: MutationCommand, items: List[Any], registry: SessionRegistry) -> None:
    if command.action == PermissionAction.delete:
        registry.close_user(command.entity_id)
        return

    item = _find(items, command.entity_id)
    if item:
        registry.refresh_user(UserIdentity.model_validate(item))


# ============================================================================
# AUDIT RULES
# ============================================================================
def audit_staff_created(command: MutationCommand, items: List[Any]) -> Optional[str]:
    role = command.payload.get("role", UserRole.Employee.value)
    return f"Created new staff member {command.payload.get('name')} ({role})."


def audit_user_changed(command: MutationCommand, items: List[Any]) -> Optional[str]:
    name = _find(items, command.entity_id).get("name") or f"user #{command.entity_id}"
    if "role" in command.payload:
        return f"Changed role for {name} to {command.payload['role']}."
    if "permissions" in command.payload:
        return f"Updated app permissions for {name}."
    return None


def audit_user_removed(command: MutationCommand, items: List[Any]) -> Optional[str]:
    removed = _find(command.previous, command.entity_id)
    name = removed.get("name") or command.payload.get("name") or f"user #{command.entity_id}"
    return f"Removed user {name}."


def audit_template(command: MutationCommand, items: List[Any]) -> Optional[str]:
    verb = {
        PermissionAction.create: "Created",
        PermissionAction.update: "Updated",
        PermissionAction.delete: "Deleted",
    }[command.action]
    return f"{verb} quotation template '{_label(command, items, 'title', 'name')}'."


def audit_coupon(command: MutationCommand, items: List[Any]) -> Optional[str]:
    code = command.payload.get("code") or command.entity_id
    if command.action == PermissionAction.delete:
        return f"Deleted coupon '{code}'."
    return f"Saved coupon '{code}'."


# ============================================================================
# NOTIFY RULES
# ============================================================================
def notify_new_lead(command: MutationCommand, items: List[Any], actor: UserIdentity) -> Optional[NotificationCreate]:
    name = command.payload.get("name") or command.payload.get("contact") or "A new lead"
    return NotificationCreate(
        title="New Lead",
        description=f"{name} was added to the CRM by {actor.name}.",
        recipient_roles=[UserRole.Admin, UserRole.Employee],
    )


def notify_visitor_arrived(command: MutationCommand, items: List[Any], actor: UserIdentity) -> Optional[NotificationCreate]:
    if command.action == PermissionAction.create:
        stored = _created(command, items)
    else:
        stored = _find(items, command.entity_id)
    visitor = {**stored, **command.payload}
    visitor_id = stored.get("id", command.entity_id)
    if str(visitor.get("status", "")).lower() != "checked-in":
        return None
    return NotificationCreate(
        title="Visitor Arrived",
        description=(
            f"{visitor.get('name', 'A visitor')} from {visitor.get('company', 'an unknown company')} "
            f"has arrived to see {visitor.get('host', 'their host')}."
        ),
        link_to=LinkTo(type="visitor", id=visitor_id) if visitor_id is not None else None,
    )


def notify_new_invoice(command: MutationCommand, items: List[Any], actor: UserIdentity) -> Optional[NotificationCreate]:
    customer = command.payload.get("customerName", "a customer")
    amount = command.payload.get("amount")
    suffix = f" for {amount}" if amount is not None else ""
    return NotificationCreate(
        title="New Invoice",
        description=f"{actor.name} invoiced {customer}{suffix}.",
        recipient_roles=[UserRole.Admin],
    )


def notify_password_changed(user: UserIdentity) -> NotificationCreate:
    # Not a collection write; the account endpoint sends it directly
    return NotificationCreate(
        title="Password Changed",
        description="Your password was changed. If this wasn't you, contact an administrator.",
        recipient_user_ids=[user.id],
    )


# ============================================================================
# CATALOGUE
# ============================================================================
COMMAND_RULES: Dict[Tuple[str, PermissionAction], CommandRule] = {
    ("users", PermissionAction.create): CommandRule(audit=audit_staff_created),
    ("users", PermissionAction.update): CommandRule(audit=audit_user_changed, sync=sync_user_sessions),
    ("users", PermissionAction.delete): CommandRule(audit=audit_user_removed, sync=sync_user_sessions),
    ("quotation_templates", PermissionAction.create): CommandRule(audit=audit_template),
    ("quotation_templates", PermissionAction.update): CommandRule(audit=audit_template),
    ("quotation_templates", PermissionAction.delete): CommandRule(audit=audit_template),
    ("coupons", PermissionAction.create): CommandRule(audit=audit_coupon),
    ("coupons", PermissionAction.update): CommandRule(audit=audit_coupon),
    ("coupons", PermissionAction.delete): CommandRule(audit=audit_coupon),
    ("leads", PermissionAction.create): CommandRule(notify=notify_new_lead),
    ("visitors", PermissionAction.create): CommandRule(notify=notify_visitor_arrived),
    ("visitors", PermissionAction.update): CommandRule(notify=notify_visitor_arrived),
    ("invoices", PermissionAction.create): CommandRule(notify=notify_new_invoice),
}


def build_command(
    collection: str,
    action: PermissionAction,
    payload: Optional[Dict[str, Any]] = None,
    entity_id: Any = None,
    raise_on_denied: bool = False,
) -> MutationCommand:
    action = PermissionAction(action)
    rule = COMMAND_RULES.get((collection, action), CommandRule())
    return MutationCommand(
        collection=collection,
        action=action,
        payload=dict(payload or {}),
        entity_id=entity_id,
        audit=rule.audit,
        notify=rule.notify,
        sync=rule.sync,
        raise_on_denied=raise_on_denied,
    )

"""Enum definitions for application constants."""

from orgtree.db.enums.audit import AuditEventType
from orgtree.db.enums.auth import MEMBERSHIP_ROLES, OrgRole, SystemRole
from orgtree.db.enums.transfers import (
    TRANSFER_TRANSITIONS,
    TRANSITION_VERBS,
    TransferAction,
    TransferStatus,
)

# System actor used for scheduler-driven transitions
SYSTEM_ACTOR_ROLE = "system"

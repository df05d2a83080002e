"""Real-time ownership transfer events.

Pushes ``ownership_transfer:<event>`` messages to the affected user and to the
organization's connected members.
"""

from __future__ import annotations

import time
from typing import Any
from uuid import UUID

from orgtree.core.websocket import manager


def build_payload(
    org_id: UUID,
    event: str,
    data: dict[str, Any],
    actor: dict[str, Any] | None,
) -> dict[str, Any]:
    return {
        "type": f"ownership_transfer:{event}",
        "entity_type": "ownership_transfer",
        "action": event,
        "org_id": str(org_id),
        "data": data,
        "actor": actor,
        "timestamp": int(time.time()),
    }


async def _deliver(
    org_id: UUID,
    target_user_id: UUID,
    payload: dict[str, Any],
    org_updated: dict[str, Any] | None,
) -> None:
    await manager.send_to_user(target_user_id, payload)
    await manager.send_to_org(org_id, payload, exclude=target_user_id)
    if org_updated is not None:
        await manager.send_to_org(org_id, {"type": "org:updated", "data": org_updated})


def emit_transfer_event(
    org_id: UUID,
    target_user_id: UUID,
    event: str,
    data: dict[str, Any],
    actor: dict[str, Any] | None,
) -> bool:
    """
    Push a transfer event to ``target_user_id`` and the organization.

    An accepted transfer also broadcasts ``org:updated`` with the new owner.
    Returns False when no event loop is available to deliver on.
    """
    payload = build_payload(org_id, event, data, actor)
    org_updated = None
    if event == "accepted":
        org_updated = {"org_id": str(org_id), "owner_user_id": data.get("new_owner_id")}
    return manager.publish_threadsafe(_deliver(org_id, target_user_id, payload, org_updated))

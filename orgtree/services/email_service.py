"""Transactional email for ownership transfers (Resend API).

Best-effort: every function returns a result dict and never raises. When no
API key is configured the send is skipped.
"""

from __future__ import annotations

import html
import logging
from typing import Any

import httpx

from orgtree.core.config import settings
from orgtree.services.http_service import request_with_retries

logger = logging.getLogger(__name__)

RESEND_SEND_URL = "https://api.resend.com/emails"
RESEND_TIMEOUT_SECONDS = 10.0
RESEND_MAX_ATTEMPTS = 3
RESEND_RETRY_BASE_DELAY = 0.5
RESEND_RETRY_MAX_DELAY = 4.0


def _send(to: str, subject: str, body_html: str) -> dict[str, Any]:
    if not settings.RESEND_API_KEY:
        logger.info("Email not configured; skipping send subject=%r", subject)
        return {"success": False, "error": "email_not_configured"}

    payload = {
        "from": settings.EMAIL_FROM,
        "to": [to],
        "subject": subject,
        "html": body_html,
    }
    headers = {
        "Authorization": f"Bearer {settings.RESEND_API_KEY}",
        "Content-Type": "application/json",
    }
    try:
        response = request_with_retries(
            lambda: httpx.post(
                RESEND_SEND_URL,
                json=payload,
                headers=headers,
                timeout=RESEND_TIMEOUT_SECONDS,
            ),
            max_attempts=RESEND_MAX_ATTEMPTS,
            base_delay=RESEND_RETRY_BASE_DELAY,
            max_delay=RESEND_RETRY_MAX_DELAY,
        )
        response.raise_for_status()
    except httpx.HTTPError as exc:
        logger.warning("Resend request failed subject=%r error=%s", subject, exc)
        return {"success": False, "error": str(exc)}

    try:
        message_id = response.json().get("id")
    except ValueError:
        message_id = None
    return {"success": True, "message_id": message_id}


def send_transfer_initiated_email(
    to: str,
    recipient_name: str,
    initiator_name: str,
    org_name: str,
    expiry_days: int | None = None,
) -> dict[str, Any]:
    """Ask the recipient to review the transfer request."""
    expiry_days = expiry_days or settings.TRANSFER_EXPIRY_DAYS
    action_url = f"{settings.FRONTEND_URL}/org/settings"
    subject = f"Action Required: Organization Ownership Transfer for {org_name}"
    body = f"""
      <h2>Ownership Transfer Request</h2>
      <p>Hello {html.escape(recipient_name)},</p>
      <p><strong>{html.escape(initiator_name)}</strong> has initiated a request to transfer
      ownership of <strong>{html.escape(org_name)}</strong> to you.</p>
      <p>As the new owner, you will have full administrative control over the organization.
      The current owner will become an administrator.</p>
      <p>Please log in to review and accept this transfer request within {expiry_days} days.</p>
      <a href="{html.escape(action_url, quote=True)}">Review Request</a>
    """
    return _send(to, subject, body)


def send_transfer_accepted_email(
    to: str,
    recipient_name: str,
    new_owner_name: str,
    org_name: str,
) -> dict[str, Any]:
    """Tell the previous owner the transfer went through."""
    subject = f"Ownership Transfer Accepted: {org_name}"
    body = f"""
      <h2>Transfer Accepted</h2>
      <p>Hello {html.escape(recipient_name)},</p>
      <p><strong>{html.escape(new_owner_name)}</strong> has accepted the ownership transfer for
      <strong>{html.escape(org_name)}</strong>.</p>
      <p>You are now an administrator of this organization.</p>
    """
    return _send(to, subject, body)


def send_transfer_rejected_email(
    to: str,
    recipient_name: str,
    rejected_by_name: str,
    org_name: str,
    reason: str | None = None,
) -> dict[str, Any]:
    """Tell the initiator the recipient declined."""
    subject = f"Ownership Transfer Rejected: {org_name}"
    reason_html = f"<p><strong>Reason:</strong> {html.escape(reason)}</p>" if reason else ""
    body = f"""
      <h2>Transfer Rejected</h2>
      <p>Hello {html.escape(recipient_name)},</p>
      <p><strong>{html.escape(rejected_by_name)}</strong> has rejected the ownership transfer
      request for <strong>{html.escape(org_name)}</strong>.</p>
      {reason_html}
      <p>You remain the owner of the organization.</p>
    """
    return _send(to, subject, body)


def send_transfer_cancelled_email(
    to: str,
    recipient_name: str,
    cancelled_by_name: str,
    org_name: str,
    reason: str | None = None,
) -> dict[str, Any]:
    """Tell the recipient the request was withdrawn."""
    subject = f"Ownership Transfer Cancelled: {org_name}"
    reason_html = f"<p><strong>Reason:</strong> {html.escape(reason)}</p>" if reason else ""
    body = f"""
      <h2>Transfer Cancelled</h2>
      <p>Hello {html.escape(recipient_name)},</p>
      <p><strong>{html.escape(cancelled_by_name)}</strong> has cancelled the ownership transfer
      request for <strong>{html.escape(org_name)}</strong>.</p>
      {reason_html}
    """
    return _send(to, subject, body)

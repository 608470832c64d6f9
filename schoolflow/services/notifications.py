"""Notification emitter for approval transitions.

Handles:
- In-app notification log entries for whoever must act next (or the
  requester once the request is closed)
- Webhook notifications to external systems (SMS gateways, chat tools)

Delivery problems are logged and recorded on the notification log; they
never propagate to the approval transition that triggered them.
"""

import json
import logging
from typing import Any, Dict, List, Optional
from uuid import UUID

import httpx
from jinja2 import Template, TemplateError
from sqlalchemy import and_
from sqlalchemy.orm import Session, sessionmaker

from schoolflow.core.config import get_settings
from schoolflow.db.base import utcnow
from schoolflow.db.models.notification import (
    NotificationChannel,
    NotificationEventType,
    NotificationLog,
    WebhookConfig,
)

logger = logging.getLogger(__name__)


def event_for(request: Dict[str, Any], transition: Optional[Dict[str, Any]]) -> NotificationEventType:
    """Map a submission (no transition) or a transition to its notification event."""
    if transition is None:
        return NotificationEventType.APPROVAL_PENDING
    decision = transition["decision"]
    if decision == "approve":
        if transition["to_state"] == "approved":
            return NotificationEventType.APPROVAL_APPROVED
        return NotificationEventType.APPROVAL_ADVANCED
    if decision == "reject":
        return NotificationEventType.APPROVAL_REJECTED
    return NotificationEventType.APPROVAL_CANCELLED


class NotificationService:
    """
    Emits notifications for approval requests.
    
    Args:
        session_factory: Factory for the session used to read webhook
            subscriptions and write the notification log
        client: HTTP client for webhook delivery; one is created per call
            when omitted
    """
    
    def __init__(self, session_factory: sessionmaker, *, client: Optional[httpx.Client] = None):
        self.session_factory = session_factory
        self.client = client
        self.settings = get_settings()
    
    def notify(self, request: Dict[str, Any], transition: Optional[Dict[str, Any]] = None) -> List[str]:
        """
        Send notifications for a submission or a committed transition.
        
        Args:
            request: Serialized approval request (after the transition)
            transition: Serialized transition record, or None for a new submission
            
        Returns:
            List of notification log IDs
        """
        event_type = event_for(request, transition)
        context = self._build_context(request, transition, event_type)
        tenant_id = UUID(request["tenant_id"])
        request_id = UUID(request["id"])
        
        db = self.session_factory()
        try:
            notification_ids = [self._log_in_app(db, tenant_id, event_type, context, request_id)]
            
            webhooks = db.query(WebhookConfig).filter(
                and_(
                    WebhookConfig.tenant_id == tenant_id,
                    WebhookConfig.is_active == True,
                )
            ).all()
            for webhook in webhooks:
                if event_type.value in (webhook.subscribed_events or []):
                    notification_ids.append(
                        self._send_webhook(db, webhook, event_type, context, request_id)
                    )
            
            db.commit()
            return notification_ids
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
    
    def __call__(self, request: Dict[str, Any], transition: Optional[Dict[str, Any]] = None) -> List[str]:
        return self.notify(request, transition)
    
    def _log_in_app(
        self,
        db: Session,
        tenant_id: UUID,
        event_type: NotificationEventType,
        context: Dict[str, Any],
        request_id: UUID,
    ) -> str:
        """Record an in-app notification for the next approver or the requester."""
        if context["awaiting_role"]:
            recipient = f"role:{context['awaiting_role']}"
        else:
            recipient = f"user:{context['created_by']}"
        log = NotificationLog(
            tenant_id=tenant_id,
            channel=NotificationChannel.IN_APP.value,
            event_type=event_type.value,
            recipient=recipient,
            approval_request_id=request_id,
            payload=context,
            status="sent",
            sent_at=utcnow(),
        )
        db.add(log)
        db.flush()
        return str(log.id)
    
    def _send_webhook(
        self,
        db: Session,
        webhook: WebhookConfig,
        event_type: NotificationEventType,
        context: Dict[str, Any],
        request_id: UUID,
    ) -> str:
        """Deliver one webhook and record the attempt."""
        if webhook.payload_template:
            try:
                payload = json.loads(Template(webhook.payload_template).render(**context))
            except (TemplateError, ValueError) as e:
                logger.warning(f"Failed to render webhook template for {webhook.name}: {e}")
                payload = self._build_default_webhook_payload(event_type, context)
        else:
            payload = self._build_default_webhook_payload(event_type, context)
        
        log = NotificationLog(
            tenant_id=webhook.tenant_id,
            channel=NotificationChannel.WEBHOOK.value,
            event_type=event_type.value,
            recipient=webhook.name,
            webhook_id=webhook.id,
            approval_request_id=request_id,
            payload=payload,
            status="pending",
        )
        db.add(log)
        db.flush()
        
        try:
            self._deliver_webhook(webhook, payload)
            log.status = "sent"
            log.sent_at = utcnow()
            webhook.last_triggered_at = utcnow()
            webhook.failure_count = 0
            webhook.last_error = None
        except httpx.HTTPError as e:
            logger.exception(f"Failed to send webhook to {webhook.url}")
            log.status = "failed"
            log.error_message = str(e)
            webhook.failure_count = (webhook.failure_count or 0) + 1
            webhook.last_error = str(e)
        
        db.flush()
        return str(log.id)
    
    def _deliver_webhook(self, webhook: WebhookConfig, payload: Dict[str, Any]) -> None:
        """Actually deliver the webhook."""
        headers = dict(webhook.headers or {})
        headers["Content-Type"] = "application/json"
        
        if webhook.auth_type == "bearer":
            headers["Authorization"] = f"Bearer {webhook.auth_value}"
        elif webhook.auth_type == "header":
            # auth_value is JSON: {"name": ..., "value": ...}
            try:
                auth = json.loads(webhook.auth_value or "")
                headers[auth["name"]] = auth["value"]
            except (ValueError, KeyError, TypeError):
                logger.warning(f"Ignoring malformed header auth on webhook {webhook.name}")
        
        method = "PUT" if (webhook.method or "POST").upper() == "PUT" else "POST"
        if self.client is not None:
            response = self.client.request(method, webhook.url, json=payload, headers=headers)
            response.raise_for_status()
            return
        
        with httpx.Client(timeout=self.settings.webhook_timeout) as client:
            response = client.request(method, webhook.url, json=payload, headers=headers)
            response.raise_for_status()
    
    def _build_default_webhook_payload(
        self,
        event_type: NotificationEventType,
        context: Dict[str, Any],
    ) -> Dict[str, Any]:
        return {
            "event": event_type.value,
            "timestamp": utcnow().isoformat(),
            "tenant_id": context["tenant_id"],
            "data": context,
        }
    
    def _build_context(
        self,
        request: Dict[str, Any],
        transition: Optional[Dict[str, Any]],
        event_type: NotificationEventType,
    ) -> Dict[str, Any]:
        """Flat template context for notification payloads."""
        context = {
            "event_type": event_type.value,
            "request_id": request["id"],
            "tenant_id": request["tenant_id"],
            "request_type": request["request_type"],
            "title": request["title"],
            "priority": request["priority"],
            "state": request["state"],
            "current_level": request["current_level"],
            "total_levels": len(request["required_chain"]),
            "awaiting_role": request.get("awaiting_role"),
            "created_by": request["created_by"],
            "review_url": f"/approvals/{request['id']}",
        }
        if transition:
            context.update({
                "decision": transition["decision"],
                "actor_id": transition["actor_id"],
                "actor_role": transition["actor_role"],
                "notes": transition.get("notes") or "",
            })
        return context

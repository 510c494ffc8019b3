"""
Rental Marketplace Workflow Service
Alert Service.

Central service for writing and querying dashboard alerts. Every workflow
transition that someone else must see ends with one ``emit`` call.

Delivery is at-most-once and best-effort: ``emit`` runs after the primary
write has committed, in its own commit, and a failure there is logged and
swallowed. There is no retry and no acknowledgement beyond ``dismiss``.
"""

import logging

from sqlalchemy import func, or_, select

from rentflow.models import db
from rentflow.models.alert import Alert
from rentflow.models.profile import UserProfile
from rentflow.models.workflow_status import UserType
from rentflow.utils.errors import E, service_error
from rentflow.utils.messages import translate

logger = logging.getLogger(__name__)

ADMIN_ROLE = UserType.ADMIN.value


class AlertService:
    """Stateless service class for alert operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, alert_type, title, message="", severity="medium", category="system",
               target_role=None, target_user_id=None, action_required=False, metadata=None):
        """
        Create a single alert record.

        Returns:
            The created Alert instance (already committed).
        """
        if not target_role and not target_user_id:
            raise ValueError("An alert needs target_role or target_user_id")
        alert = Alert(
            alert_type=alert_type,
            title=title,
            message=message,
            severity=severity,
            category=category,
            target_role=getattr(target_role, "value", target_role),
            target_user_id=target_user_id,
            action_required=action_required,
            meta=metadata or {},
        )
        db.session.add(alert)
        db.session.commit()
        return alert

    @staticmethod
    def emit(**kwargs):
        """Best-effort ``create``: returns the alert, or None if it could not be stored."""
        try:
            return AlertService.create(**kwargs)
        except Exception:
            db.session.rollback()
            logger.exception(
                "Alert emission failed (type=%s); primary operation unaffected",
                kwargs.get("alert_type"),
                extra={"entity_type": "alert", "user_id": kwargs.get("target_user_id")},
            )
            return None

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, role=None, include_dismissed=False, limit=50, offset=0):
        """
        Alerts addressed to ``user_id`` directly or to ``role``, newest first.

        Returns:
            (items, total)
        """
        targets = [Alert.target_user_id == user_id]
        if role:
            targets.append(Alert.target_role == getattr(role, "value", role))
        stmt = select(Alert).where(or_(*targets))
        if not include_dismissed:
            stmt = stmt.where(Alert.is_dismissed.is_(False))
        total = db.session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
        items = db.session.execute(
            stmt.order_by(Alert.created_at.desc(), Alert.id.desc()).offset(offset).limit(limit)
        ).scalars().all()
        return items, total

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def dismiss(alert_id, user_id):
        """Dismiss an alert visible to ``user_id``. Dismissing twice is a no-op."""
        alert = db.session.get(Alert, alert_id)
        if alert is None:
            return None, service_error(E.NOT_FOUND, "not_found", resource="Alert")

        visible = alert.target_user_id == user_id
        if not visible and alert.target_role:
            profile = db.session.get(UserProfile, user_id) if user_id else None
            visible = bool(profile and profile.user_type and profile.user_type.value == alert.target_role)
        if not visible:
            return None, service_error(E.FORBIDDEN, "permission_denied")

        if not alert.is_dismissed:
            alert.dismiss()
            db.session.commit()
        return alert.to_dict(), None

    # ── Workflow helpers ──────────────────────────────────────────────────

    @staticmethod
    def notify_role_request_submitted(role_request):
        role = role_request.to_role.value
        return AlertService.emit(
            alert_type="role_change_request",
            title=translate("alert.role_request.title"),
            message=translate("alert.role_request.message", role=role),
            severity="medium",
            category="role_management",
            target_role=ADMIN_ROLE,
            action_required=True,
            metadata={
                "request_id": role_request.id,
                "user_id": role_request.user_id,
                "requested_role": role,
            },
        )

    @staticmethod
    def notify_role_request_reviewed(role_request):
        status = role_request.status.value
        role = role_request.to_role.value
        return AlertService.emit(
            alert_type=f"role_change_{status}",
            title=translate(f"alert.role_request_{status}.title"),
            message=translate(f"alert.role_request_{status}.message", role=role),
            severity="low" if status == "approved" else "medium",
            category="role_management",
            target_user_id=role_request.user_id,
            metadata={"request_id": role_request.id, "status": status, "requested_role": role},
        )

    @staticmethod
    def notify_certification_submitted(certification):
        return AlertService.emit(
            alert_type="certification_request",
            title=translate("alert.certification_submitted.title"),
            message=translate("alert.certification_submitted.message", number=certification.certification_number),
            severity="medium",
            category="certification",
            target_role=ADMIN_ROLE,
            action_required=True,
            metadata={"certification_id": certification.id, "lease_id": certification.lease_id},
        )

    @staticmethod
    def notify_certification_status(certification, lease):
        """One alert to the lease parties: addressed to the landlord, tenant in metadata."""
        status = certification.status.value
        return AlertService.emit(
            alert_type=f"certification_{status}",
            title=translate(f"alert.certification_{status}.title"),
            message=translate(f"alert.certification_{status}.message", number=certification.certification_number),
            severity="low" if status == "approved" else "high",
            category="certification",
            target_user_id=lease.landlord_id,
            metadata={
                "certification_id": certification.id,
                "lease_id": lease.id,
                "status": status,
                "landlord_id": lease.landlord_id,
                "tenant_id": lease.tenant_id,
                "reviewer_notes": certification.reviewer_notes,
            },
        )

    @staticmethod
    def notify_mandate(mandate, event, recipient_id, **params):
        return AlertService.emit(
            alert_type=f"mandate_{event}",
            title=translate(f"alert.mandate_{event}.title"),
            message=translate(f"alert.mandate_{event}.message", **params),
            severity="medium",
            category="mandate",
            target_user_id=recipient_id,
            action_required=event == "invitation",
            metadata={"mandate_id": mandate.id, "status": mandate.status.value},
        )

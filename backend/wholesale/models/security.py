from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z

class SecurityEvent(db.Model):
    """
    Security event audit log with tenant context.

    WHY: Track failed logins and cross-tenant access attempts.

    IMMUTABLE: Never update or delete (except retention cleanup).
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_org_occurred", "org_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)  # Nullable for pre-auth events
    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # LOGIN_FAILED, CROSS_TENANT_ACCESS_DENIED, ...
    resource = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(64), nullable=True)

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "org_id": self.org_id,
            "profile_id": self.profile_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }

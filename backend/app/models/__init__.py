from app.models.audit_logs import AuditLog
from app.models.channels import Channel
from app.models.instances import Instance

__all__ = [
    "AuditLog",
    "Channel",
    "Instance",
]

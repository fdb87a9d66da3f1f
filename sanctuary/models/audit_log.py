"""Role audit log model — append-only."""

from sqlalchemy import Column, Integer, String, Text, DateTime, func
from sanctuary.db.base import Base


class RoleAuditLog(Base):
    """Audit trail for role, assignment, and invite changes.

    This table is APPEND-ONLY: no UPDATE or DELETE operations should ever
    be performed on it (enforced at application level).
    """
    __tablename__ = "role_audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(100), nullable=False, index=True)  # e.g. "role.assigned"
    entity_type = Column(String(50), nullable=False, index=True)  # role, user_role, invite
    entity_id = Column(Integer, nullable=False)
    performed_by = Column(Integer, nullable=True)
    target_user_id = Column(Integer, nullable=True, index=True)
    role_id = Column(Integer, nullable=True, index=True)
    previous_value_json = Column(Text, nullable=True)
    new_value_json = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False, index=True)

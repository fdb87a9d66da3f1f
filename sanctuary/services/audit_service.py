"""Audit service — append-only trail for role and permission changes."""

import json
import logging
from typing import Optional, Any
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from fastapi import Request

from sanctuary.models.audit_log import RoleAuditLog

logger = logging.getLogger("sanctuary")


class AuditService:
    """Records immutable audit log entries for role operations."""

    @staticmethod
    def log(
        db: Session,
        action: str,
        entity_type: str,
        entity_id: int,
        performed_by: Optional[int],
        target_user_id: Optional[int] = None,
        role_id: Optional[int] = None,
        previous_value: Optional[Any] = None,
        new_value: Optional[Any] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Optional[RoleAuditLog]:
        """Write a single audit log record.

        Args:
            action: e.g. "role.created", "role.assigned", "invite.redeemed"
            entity_type: role, user_role, invite

        Commits immediately. A failed write is logged and swallowed so that
        auditing never blocks the operation being audited.
        """
        entry = RoleAuditLog(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            performed_by=performed_by,
            target_user_id=target_user_id,
            role_id=role_id,
            previous_value_json=json.dumps(previous_value, default=str) if previous_value is not None else None,
            new_value_json=json.dumps(new_value, default=str) if new_value is not None else None,
            ip_address=ip_address,
            user_agent=user_agent,
            notes=notes,
        )
        try:
            db.add(entry)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Failed to write audit log for %s %s", action, entity_id)
            return None
        return entry

    @staticmethod
    def log_from_request(
        db: Session,
        request: Request,
        action: str,
        entity_type: str,
        entity_id: int,
        performed_by: Optional[int],
        **kwargs: Any,
    ) -> Optional[RoleAuditLog]:
        """Write audit log extracting IP and user-agent from the request."""
        ip = request.client.host if request.client else None
        ua = request.headers.get("user-agent", "")[:500]
        return AuditService.log(
            db,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            performed_by=performed_by,
            ip_address=ip,
            user_agent=ua,
            **kwargs,
        )

    @staticmethod
    def query_logs(
        db: Session,
        role_id: Optional[int] = None,
        target_user_id: Optional[int] = None,
        action: Optional[str] = None,
        page: int = 1,
        page_size: int = 50,
    ):
        """Query audit logs with filters and pagination."""
        query = db.query(RoleAuditLog)

        if role_id:
            query = query.filter(RoleAuditLog.role_id == role_id)
        if target_user_id:
            query = query.filter(RoleAuditLog.target_user_id == target_user_id)
        if action:
            query = query.filter(RoleAuditLog.action == action)

        total = query.count()
        logs = (
            query.order_by(RoleAuditLog.created_at.desc(), RoleAuditLog.id.desc())
            .offset((page - 1) * page_size)
            .limit(page_size)
            .all()
        )

        return {
            "logs": logs,
            "total": total,
            "page": page,
            "page_size": page_size,
        }


audit_service = AuditService()

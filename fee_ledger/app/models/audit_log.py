"""
Audit Log Database Model.

Durable trail of admin ledger actions (status overrides, payment
corrections and deletions, invoice issuance).
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from fee_ledger.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.

    Written in the same transaction as the action it records, so an
    action and its audit entry commit or roll back together.
    """
    __tablename__ = "audit_logs"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    action = Column(String(100), nullable=False, index=True)

    # Subject whose ledger was touched
    target_user_id = Column(Integer, index=True, nullable=True)

    # Entity the action applied to
    entity_type = Column(String(50), nullable=True)
    entity_id = Column(Integer, nullable=True, index=True)

    meta_data = Column(JSON, nullable=True)
    ip_address = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, entity={self.entity_type}:{self.entity_id})>"

"""Billing record (obligation): one student's debt under one billing config. Created once, never deleted."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from billing_ledger.db.session import Base, utcnow


class BillingRecord(Base):
    """
    amount is the original charge and is immutable after creation.
    total_amount is the remaining amount due; it starts equal to amount and never goes negative.
    (student_id, billing_config_id) is the idempotency key for generation.
    """

    __tablename__ = "billing_records"
    __table_args__ = (
        UniqueConstraint(
            "student_id",
            "billing_config_id",
            name="uq_billing_record_student_config",
        ),
        CheckConstraint(
            "status IN ('pending','partial','completed','overdue')",
            name="chk_billing_record_status",
        ),
        CheckConstraint("total_amount >= 0", name="chk_billing_record_total_amount"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    billing_config_id = Column(
        UUID(as_uuid=True),
        ForeignKey("billing_configs.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    amount = Column(Numeric(12, 2), nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending, partial, completed, overdue
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    student = relationship("Student", backref="billing_records")
    billing_config = relationship("BillingConfig", backref="billing_records")

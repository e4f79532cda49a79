"""Billing rule: a named late-fee, early-discount or cutoff policy that schools attach to billing configs."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from billing_ledger.db.session import Base, utcnow


class BillingRule(Base):
    """
    Descriptive rule only; nothing computes fees or discounts from it.
    late_fee / early_discount use the day window and fee fields; cutoff uses cutoff_after_days.
    Fields that do not apply to the rule type are kept NULL.
    """

    __tablename__ = "billing_rules"
    __table_args__ = (
        UniqueConstraint("school_id", "name", name="uq_billing_rule_school_name"),
        CheckConstraint("type IN ('late_fee','early_discount','cutoff')", name="chk_billing_rule_type"),
        CheckConstraint("scope IN ('standard','scholarship','all_students')", name="chk_billing_rule_scope"),
        CheckConstraint("status IN ('active','inactive')", name="chk_billing_rule_status"),
        CheckConstraint("fee_type IS NULL OR fee_type IN ('percentage','fixed')", name="chk_billing_rule_fee_type"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(80), nullable=False)
    description = Column(String(400), nullable=True)
    type = Column(String(20), nullable=False)
    scope = Column(String(20), nullable=False, default="all_students")
    status = Column(String(20), nullable=False, default="active")
    fee_type = Column(String(20), nullable=True)
    fee_value = Column(Numeric(12, 2), nullable=True)
    start_day = Column(Integer, nullable=True)
    end_day = Column(Integer, nullable=True)
    max_uses = Column(Integer, nullable=True)
    used_count = Column(Integer, nullable=True)
    cutoff_after_days = Column(Integer, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    updated_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

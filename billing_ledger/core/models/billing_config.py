"""Billing config (policy): who owes how much, under which enforcement strength. Authored by school admins."""

import uuid

from sqlalchemy import JSON, CheckConstraint, Column, Date, DateTime, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from billing_ledger.db.session import Base, utcnow


class BillingConfig(Base):
    """
    Institutional charge policy scoped to a school cycle.
    Only the target list matching `scope` is populated; the others are kept empty on write.
    status=inactive is the soft-delete state: no new obligations are generated.
    """

    __tablename__ = "billing_configs"
    __table_args__ = (
        CheckConstraint(
            "scope IN ('all_students','specific_groups','specific_grades','specific_students')",
            name="chk_billing_config_scope",
        ),
        CheckConstraint(
            "status IN ('required','optional','inactive')",
            name="chk_billing_config_status",
        ),
        CheckConstraint("amount >= 0", name="chk_billing_config_amount"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    school_cycle_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school_cycles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    scope = Column(String(30), nullable=False)
    # Lists of ids / grade names, stored as strings
    target_groups = Column(JSON, nullable=False, default=list)
    target_grades = Column(JSON, nullable=False, default=list)
    target_students = Column(JSON, nullable=False, default=list)
    # billing_rules ids attached to this policy, descriptive only
    rule_ids = Column(JSON, nullable=False, default=list)
    billing_type = Column(String(30), nullable=False)
    recurrence_type = Column(String(30), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default="required")
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    updated_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    school = relationship("School")
    school_cycle = relationship("SchoolCycle")

"""Balance ledger: append-only log behind Student.balance and Student.credit."""

import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from billing_ledger.db.session import Base, utcnow


class BalanceLedgerEntry(Base):
    """Signed delta on one student account. Rows are never updated or deleted."""

    __tablename__ = "balance_ledger_entries"
    __table_args__ = (
        CheckConstraint("account IN ('balance','credit')", name="chk_balance_ledger_account"),
        CheckConstraint(
            "reason IN ('obligation_debit','overpayment_credit')",
            name="chk_balance_ledger_reason",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    account = Column(String(20), nullable=False)
    delta = Column(Numeric(12, 2), nullable=False)  # negative for charges, positive for credit
    reason = Column(String(30), nullable=False)
    billing_record_id = Column(UUID(as_uuid=True), ForeignKey("billing_records.id", ondelete="RESTRICT"), nullable=True)
    payment_id = Column(UUID(as_uuid=True), ForeignKey("payments.id", ondelete="RESTRICT"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    student = relationship("Student", backref="ledger_entries")

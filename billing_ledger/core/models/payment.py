"""Payment: one settlement applied against a billing record."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from billing_ledger.db.session import Base, utcnow


class Payment(Base):
    """
    Immutable after creation except for the invoice_* annotations.
    payment_intent_ref is the processor's idempotency key; the unique index makes a replayed
    confirmation fail on insert instead of settling twice. Manual payments leave it NULL.
    """

    __tablename__ = "payments"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    billing_record_id = Column(
        UUID(as_uuid=True),
        ForeignKey("billing_records.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    student_id = Column(UUID(as_uuid=True), ForeignKey("students.id", ondelete="RESTRICT"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(30), nullable=False)  # cash, bank_transfer, card, other
    payment_intent_ref = Column(String(255), nullable=True, unique=True)
    charge_ref = Column(String(255), nullable=True)
    transfer_ref = Column(String(255), nullable=True)
    invoice_status = Column(String(30), nullable=False, default="pending")
    invoice_id = Column(String(255), nullable=True)
    invoice_number = Column(String(100), nullable=True)
    created_by = Column(UUID(as_uuid=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    billing_record = relationship("BillingRecord", backref="payments")
    student = relationship("Student")

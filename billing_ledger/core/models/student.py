import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from billing_ledger.db.session import Base, utcnow


class Student(Base):
    """
    Student enrolled in a school cycle and group.
    balance (negative = owed) and credit (unconsumed overpayment) are cached projections of
    balance_ledger_entries; they are only ever changed together with a new ledger entry.
    """

    __tablename__ = "students"
    __table_args__ = (
        CheckConstraint("credit >= 0", name="chk_student_credit_non_negative"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    school_id = Column(UUID(as_uuid=True), ForeignKey("schools.id", ondelete="CASCADE"), nullable=False, index=True)
    school_cycle_id = Column(
        UUID(as_uuid=True),
        ForeignKey("school_cycles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    group_id = Column(UUID(as_uuid=True), ForeignKey("groups.id"), nullable=True, index=True)
    enrollment = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=True)
    tutor_name = Column(String(255), nullable=True)
    tutor_phone = Column(String(50), nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active | inactive
    balance = Column(Numeric(12, 2), nullable=False, default=0)
    credit = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    school = relationship("School")
    school_cycle = relationship("SchoolCycle")
    group = relationship("Group", foreign_keys=[group_id])

    @property
    def full_name(self) -> str:
        return f"{self.name} {self.last_name or ''}".strip()

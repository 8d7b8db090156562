import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from microfin.db.base import Base


class LoanApprovalDecision(Base):
    __tablename__ = "loan_approval_decisions"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "decision IN ('APPROVED', 'APPROVED_WITH_CONDITIONS', 'REJECTED', 'REFERRED')",
            name="ck_approval_decision",
        ),
        CheckConstraint(
            "level IN ('BRANCH_MANAGER', 'REGIONAL_MANAGER', 'CREDIT_COMMITTEE', 'CEO')",
            name="ck_approval_level",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    level = Column(String(30), nullable=False)
    decision = Column(String(30), nullable=False)
    approved_amount = Column(Numeric(18, 2), nullable=True)
    conditions = Column(JSONB, nullable=True)
    notes = Column(Text, nullable=True)
    minutes = Column(Text, nullable=True)
    approved_by = Column(String(64), nullable=False)
    approved_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    loan = relationship("Loan", back_populates="approval_decisions")

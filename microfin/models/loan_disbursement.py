import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from microfin.db.base import Base


class LoanDisbursement(Base):
    __tablename__ = "loan_disbursements"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_disbursement_amount_positive"),
        CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED')",
            name="ck_disbursement_status",
        ),
        CheckConstraint(
            "method IN ('CASH', 'BANK_TRANSFER', 'MOBILE_MONEY', 'CHEQUE')",
            name="ck_disbursement_method",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loans.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status = Column(String(20), nullable=False, default="PENDING")
    amount = Column(Numeric(18, 2), nullable=False)
    method = Column(String(20), nullable=False)
    account_number = Column(String(50), nullable=True)
    account_name = Column(String(255), nullable=True)
    bank_name = Column(String(255), nullable=True)
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)
    verified_by = Column(String(64), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    disbursed_by = Column(String(64), nullable=True)
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    loan = relationship("Loan", back_populates="disbursement")

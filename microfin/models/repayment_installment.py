import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from microfin.db.base import Base


class RepaymentInstallment(Base):
    __tablename__ = "repayment_installments"
    __allow_unmapped__ = True
    __table_args__ = (
        UniqueConstraint("loan_id", "installment_number", name="uq_installment_loan_number"),
        CheckConstraint("installment_number >= 1", name="ck_installment_number_positive"),
        CheckConstraint("principal_amount >= 0", name="ck_installment_principal_nonneg"),
        CheckConstraint("interest_amount >= 0", name="ck_installment_interest_nonneg"),
        CheckConstraint("total_amount >= 0", name="ck_installment_total_nonneg"),
        CheckConstraint(
            "status IN ('PENDING', 'PARTIALLY_PAID', 'PAID', 'OVERDUE')",
            name="ck_installment_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loans.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    installment_number = Column(Integer, nullable=False)
    due_date = Column(Date, nullable=False)
    principal_amount = Column(Numeric(18, 2), nullable=False)
    interest_amount = Column(Numeric(18, 2), nullable=False)
    total_amount = Column(Numeric(18, 2), nullable=False)
    outstanding_principal = Column(Numeric(18, 2), nullable=False)
    outstanding_interest = Column(Numeric(18, 2), nullable=False)
    outstanding_total = Column(Numeric(18, 2), nullable=False)
    status = Column(String(20), nullable=False, default="PENDING")

    loan = relationship("Loan", back_populates="installments")

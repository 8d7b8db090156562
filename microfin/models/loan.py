import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship

from microfin.db.base import Base


class Loan(Base):
    __tablename__ = "loans"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("requested_amount > 0", name="ck_loan_requested_positive"),
        CheckConstraint(
            "approved_amount IS NULL OR approved_amount > 0",
            name="ck_loan_approved_positive",
        ),
        CheckConstraint(
            "interest_rate >= 0 AND interest_rate <= 100",
            name="ck_loan_rate_range",
        ),
        CheckConstraint("tenure >= 1 AND tenure <= 60", name="ck_loan_tenure_range"),
        CheckConstraint("version >= 1", name="ck_loan_version_positive"),
        CheckConstraint(
            "status IN ('DRAFT', 'APPLICATION_SUBMITTED', 'UNDER_APPRAISAL', 'PENDING_APPROVAL', "
            "'APPROVED', 'APPROVED_WITH_CONDITIONS', 'REJECTED', 'DISBURSED', 'ACTIVE', "
            "'OVERDUE', 'CLOSED')",
            name="ck_loan_status",
        ),
        CheckConstraint(
            "interest_rate_type IN ('FLAT', 'REDUCING_BALANCE')",
            name="ck_loan_rate_type",
        ),
        CheckConstraint(
            "repayment_frequency IN ('WEEKLY', 'BIWEEKLY', 'MONTHLY', 'QUARTERLY')",
            name="ck_loan_frequency",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(String(30), nullable=False, unique=True, index=True)
    customer_id = Column(
        UUID(as_uuid=True), ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    branch_id = Column(
        UUID(as_uuid=True), ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    loan_officer_id = Column(String(64), nullable=False, index=True)
    product_name = Column(String(255), nullable=False)
    purpose = Column(String(30), nullable=False)
    requested_amount = Column(Numeric(18, 2), nullable=False)
    approved_amount = Column(Numeric(18, 2), nullable=True)
    interest_rate = Column(Numeric(7, 4), nullable=False)
    interest_rate_type = Column(String(20), nullable=False, default="REDUCING_BALANCE")
    tenure = Column(Integer, nullable=False)
    repayment_frequency = Column(String(20), nullable=False, default="MONTHLY")
    status = Column(String(30), nullable=False, default="DRAFT", index=True)
    # date of the final credit decision, rejections included
    approval_date = Column(DateTime(timezone=True), nullable=True)
    disbursement_date = Column(Date, nullable=True)
    activation_date = Column(DateTime(timezone=True), nullable=True)
    closed_date = Column(DateTime(timezone=True), nullable=True)
    final_rating = Column(String(30), nullable=True)
    closure_notes = Column(Text, nullable=True)
    closure_checklist = Column(JSONB, nullable=True)
    created_by = Column(String(64), nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"version_id_col": version, "eager_defaults": True}

    customer = relationship("Customer", lazy="raise")
    branch = relationship("Branch", lazy="raise")
    appraisal = relationship(
        "LoanAppraisal",
        back_populates="loan",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    approval_decisions = relationship(
        "LoanApprovalDecision",
        back_populates="loan",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="LoanApprovalDecision.approved_at",
    )
    disbursement = relationship(
        "LoanDisbursement",
        back_populates="loan",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    installments = relationship(
        "RepaymentInstallment",
        back_populates="loan",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="RepaymentInstallment.installment_number",
    )

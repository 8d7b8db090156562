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


class LoanAppraisal(Base):
    __tablename__ = "loan_appraisals"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint("status IN ('IN_PROGRESS', 'COMPLETED')", name="ck_appraisal_status"),
        CheckConstraint("monthly_income IS NULL OR monthly_income >= 0", name="ck_appraisal_income_nonneg"),
        CheckConstraint(
            "monthly_expenses IS NULL OR monthly_expenses >= 0",
            name="ck_appraisal_expenses_nonneg",
        ),
        CheckConstraint(
            "recommended_amount IS NULL OR recommended_amount > 0",
            name="ck_appraisal_recommended_positive",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loans.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status = Column(String(20), nullable=False, default="IN_PROGRESS")
    site_visit_date = Column(Date, nullable=True)
    site_visit_notes = Column(Text, nullable=True)
    site_visit_photos = Column(JSONB, nullable=True)
    monthly_income = Column(Numeric(18, 2), nullable=True)
    monthly_expenses = Column(Numeric(18, 2), nullable=True)
    net_cash_flow = Column(Numeric(18, 2), nullable=True)
    debt_service_ratio = Column(Numeric(7, 4), nullable=True)
    credit_score = Column(Integer, nullable=True)
    scoring_notes = Column(Text, nullable=True)
    recommended_amount = Column(Numeric(18, 2), nullable=True)
    recommended_tenure = Column(Integer, nullable=True)
    recommendation = Column(String(30), nullable=True)
    appraisal_notes = Column(Text, nullable=True)
    appraised_by = Column(String(64), nullable=True)
    appraised_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    __mapper_args__ = {"eager_defaults": True}

    loan = relationship("Loan", back_populates="appraisal")

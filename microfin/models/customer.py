import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from microfin.db.base import Base


class Customer(Base):
    __tablename__ = "customers"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "status IN ('PROSPECT', 'ACTIVE', 'INACTIVE', 'BLACKLISTED')",
            name="ck_customer_status",
        ),
        CheckConstraint(
            "customer_type IN ('INDIVIDUAL', 'GROUP', 'BUSINESS')",
            name="ck_customer_type",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_code = Column(String(30), nullable=False, unique=True, index=True)
    branch_id = Column(
        UUID(as_uuid=True), ForeignKey("branches.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    customer_type = Column(String(20), nullable=False, default="INDIVIDUAL")
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    phone = Column(String(30), nullable=False)
    email = Column(String(255), nullable=True)
    national_id = Column(String(50), nullable=True, unique=True)
    date_of_birth = Column(Date, nullable=True)
    address = Column(String(500), nullable=True)
    occupation = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="PROSPECT", index=True)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    __mapper_args__ = {"eager_defaults": True}

    branch = relationship("Branch", lazy="raise")
    kyc_profile = relationship(
        "KycProfile", back_populates="customer", uselist=False, cascade="all, delete-orphan"
    )
    risk_profile = relationship(
        "RiskProfile", back_populates="customer", uselist=False, cascade="all, delete-orphan"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class KycProfile(Base):
    __tablename__ = "kyc_profiles"
    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'INCOMPLETE', 'COMPLETE', 'EXPIRED')",
            name="ck_kyc_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    status = Column(String(20), nullable=False, default="PENDING")
    has_national_id = Column(Boolean, nullable=False, default=False)
    has_proof_of_address = Column(Boolean, nullable=False, default=False)
    has_photo_proof = Column(Boolean, nullable=False, default=False)
    has_income_proof = Column(Boolean, nullable=False, default=False)
    verified_by = Column(String(64), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    expiry_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    updated_at = Column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )
    __mapper_args__ = {"eager_defaults": True}

    customer = relationship("Customer", back_populates="kyc_profile")


class RiskProfile(Base):
    __tablename__ = "risk_profiles"
    __table_args__ = (
        CheckConstraint(
            "risk_level IN ('LOW', 'MEDIUM', 'HIGH', 'CRITICAL')",
            name="ck_risk_level",
        ),
        CheckConstraint(
            "credit_score IS NULL OR (credit_score >= 0 AND credit_score <= 1000)",
            name="ck_risk_credit_score_range",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    risk_level = Column(String(20), nullable=False, default="MEDIUM")
    credit_score = Column(Integer, nullable=True)
    notes = Column(Text, nullable=True)
    assessed_by = Column(String(64), nullable=True)
    assessed_at = Column(DateTime(timezone=True), nullable=True)
    next_review_date = Column(Date, nullable=True)

    customer = relationship("Customer", back_populates="risk_profile")

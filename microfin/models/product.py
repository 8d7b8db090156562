import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from microfin.db.base import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint(
            "status IN ('ACTIVE', 'INACTIVE', 'DISCONTINUED')",
            name="ck_product_status",
        ),
        CheckConstraint(
            "product_type IN ('SAVINGS', 'CURRENT', 'TERM_DEPOSIT')",
            name="ck_product_type",
        ),
        CheckConstraint("minimum_deposit >= 0", name="ck_product_min_deposit_nonneg"),
        CheckConstraint("interest_rate >= 0", name="ck_product_rate_nonneg"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code = Column(String(20), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    product_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="ACTIVE")
    interest_rate = Column(Numeric(7, 4), nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="KES")
    minimum_deposit = Column(Numeric(18, 2), nullable=False, default=0)
    allow_multiple = Column(Boolean, nullable=False, default=False)
    auto_activate = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

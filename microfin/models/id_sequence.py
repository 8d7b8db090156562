import uuid

from sqlalchemy import BigInteger, Column, Integer, String, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID

from microfin.db.base import Base


class IdSequence(Base):
    """Per-scope, per-branch, per-year counter behind human readable identifiers."""

    __tablename__ = "id_sequences"
    __table_args__ = (
        UniqueConstraint("scope", "branch_code", "year", name="uq_id_sequence_scope_branch_year"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    scope = Column(String(20), nullable=False)
    branch_code = Column(String(10), nullable=False)
    year = Column(Integer, nullable=False)
    current_value = Column(BigInteger, nullable=False, default=0)

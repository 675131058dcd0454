"""
Holder (float holder) database model.

A staff member who may physically hold institute cash. The running balance
is NOT a column here: it is always derived from the ledger chain.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum
from institute_finance.app.db.session import Base, utcnow
from institute_finance.app.models.enums import HolderRole


class Holder(Base):
    """
    Holder model.

    Created with staff onboarding and never deleted while ledger entries
    reference it; retiring sets is_active=False.
    """
    __tablename__ = "holders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    full_name = Column(String(150), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=True)
    role = Column(Enum(HolderRole), default=HolderRole.STAFF, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Holder(id={self.id}, name='{self.full_name}', role='{self.role.value}')>"

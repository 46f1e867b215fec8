from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index
from sqlalchemy.orm import relationship
from pathwise.db.base import Base


class License(Base):
    """
    Institution seat license.

    per_student licenses cap used_seats at licensed_seats; site licenses have
    licensed_seats = NULL (unlimited). Only one license per institution is active.
    """
    __tablename__ = "licenses"

    id = Column(Integer, primary_key=True, index=True)
    institution_id = Column(Integer, ForeignKey("institutions.id", ondelete="CASCADE"), nullable=False)
    license_type = Column(String, nullable=False)  # per_student | site
    licensed_seats = Column(Integer, nullable=True)
    used_seats = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    institution = relationship("Institution", back_populates="licenses")

    __table_args__ = (
        Index("idx_license_institution_active", "institution_id", "is_active"),
    )

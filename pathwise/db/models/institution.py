from datetime import datetime
from sqlalchemy import Column, Integer, String, DateTime, Boolean, JSON
from sqlalchemy.orm import relationship
from pathwise.db.base import Base


class Institution(Base):
    __tablename__ = "institutions"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    domain = Column(String, unique=True, nullable=True, index=True)  # primary email domain
    allowed_domains = Column(JSON, nullable=True)  # additional email domains
    contact_email = Column(String, nullable=False)
    contact_name = Column(String, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    members = relationship("User", back_populates="institution", passive_deletes=True)
    licenses = relationship("License", back_populates="institution", cascade="all, delete-orphan", passive_deletes=True)
    invitations = relationship("Invitation", back_populates="institution", cascade="all, delete-orphan", passive_deletes=True)

    def accepts_domain(self, domain: str) -> bool:
        domain = (domain or "").lower()
        if not domain:
            return False
        if self.domain and self.domain.lower() == domain:
            return True
        return domain in [d.lower() for d in (self.allowed_domains or [])]

"""Developer model: one issued API key/secret pair."""

from sqlalchemy import Column, String, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class Developer(Base):
    """API credential for a third-party or internal integration.

    ``api_key`` is public and immutable once issued. Only the SHA-256 digest
    of the secret is stored; the plaintext is returned once at creation or
    regeneration and never again.
    """

    __tablename__ = "developers"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String)
    api_key = Column(String, unique=True, nullable=False, index=True)
    api_secret_hash = Column(String, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    owner_user_id = Column(String, index=True)
    extra_metadata = Column("metadata", JSON, default=dict, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    limits = relationship(
        "DeveloperLimit",
        back_populates="developer",
        uselist=False,
        cascade="all, delete-orphan",
    )
    usage_logs = relationship(
        "UsageLogEntry",
        back_populates="developer",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def environment(self) -> str:
        return "test" if self.api_key.startswith("pk_test_") else "live"

    def __repr__(self):
        return f"<Developer(id='{self.id}', name='{self.name}')>"

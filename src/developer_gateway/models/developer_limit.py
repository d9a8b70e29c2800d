from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class DeveloperLimit(Base):
    """Monthly quota and per-minute rate ceiling, one row per developer."""

    __tablename__ = "developer_limits"

    developer_id = Column(
        String, ForeignKey("developers.id", ondelete="CASCADE"), primary_key=True
    )
    monthly_limit = Column(Integer, default=1000, nullable=False)
    current_month_used = Column(Integer, default=0, nullable=False)
    current_month = Column(String(7), nullable=False)  # "YYYY-MM"
    rate_limit_per_minute = Column(Integer, default=100, nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    developer = relationship("Developer", back_populates="limits")

    @property
    def remaining(self) -> int:
        return max(self.monthly_limit - self.current_month_used, 0)

    def __repr__(self):
        return (
            f"<DeveloperLimit(developer_id='{self.developer_id}', "
            f"used={self.current_month_used}/{self.monthly_limit})>"
        )

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "monthly_limit": self.monthly_limit,
            "current_month_used": self.current_month_used,
            "current_month": self.current_month,
            "remaining": self.remaining,
            "rate_limit_per_minute": self.rate_limit_per_minute,
        }

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class UsageLogEntry(Base):
    """Append-only record of one authenticated, metered call."""

    __tablename__ = "developer_usage_log"

    id = Column(String, primary_key=True)
    developer_id = Column(
        String,
        ForeignKey("developers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Call details
    tool_name = Column(String, nullable=False, index=True)
    usage_count = Column(Integer, default=1, nullable=False)
    outcome = Column(String, nullable=False, default="success")
    endpoint = Column(String)
    method = Column(String(10))
    status_code = Column(Integer)
    error_message = Column(Text)

    # Client metadata
    ip_address = Column(String)
    user_agent = Column(String)
    processing_time_ms = Column(Integer)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    last_used_at = Column(DateTime(timezone=True), server_default=func.now())

    developer = relationship("Developer", back_populates="usage_logs")

    def __repr__(self):
        return f"<UsageLogEntry(id='{self.id}', tool='{self.tool_name}')>"

    def to_dict(self):
        """Convert to dictionary."""
        return {
            "id": self.id,
            "developer_id": self.developer_id,
            "tool_name": self.tool_name,
            "usage_count": self.usage_count,
            "outcome": self.outcome,
            "endpoint": self.endpoint,
            "method": self.method,
            "status_code": self.status_code,
            "error_message": self.error_message,
            "processing_time_ms": self.processing_time_ms,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
